"""Organization, workspace and project memberships.

Public operations each run as one unit of work (``atomic``). The ``add_*`` and
``ensure_*`` helpers only flush so the invitation engine can compose several of
them, plus their cascades, into a single transaction.
"""
from __future__ import annotations
from flask import current_app
from sqlalchemy.orm import Session
from .. import db
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import (
    ROLE_RANK,
    Organization,
    OrganizationMember,
    Project,
    ProjectMember,
    Role,
    User,
    Workspace,
    WorkspaceMember,
)
from ..utils.transaction import atomic
from . import permissions
from .cascade import Level, Mode, propagate_role, remove_below


def parse_role(role) -> str:
    value = getattr(role, "value", role)
    if not isinstance(value, str) or value.upper() not in Role.__members__:
        raise ValidationError(f"Role must be one of: {', '.join(Role.__members__)}")
    return value.upper()


def get_organization(organization_id: int) -> Organization:
    organization = db.session.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    return organization


def get_workspace(workspace_id: int) -> Workspace:
    workspace = db.session.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace not found")
    return workspace


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


def _get_member(model, member_id: int, label: str):
    member = db.session.get(model, member_id)
    if member is None:
        raise NotFoundError(f"{label} member not found")
    return member


# lookups

def find_by_user_and_organization(user_id: int, organization_id: int) -> OrganizationMember | None:
    return OrganizationMember.query.filter_by(user_id=user_id, organization_id=organization_id).first()


def find_by_user_and_workspace(user_id: int, workspace_id: int) -> WorkspaceMember | None:
    return WorkspaceMember.query.filter_by(user_id=user_id, workspace_id=workspace_id).first()


def find_by_user_and_project(user_id: int, project_id: int) -> ProjectMember | None:
    return ProjectMember.query.filter_by(user_id=user_id, project_id=project_id).first()


# composable writes (flush only)

def add_organization_member(
    session: Session, user_id: int, organization: Organization, role: str, actor_id: int | None = None
) -> OrganizationMember:
    if find_by_user_and_organization(user_id, organization.id) is not None:
        raise ConflictError("User is already a member of this organization")
    member = OrganizationMember(user_id=user_id, organization_id=organization.id, role=role, created_by=actor_id)
    session.add(member)
    session.flush()
    propagate_role(session, user_id, Level.ORGANIZATION, organization.id, role, Mode.CREATE, actor_id)
    return member


def add_workspace_member(
    session: Session, user_id: int, workspace: Workspace, role: str, actor_id: int | None = None
) -> WorkspaceMember:
    if find_by_user_and_organization(user_id, workspace.organization_id) is None:
        raise ValidationError("User must be a member of the organization to join this workspace")
    if find_by_user_and_workspace(user_id, workspace.id) is not None:
        raise ConflictError("User is already a member of this workspace")
    member = WorkspaceMember(user_id=user_id, workspace_id=workspace.id, role=role, created_by=actor_id)
    session.add(member)
    session.flush()
    propagate_role(session, user_id, Level.WORKSPACE, workspace.id, role, Mode.CREATE, actor_id)
    return member


def add_project_member(
    session: Session, user_id: int, project: Project, role: str, actor_id: int | None = None
) -> ProjectMember:
    if find_by_user_and_workspace(user_id, project.workspace_id) is None:
        raise ValidationError("User must be a member of the workspace to join this project")
    if find_by_user_and_project(user_id, project.id) is not None:
        raise ConflictError("User is already a member of this project")
    member = ProjectMember(user_id=user_id, project_id=project.id, role=role, created_by=actor_id)
    session.add(member)
    session.flush()
    return member


def ensure_organization_member(session, user_id, organization, role, actor_id=None):
    existing = find_by_user_and_organization(user_id, organization.id)
    if existing is not None:
        return existing, False
    return add_organization_member(session, user_id, organization, role, actor_id), True


def ensure_workspace_member(session, user_id, workspace, role, actor_id=None):
    existing = find_by_user_and_workspace(user_id, workspace.id)
    if existing is not None:
        return existing, False
    return add_workspace_member(session, user_id, workspace, role, actor_id), True


def ensure_project_member(session, user_id, project, role, actor_id=None):
    existing = find_by_user_and_project(user_id, project.id)
    if existing is not None:
        return existing, False
    return add_project_member(session, user_id, project, role, actor_id), True


# organization level

def create_organization_member(
    user_id: int, organization_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> OrganizationMember:
    role = parse_role(role)
    organization = get_organization(organization_id)
    permissions.get_user(user_id)
    if requester_id is not None:
        permissions.require_org_manager(requester_id, organization, "add members")

    with atomic("User is already a member of this organization") as session:
        member = add_organization_member(session, user_id, organization, role, requester_id)
    current_app.logger.info("org member created: user=%s org=%s role=%s", user_id, organization_id, role)
    return member


def update_organization_member(member_id: int, role, requester_id: int) -> OrganizationMember:
    role = parse_role(role)
    member = _get_member(OrganizationMember, member_id, "Organization")
    organization = member.organization
    permissions.require_org_manager(requester_id, organization, "update member roles")
    if organization.owner_id == member.user_id and role != Role.OWNER.value:
        raise ValidationError("Cannot change the role of the organization owner")

    with atomic() as session:
        member.role = role
        session.flush()
        propagate_role(session, member.user_id, Level.ORGANIZATION, organization.id, role, Mode.UPDATE, requester_id)
    current_app.logger.info("org member %s updated: role=%s", member_id, role)
    return member


def remove_organization_member(member_id: int, requester_id: int) -> None:
    member = _get_member(OrganizationMember, member_id, "Organization")
    permissions.require_org_member_removal(requester_id, member)
    if member.organization.owner_id == member.user_id:
        raise ValidationError("Cannot remove the organization owner from the organization")

    user_id, organization_id = member.user_id, member.organization_id
    with atomic() as session:
        removed = remove_below(session, user_id, Level.ORGANIZATION, organization_id)
        session.delete(member)
    current_app.logger.info(
        "org member %s removed (user=%s org=%s, %s memberships below)", member_id, user_id, organization_id, removed
    )


# workspace level

def create_workspace_member(
    user_id: int, workspace_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> WorkspaceMember:
    role = parse_role(role)
    workspace = get_workspace(workspace_id)
    permissions.get_user(user_id)
    if requester_id is not None:
        permissions.require_workspace_manager(requester_id, workspace, role)

    with atomic("User is already a member of this workspace") as session:
        member = add_workspace_member(session, user_id, workspace, role, requester_id)
    current_app.logger.info("workspace member created: user=%s workspace=%s role=%s", user_id, workspace_id, role)
    return member


def update_workspace_member(member_id: int, role, requester_id: int) -> WorkspaceMember:
    role = parse_role(role)
    member = _get_member(WorkspaceMember, member_id, "Workspace")
    permissions.require_workspace_manager(requester_id, member.workspace, role)

    with atomic() as session:
        member.role = role
        session.flush()
        propagate_role(session, member.user_id, Level.WORKSPACE, member.workspace_id, role, Mode.UPDATE, requester_id)
    current_app.logger.info("workspace member %s updated: role=%s", member_id, role)
    return member


def remove_workspace_member(member_id: int, requester_id: int) -> None:
    member = _get_member(WorkspaceMember, member_id, "Workspace")
    permissions.require_workspace_member_removal(requester_id, member)

    user_id, workspace_id = member.user_id, member.workspace_id
    with atomic() as session:
        removed = remove_below(session, user_id, Level.WORKSPACE, workspace_id)
        session.delete(member)
    current_app.logger.info(
        "workspace member %s removed (user=%s workspace=%s, %s project memberships)",
        member_id, user_id, workspace_id, removed,
    )


# project level

def create_project_member(
    user_id: int, project_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> ProjectMember:
    role = parse_role(role)
    project = get_project(project_id)
    permissions.get_user(user_id)
    if requester_id is not None:
        permissions.require_project_manager(requester_id, project, role)

    with atomic("User is already a member of this project") as session:
        member = add_project_member(session, user_id, project, role, requester_id)
    current_app.logger.info("project member created: user=%s project=%s role=%s", user_id, project_id, role)
    return member


def update_project_member(member_id: int, role, requester_id: int) -> ProjectMember:
    role = parse_role(role)
    member = _get_member(ProjectMember, member_id, "Project")
    permissions.require_project_manager(requester_id, member.project, role)
    with atomic():
        member.role = role
    current_app.logger.info("project member %s updated: role=%s", member_id, role)
    return member


def remove_project_member(member_id: int, requester_id: int) -> None:
    member = _get_member(ProjectMember, member_id, "Project")
    permissions.require_project_member_removal(requester_id, member)
    with atomic() as session:
        session.delete(member)
    current_app.logger.info("project member %s removed", member_id)


# listings

def _ordered(members):
    return sorted(members, key=lambda m: (ROLE_RANK.get(m.role, len(ROLE_RANK)), m.joined_at))


def list_organization_members(organization_id: int, requester_id: int) -> list[OrganizationMember]:
    organization = get_organization(organization_id)
    permissions.require_org_member(requester_id, organization.id)
    return _ordered(OrganizationMember.query.filter_by(organization_id=organization.id).all())


def list_workspace_members(workspace_id: int, requester_id: int) -> list[WorkspaceMember]:
    workspace = get_workspace(workspace_id)
    permissions.require_entity_viewer(
        requester_id, workspace.organization_id, find_by_user_and_workspace(requester_id, workspace.id)
    )
    return _ordered(WorkspaceMember.query.filter_by(workspace_id=workspace.id).all())


def list_project_members(project_id: int, requester_id: int) -> list[ProjectMember]:
    project = get_project(project_id)
    permissions.require_entity_viewer(
        requester_id,
        project.workspace.organization_id,
        find_by_user_and_workspace(requester_id, project.workspace_id),
        find_by_user_and_project(requester_id, project.id),
    )
    return _ordered(ProjectMember.query.filter_by(project_id=project.id).all())


# by email

def _user_by_email(email: str) -> User:
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if user is None:
        raise NotFoundError("User with this email not found")
    return user


def invite_organization_member_by_email(
    email: str, organization_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> OrganizationMember:
    """Add an already registered user, found by email, with the usual cascade."""
    return create_organization_member(_user_by_email(email).id, organization_id, role, requester_id)


def invite_workspace_member_by_email(
    email: str, workspace_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> WorkspaceMember:
    return create_workspace_member(_user_by_email(email).id, workspace_id, role, requester_id)


def invite_project_member_by_email(
    email: str, project_id: int, role=Role.MEMBER, requester_id: int | None = None
) -> ProjectMember:
    return create_project_member(_user_by_email(email).id, project_id, role, requester_id)


# a user's own memberships

def _require_self_or_admin(user_id: int, requester_id: int | None) -> None:
    permissions.get_user(user_id)
    if requester_id is None or requester_id == user_id or permissions.is_super_admin(requester_id):
        return
    raise ForbiddenError("You can only view your own memberships")


def get_user_organizations(user_id: int, requester_id: int | None = None) -> list[OrganizationMember]:
    _require_self_or_admin(user_id, requester_id)
    return (
        OrganizationMember.query.filter_by(user_id=user_id)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        .all()
    )


def get_user_workspaces(user_id: int, requester_id: int | None = None) -> list[WorkspaceMember]:
    _require_self_or_admin(user_id, requester_id)
    return (
        WorkspaceMember.query.filter_by(user_id=user_id)
        .order_by(WorkspaceMember.joined_at, WorkspaceMember.id)
        .all()
    )


def get_user_projects(user_id: int, requester_id: int | None = None) -> list[ProjectMember]:
    _require_self_or_admin(user_id, requester_id)
    return (
        ProjectMember.query.filter_by(user_id=user_id)
        .order_by(ProjectMember.joined_at, ProjectMember.id)
        .all()
    )
