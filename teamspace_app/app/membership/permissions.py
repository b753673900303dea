from __future__ import annotations
from .. import db
from ..errors import ForbiddenError, NotFoundError
from ..models import (
    ELEVATED_ROLES,
    Organization,
    OrganizationMember,
    Project,
    ProjectMember,
    Role,
    User,
    Workspace,
    WorkspaceMember,
)


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def is_super_admin(user_id: int) -> bool:
    user = db.session.get(User, user_id)
    return bool(user and user.is_super_admin)


def _org_membership(user_id: int, organization_id: int) -> OrganizationMember | None:
    return OrganizationMember.query.filter_by(user_id=user_id, organization_id=organization_id).first()


def require_org_member(requester_id: int, organization_id: int) -> OrganizationMember | None:
    """Super-admins pass with ``None``; everyone else must belong to the organization."""
    if is_super_admin(requester_id):
        return None
    member = _org_membership(requester_id, organization_id)
    if member is None:
        raise ForbiddenError("You are not a member of this organization")
    return member


def require_org_manager(requester_id: int, organization: Organization, action: str = "manage members") -> None:
    requester = require_org_member(requester_id, organization.id)
    if requester is None:
        return
    if organization.owner_id != requester_id and requester.role not in ELEVATED_ROLES:
        raise ForbiddenError(f"Only organization owners and managers can {action}")


def require_org_member_removal(requester_id: int, member: OrganizationMember) -> None:
    # users may always leave on their own
    if member.user_id == requester_id and not is_super_admin(requester_id):
        require_org_member(requester_id, member.organization_id)
        return
    require_org_manager(requester_id, member.organization, "remove other members")


def _workspace_authority(requester_id: int, workspace: Workspace) -> tuple[bool, WorkspaceMember | None]:
    """Return (has_org_authority, requester's workspace membership)."""
    if is_super_admin(requester_id):
        return True, None
    organization = workspace.organization
    org_member = _org_membership(requester_id, organization.id)
    ws_member = WorkspaceMember.query.filter_by(user_id=requester_id, workspace_id=workspace.id).first()
    if org_member is None and ws_member is None:
        raise ForbiddenError("You are not a member of this workspace or organization")
    org_authority = organization.owner_id == requester_id or (
        org_member is not None and org_member.role == Role.OWNER.value
    )
    return org_authority, ws_member


def require_workspace_manager(requester_id: int, workspace: Workspace, new_role: str | None = None) -> None:
    org_authority, ws_member = _workspace_authority(requester_id, workspace)
    if org_authority:
        return
    if ws_member is None or ws_member.role not in ELEVATED_ROLES:
        raise ForbiddenError("Only organization owners or workspace managers can manage workspace members")
    if ws_member.role == Role.MANAGER.value and new_role == Role.OWNER.value:
        raise ForbiddenError("Managers cannot grant the OWNER role")


def require_workspace_member_removal(requester_id: int, member: WorkspaceMember) -> None:
    if member.user_id == requester_id:
        return
    require_workspace_manager(requester_id, member.workspace)


def require_project_manager(requester_id: int, project: Project, new_role: str | None = None) -> None:
    workspace = project.workspace
    if is_super_admin(requester_id):
        return
    org_member = _org_membership(requester_id, workspace.organization_id)
    ws_member = WorkspaceMember.query.filter_by(user_id=requester_id, workspace_id=workspace.id).first()
    pr_member = ProjectMember.query.filter_by(user_id=requester_id, project_id=project.id).first()
    if org_member is None and ws_member is None and pr_member is None:
        raise ForbiddenError("You are not a member of this project, workspace, or organization")
    if workspace.organization.owner_id == requester_id:
        return
    if org_member is not None and org_member.role == Role.OWNER.value:
        return
    if ws_member is not None and ws_member.role in ELEVATED_ROLES:
        return
    if pr_member is not None and pr_member.role in ELEVATED_ROLES:
        if pr_member.role == Role.MANAGER.value and new_role == Role.OWNER.value:
            raise ForbiddenError("Managers cannot grant the OWNER role")
        return
    raise ForbiddenError("Only organization owners or workspace/project managers can manage project members")


def require_project_member_removal(requester_id: int, member: ProjectMember) -> None:
    if member.user_id == requester_id:
        return
    require_project_manager(requester_id, member.project)


def require_entity_viewer(requester_id: int, organization_id: int, *memberships) -> None:
    """Listing needs membership at the entity's own level or its organization."""
    if is_super_admin(requester_id):
        return
    if _org_membership(requester_id, organization_id) is not None:
        return
    if any(m is not None for m in memberships):
        return
    raise ForbiddenError("You are not a member of this organization")
