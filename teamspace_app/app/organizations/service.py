from __future__ import annotations
import re
from flask import current_app
from ..errors import ForbiddenError, ValidationError
from ..membership import permissions
from ..membership.service import (
    find_by_user_and_organization,
    find_by_user_and_workspace,
    get_organization,
    get_workspace,
)
from ..models import (
    ELEVATED_ROLES,
    Organization,
    OrganizationMember,
    Project,
    ProjectMember,
    Role,
    Workspace,
    WorkspaceMember,
)
from ..utils.transaction import atomic


def slugify(name: str, fallback: str = "item") -> str:
    """Lowercase ASCII letters, digits and single hyphens."""
    s = (name or "").strip().lower()
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-{2,}", "-", s).strip("-")
    return s[:120] or fallback


def _unique_slug(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    i = 2
    while f"{base}-{i}" in taken:
        i += 1
    return f"{base}-{i}"


def _require_name(name) -> str:
    value = (name or "").strip()
    if not value:
        raise ValidationError("Name is required")
    return value


def create_organization(name: str, owner_id: int) -> Organization:
    name = _require_name(name)
    permissions.get_user(owner_id)
    base = slugify(name, "org")
    taken = {row.slug for row in Organization.query.filter(Organization.slug.like(f"{base}%"))}

    with atomic("Organization slug already taken") as session:
        organization = Organization(name=name, slug=_unique_slug(base, taken), owner_id=owner_id)
        session.add(organization)
        session.flush()
        session.add(
            OrganizationMember(
                user_id=owner_id, organization_id=organization.id, role=Role.OWNER.value, created_by=owner_id
            )
        )
    current_app.logger.info("organization %s (%s) created by user %s", organization.id, organization.slug, owner_id)
    return organization


def create_workspace(organization_id: int, name: str, creator_id: int) -> Workspace:
    name = _require_name(name)
    organization = get_organization(organization_id)
    permissions.require_org_manager(creator_id, organization, "create workspaces")
    base = slugify(name, "workspace")
    taken = {row.slug for row in Workspace.query.filter_by(organization_id=organization.id)}

    with atomic("Workspace slug already taken") as session:
        workspace = Workspace(organization_id=organization.id, name=name, slug=_unique_slug(base, taken))
        session.add(workspace)
        session.flush()
        # creator and organization owner start as workspace owners; elevated org members keep their role
        seeds = {}
        for user_id in (creator_id, organization.owner_id):
            if find_by_user_and_organization(user_id, organization.id) is not None:
                seeds[user_id] = Role.OWNER.value
        elevated = OrganizationMember.query.filter(
            OrganizationMember.organization_id == organization.id,
            OrganizationMember.role.in_(ELEVATED_ROLES),
        ).order_by(OrganizationMember.id)
        for org_member in elevated:
            seeds.setdefault(org_member.user_id, org_member.role)
        for user_id, role in seeds.items():
            session.add(
                WorkspaceMember(user_id=user_id, workspace_id=workspace.id, role=role, created_by=creator_id)
            )
    current_app.logger.info("workspace %s created in organization %s", workspace.id, organization.id)
    return workspace


def _require_project_creator(creator_id: int, workspace: Workspace) -> WorkspaceMember | None:
    ws_member = find_by_user_and_workspace(creator_id, workspace.id)
    if permissions.is_super_admin(creator_id):
        return ws_member
    organization = workspace.organization
    org_member = find_by_user_and_organization(creator_id, organization.id)
    if organization.owner_id == creator_id or (org_member is not None and org_member.role in ELEVATED_ROLES):
        return ws_member
    if ws_member is not None and ws_member.role in ELEVATED_ROLES:
        return ws_member
    raise ForbiddenError("Only organization or workspace managers can create projects")


def create_project(workspace_id: int, name: str, creator_id: int) -> Project:
    name = _require_name(name)
    workspace = get_workspace(workspace_id)
    ws_member = _require_project_creator(creator_id, workspace)
    base = slugify(name, "project")
    taken = {row.slug for row in Project.query.filter_by(workspace_id=workspace.id)}

    with atomic("Project slug already taken") as session:
        project = Project(workspace_id=workspace.id, name=name, slug=_unique_slug(base, taken))
        session.add(project)
        session.flush()
        if ws_member is not None:
            session.add(
                ProjectMember(user_id=creator_id, project_id=project.id, role=Role.OWNER.value, created_by=creator_id)
            )
    current_app.logger.info("project %s created in workspace %s", project.id, workspace.id)
    return project
