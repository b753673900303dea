"""JSON shapes for the API responses (camelCase keys)."""
from __future__ import annotations
from ..invitations.targets import Target
from ..models import Invitation, OrganizationMember, ProjectMember, User, WorkspaceMember


def _iso(value):
    return value.isoformat() if value is not None else None


def user_summary(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "fullName": user.full_name}


def entity_summary(entity, entity_type: str) -> dict:
    return {"type": entity_type, "id": entity.id, "name": entity.name, "slug": entity.slug}


def member(row) -> dict:
    data = {
        "id": row.id,
        "userId": row.user_id,
        "role": row.role,
        "joinedAt": _iso(row.joined_at),
        "createdBy": row.created_by,
        "user": user_summary(row.user),
    }
    if isinstance(row, OrganizationMember):
        data["organizationId"] = row.organization_id
        data["organization"] = entity_summary(row.organization, "organization")
    elif isinstance(row, WorkspaceMember):
        data["workspaceId"] = row.workspace_id
        data["workspace"] = entity_summary(row.workspace, "workspace")
    elif isinstance(row, ProjectMember):
        data["projectId"] = row.project_id
        data["project"] = entity_summary(row.project, "project")
    return data


def invitation(row: Invitation, include_token: bool = False) -> dict:
    target = Target.of(row)
    entity = getattr(row, target.type.value)
    data = {
        "id": row.id,
        "inviteeEmail": row.invitee_email,
        "role": row.role,
        "status": row.status,
        "organizationId": row.organization_id,
        "workspaceId": row.workspace_id,
        "projectId": row.project_id,
        "expiresAt": _iso(row.expires_at),
        "createdAt": _iso(row.created_at),
        "acceptedAt": _iso(row.accepted_at),
        "inviter": user_summary(row.inviter),
        "entity": entity_summary(entity, target.type.value),
    }
    if include_token:
        data["token"] = row.token
    return data
