"""Invitation targets: exactly one of organization, workspace or project."""
from __future__ import annotations
import enum
from dataclasses import dataclass
from .. import db
from ..errors import NotFoundError, ValidationError
from ..models import Invitation, Organization, Project, Workspace


class EntityType(str, enum.Enum):
    ORGANIZATION = "organization"
    WORKSPACE = "workspace"
    PROJECT = "project"


_MODELS = {
    EntityType.ORGANIZATION: Organization,
    EntityType.WORKSPACE: Workspace,
    EntityType.PROJECT: Project,
}


@dataclass(frozen=True)
class Target:
    type: EntityType
    id: int

    @classmethod
    def from_ids(cls, organization_id=None, workspace_id=None, project_id=None) -> "Target":
        given = [
            (entity_type, value)
            for entity_type, value in (
                (EntityType.ORGANIZATION, organization_id),
                (EntityType.WORKSPACE, workspace_id),
                (EntityType.PROJECT, project_id),
            )
            if value is not None
        ]
        if len(given) != 1:
            raise ValidationError("Must specify exactly one of: organizationId, workspaceId, or projectId")
        return cls.parse(*given[0])

    @classmethod
    def parse(cls, entity_type, entity_id) -> "Target":
        try:
            kind = EntityType(getattr(entity_type, "value", entity_type))
        except ValueError:
            raise ValidationError(f"Invalid entity type: {entity_type}") from None
        try:
            return cls(kind, int(entity_id))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {kind.value} id: {entity_id}") from None

    @classmethod
    def of(cls, invitation: Invitation) -> "Target":
        return cls.from_ids(invitation.organization_id, invitation.workspace_id, invitation.project_id)

    @property
    def column(self):
        """The Invitation column holding this target's id."""
        return getattr(Invitation, self.field)

    @property
    def field(self) -> str:
        return f"{self.type.value}_id"


@dataclass
class ResolvedTarget:
    target: Target
    entity: Organization | Workspace | Project
    organization: Organization

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def workspace(self) -> Workspace | None:
        if self.target.type == EntityType.WORKSPACE:
            return self.entity
        if self.target.type == EntityType.PROJECT:
            return self.entity.workspace
        return None


def resolve(target: Target) -> ResolvedTarget:
    """Load the target entity and walk up to its owning organization."""
    entity = db.session.get(_MODELS[target.type], target.id)
    if entity is None:
        raise NotFoundError(f"{target.type.value.capitalize()} not found")
    if target.type == EntityType.ORGANIZATION:
        organization = entity
    elif target.type == EntityType.WORKSPACE:
        organization = entity.organization
    else:
        organization = entity.workspace.organization
    return ResolvedTarget(target, entity, organization)
