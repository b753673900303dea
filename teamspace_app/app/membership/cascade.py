"""Membership fan-out between hierarchy levels.

``propagate_role`` is the only place that decides which rows a membership change
touches below the changed level. It runs on the caller's session and never
commits, so the triggering write and its fan-out land in one transaction.

Rules:

=============  ======  ==========================================================
from level     mode    effect one level down
=============  ======  ==========================================================
organization   CREATE  elevated role: upsert the role in every workspace
organization   UPDATE  update existing workspace rows; elevated role also
                       creates the missing ones (promotion)
workspace      CREATE  elevated role: upsert the role in every project
workspace      UPDATE  upsert the role in every project
=============  ======  ==========================================================

The fan-out stops one level below the changed level.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from flask import current_app
from sqlalchemy.orm import Session
from ..models import ELEVATED_ROLES, Project, ProjectMember, Workspace, WorkspaceMember


class Level(str, enum.Enum):
    ORGANIZATION = "organization"
    WORKSPACE = "workspace"
    PROJECT = "project"


class Mode(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass
class CascadeReport:
    created: int = 0
    updated: int = 0


def _child_level(session: Session, level: Level, entity_id: int):
    """Return (member model, foreign key attribute name, child ids) one level below."""
    if level == Level.ORGANIZATION:
        ids = [row.id for row in session.query(Workspace.id).filter(Workspace.organization_id == entity_id)]
        return WorkspaceMember, "workspace_id", ids
    if level == Level.WORKSPACE:
        ids = [row.id for row in session.query(Project.id).filter(Project.workspace_id == entity_id)]
        return ProjectMember, "project_id", ids
    return None, None, []


def propagate_role(
    session: Session,
    user_id: int,
    level: Level,
    entity_id: int,
    role: str,
    mode: Mode,
    actor_id: int | None = None,
) -> CascadeReport:
    report = CascadeReport()
    model, fk, child_ids = _child_level(session, level, entity_id)
    if model is None or not child_ids:
        return report

    elevated = role in ELEVATED_ROLES
    if level == Level.ORGANIZATION:
        may_create = elevated
        may_update = elevated or mode == Mode.UPDATE
    else:
        may_create = may_update = elevated or mode == Mode.UPDATE
    if not may_update:
        return report

    column = getattr(model, fk)
    existing = {
        getattr(m, fk): m
        for m in session.query(model).filter(model.user_id == user_id, column.in_(child_ids))
    }
    for child_id in child_ids:
        member = existing.get(child_id)
        if member is not None:
            if member.role != role:
                member.role = role
                report.updated += 1
        elif may_create:
            session.add(model(user_id=user_id, role=role, created_by=actor_id, **{fk: child_id}))
            report.created += 1
    session.flush()

    if report.created or report.updated:
        current_app.logger.info(
            "cascade %s from %s#%s user=%s role=%s: created=%s updated=%s",
            mode.value, level.value, entity_id, user_id, role, report.created, report.updated,
        )
    return report


def remove_below(session: Session, user_id: int, level: Level, entity_id: int) -> int:
    """Delete the user's memberships underneath ``level``; the levels above are left alone."""
    if level == Level.ORGANIZATION:
        workspace_ids = [row.id for row in session.query(Workspace.id).filter(Workspace.organization_id == entity_id)]
    elif level == Level.WORKSPACE:
        workspace_ids = [entity_id]
    else:
        return 0
    project_ids = [row.id for row in session.query(Project.id).filter(Project.workspace_id.in_(workspace_ids))]

    removed = 0
    if project_ids:
        removed += (
            session.query(ProjectMember)
            .filter(ProjectMember.user_id == user_id, ProjectMember.project_id.in_(project_ids))
            .delete(synchronize_session="fetch")
        )
    # the workspace row itself is the caller's to delete
    if level == Level.ORGANIZATION and workspace_ids:
        removed += (
            session.query(WorkspaceMember)
            .filter(WorkspaceMember.user_id == user_id, WorkspaceMember.workspace_id.in_(workspace_ids))
            .delete(synchronize_session="fetch")
        )
    return removed
