from __future__ import annotations
import enum
from datetime import datetime, timezone
from flask_login import UserMixin
from sqlalchemy.orm import validates
from . import db


def utcnow() -> datetime:
    # naive UTC, matching what the store hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


# Roles whose grant fans out to the level below
ELEVATED_ROLES = (Role.OWNER.value, Role.MANAGER.value)

# Listing order: owners first
ROLE_RANK = {Role.OWNER.value: 0, Role.MANAGER.value: 1, Role.MEMBER.value: 2, Role.VIEWER.value: 3}


class InvitationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class User(UserMixin, db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    # platform-wide role: USER or SUPER_ADMIN
    role = db.Column(db.String(20), nullable=False, default="USER")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def is_super_admin(self) -> bool:
        return self.role == "SUPER_ADMIN"

    @property
    def display_name(self) -> str:
        return (self.full_name or "").strip() or self.email


class Organization(db.Model):
    __tablename__ = "organizations"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(140), unique=True, nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    owner = db.relationship("User")
    workspaces = db.relationship("Workspace", back_populates="organization", order_by="Workspace.id")


class Workspace(db.Model):
    __tablename__ = "workspaces"
    __table_args__ = (db.UniqueConstraint("organization_id", "slug", name="uq_workspaces_org_slug"),)
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(140), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    organization = db.relationship("Organization", back_populates="workspaces")
    projects = db.relationship("Project", back_populates="workspace", order_by="Project.id")


class Project(db.Model):
    __tablename__ = "projects"
    __table_args__ = (db.UniqueConstraint("workspace_id", "slug", name="uq_projects_workspace_slug"),)
    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(140), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    workspace = db.relationship("Workspace", back_populates="projects")


class OrganizationMember(db.Model):
    __tablename__ = "organization_members"
    __table_args__ = (db.UniqueConstraint("user_id", "organization_id", name="uq_organization_members_user_org"),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.MEMBER.value)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    organization = db.relationship("Organization")


class WorkspaceMember(db.Model):
    __tablename__ = "workspace_members"
    __table_args__ = (db.UniqueConstraint("user_id", "workspace_id", name="uq_workspace_members_user_workspace"),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.MEMBER.value)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    workspace = db.relationship("Workspace")


class ProjectMember(db.Model):
    __tablename__ = "project_members"
    __table_args__ = (db.UniqueConstraint("user_id", "project_id", name="uq_project_members_user_project"),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.MEMBER.value)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    project = db.relationship("Project")


class Invitation(db.Model):
    __tablename__ = "invitations"
    __table_args__ = (
        # exactly one target level
        db.CheckConstraint(
            "(CASE WHEN organization_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN workspace_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN project_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_invitations_single_target",
        ),
        # at most one pending invitation per (email, target); NULL target ids never collide
        db.Index(
            "uq_invitations_pending_org", "invitee_email", "organization_id", unique=True,
            postgresql_where=db.text("status = 'PENDING'"), sqlite_where=db.text("status = 'PENDING'"),
        ),
        db.Index(
            "uq_invitations_pending_workspace", "invitee_email", "workspace_id", unique=True,
            postgresql_where=db.text("status = 'PENDING'"), sqlite_where=db.text("status = 'PENDING'"),
        ),
        db.Index(
            "uq_invitations_pending_project", "invitee_email", "project_id", unique=True,
            postgresql_where=db.text("status = 'PENDING'"), sqlite_where=db.text("status = 'PENDING'"),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    inviter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    invitee_email = db.Column(db.String(255), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=True, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.MEMBER.value)
    # 32 random bytes, hex encoded
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=InvitationStatus.PENDING.value, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)

    inviter = db.relationship("User")
    organization = db.relationship("Organization")
    workspace = db.relationship("Workspace")
    project = db.relationship("Project")

    @property
    def is_expired(self) -> bool:
        return self.expires_at < utcnow()

    @property
    def is_valid(self) -> bool:
        return self.status == InvitationStatus.PENDING.value and not self.is_expired
