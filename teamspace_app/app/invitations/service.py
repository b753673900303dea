"""Invitation lifecycle: issue, verify, accept, decline, resend, expire.

Every state change commits before any mail goes out. Delivery failures are
captured in a ``DeliveryReport`` on the result and never undo the change.
"""
from __future__ import annotations
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from flask import current_app
from .. import db
from ..errors import ConflictError, NotFoundError, ServiceUnavailableError, ValidationError
from ..membership import permissions
from ..membership.service import (
    add_project_member,
    add_workspace_member,
    ensure_organization_member,
    ensure_project_member,
    ensure_workspace_member,
    find_by_user_and_organization,
    find_by_user_and_project,
    find_by_user_and_workspace,
    parse_role,
)
from ..models import Invitation, InvitationStatus, Role, User, utcnow
from ..notifications import mailer
from ..utils.pg_lock import advisory_xact_lock
from ..utils.transaction import atomic
from .targets import EntityType, ResolvedTarget, Target, resolve

PENDING = InvitationStatus.PENDING.value


@dataclass
class DeliveryReport:
    sent: bool = False
    error: str | None = None


@dataclass
class InvitationResult:
    invitation: Invitation
    delivery: DeliveryReport
    kind: str = "invitation"


@dataclass
class DirectAddResult:
    member: object
    resolved: ResolvedTarget
    user: User
    delivery: DeliveryReport
    added_to_workspace: bool = False
    kind: str = "direct_add"

    @property
    def message(self) -> str:
        return (
            f"User {self.user.email} was added directly to the {self.resolved.target.type.value} "
            "as they are already an organization member"
        )


@dataclass
class AcceptResult:
    invitation: Invitation
    resolved: ResolvedTarget
    created: list = field(default_factory=list)
    message: str = "Invitation accepted successfully"


@dataclass
class ResendResult:
    invitation: Invitation
    delivery: DeliveryReport

    @property
    def message(self) -> str:
        if self.delivery.sent:
            return "Invitation resent successfully"
        return "Invitation updated successfully, but email delivery failed"


@dataclass
class VerifyResult:
    invitation: Invitation
    resolved: ResolvedTarget
    is_expired: bool
    is_valid: bool
    invitee_exists: bool

    @property
    def can_respond(self) -> bool:
        return self.is_valid


def normalize_email(email) -> str:
    value = (email or "").strip().lower()
    if "@" not in value:
        raise ValidationError("A valid invitee email is required")
    return value


def new_token() -> str:
    return secrets.token_hex(32)


def _expiry():
    return utcnow() + timedelta(days=int(current_app.config.get("INVITATION_EXPIRY_DAYS", 7)))


def _frontend_url(path: str) -> str:
    return f"{current_app.config.get('FRONTEND_URL', '').rstrip('/')}{path}"


def invitation_url(token: str) -> str:
    return _frontend_url(f"/invite?token={token}")


def _lock_name(email: str, target: Target) -> str:
    return f"invitation:{email}:{target.type.value}:{target.id}"


def _get_invitation(invitation_id: int) -> Invitation:
    invitation = db.session.get(Invitation, invitation_id)
    if invitation is None:
        raise NotFoundError("Invitation not found")
    return invitation


def _get_by_token(token: str) -> Invitation:
    invitation = Invitation.query.filter_by(token=token).first()
    if invitation is None:
        raise NotFoundError("Invitation not found")
    return invitation


def _require_target_manager(requester_id: int, resolved: ResolvedTarget, role: str | None = None) -> None:
    kind = resolved.target.type
    if kind == EntityType.ORGANIZATION:
        permissions.require_org_manager(requester_id, resolved.entity, "invite members")
    elif kind == EntityType.WORKSPACE:
        permissions.require_workspace_manager(requester_id, resolved.entity, role)
    else:
        permissions.require_project_manager(requester_id, resolved.entity, role)


def _existing_membership(user_id: int, resolved: ResolvedTarget):
    kind = resolved.target.type
    if kind == EntityType.ORGANIZATION:
        return find_by_user_and_organization(user_id, resolved.entity.id)
    if kind == EntityType.WORKSPACE:
        return find_by_user_and_workspace(user_id, resolved.entity.id)
    return find_by_user_and_project(user_id, resolved.entity.id)


def _pending_for(email: str, target: Target, exclude_id: int | None = None):
    query = Invitation.query.filter(
        Invitation.invitee_email == email,
        target.column == target.id,
        Invitation.status == PENDING,
    )
    if exclude_id is not None:
        query = query.filter(Invitation.id != exclude_id)
    return query.first()


def _dispatch(send, to_address: str, **context) -> DeliveryReport:
    try:
        send(to_address, **context)
    except mailer.DeliveryError as exc:
        current_app.logger.exception("notification to %s not delivered", to_address)
        return DeliveryReport(sent=False, error=str(exc))
    return DeliveryReport(sent=True)


def _send_invitation(invitation: Invitation) -> DeliveryReport:
    resolved = resolve(Target.of(invitation))
    return _dispatch(
        mailer.send_invitation_email,
        invitation.invitee_email,
        inviter_name=invitation.inviter.display_name if invitation.inviter else "A team member",
        entity_name=resolved.name,
        entity_type=resolved.target.type.value,
        role=invitation.role,
        invitation_url=invitation_url(invitation.token),
        expires_at=invitation.expires_at.strftime("%Y-%m-%d"),
    )


def create_invitation(invitee_email: str, target: Target, role, inviter_id: int):
    """Invite ``invitee_email`` to ``target``.

    Existing organization members invited to a workspace or project are added
    straight away and get a ``DirectAddResult``; everyone else gets a pending
    invitation and an ``InvitationResult``.
    """
    if not mailer.is_mail_configured() and current_app.config.get("APP_ENV") != "development":
        raise ServiceUnavailableError("Email service is not configured. Cannot send invitations.")

    email = normalize_email(invitee_email)
    role = parse_role(role)
    resolved = resolve(target)
    inviter = permissions.get_user(inviter_id)
    _require_target_manager(inviter_id, resolved, role)

    invitee = User.query.filter_by(email=email).first()
    if invitee is not None and _existing_membership(invitee.id, resolved) is not None:
        raise ValidationError(f"User is already a member of this {target.type.value}")

    if (
        invitee is not None
        and target.type != EntityType.ORGANIZATION
        and find_by_user_and_organization(invitee.id, resolved.organization.id) is not None
    ):
        return _add_directly(invitee, resolved, role, inviter)

    with atomic("Invitation already exists for this email") as session:
        advisory_xact_lock(session, _lock_name(email, target))
        if _pending_for(email, target) is not None:
            raise ValidationError("Invitation already exists for this email")
        invitation = Invitation(
            inviter_id=inviter_id,
            invitee_email=email,
            role=role,
            token=new_token(),
            status=PENDING,
            expires_at=_expiry(),
            **{target.field: target.id},
        )
        session.add(invitation)
        session.flush()

    current_app.logger.info(
        "invitation %s created: %s -> %s#%s as %s", invitation.id, email, target.type.value, target.id, role
    )
    return InvitationResult(invitation=invitation, delivery=_send_invitation(invitation))


def _add_directly(user: User, resolved: ResolvedTarget, role: str, inviter: User) -> DirectAddResult:
    added_to_workspace = False
    with atomic(f"User is already a member of this {resolved.target.type.value}") as session:
        if resolved.target.type == EntityType.WORKSPACE:
            member = add_workspace_member(session, user.id, resolved.entity, role, inviter.id)
        else:
            _, added_to_workspace = ensure_workspace_member(
                session, user.id, resolved.workspace, Role.MEMBER.value, inviter.id
            )
            member = add_project_member(session, user.id, resolved.entity, role, inviter.id)

    kind = resolved.target.type.value
    current_app.logger.info(
        "direct add: user=%s -> %s#%s as %s (workspace back-filled: %s)",
        user.id, kind, resolved.entity.id, role, added_to_workspace,
    )
    delivery = _dispatch(
        mailer.send_direct_add_notification_email,
        user.email,
        inviter_name=inviter.display_name,
        entity_name=resolved.name,
        entity_type=kind,
        role=role,
        entity_url=_frontend_url(f"/{kind}s/{resolved.entity.slug}"),
        organization_name=resolved.organization.name,
    )
    return DirectAddResult(
        member=member, resolved=resolved, user=user, delivery=delivery, added_to_workspace=added_to_workspace
    )


def _materialize(session, invitation: Invitation, resolved: ResolvedTarget, user_id: int) -> list:
    """Create whatever memberships the invitation grants, top level first."""
    inviter_id = invitation.inviter_id
    kind = resolved.target.type
    created = []

    org_role = invitation.role if kind == EntityType.ORGANIZATION else Role.MEMBER.value
    member, was_created = ensure_organization_member(session, user_id, resolved.organization, org_role, inviter_id)
    if was_created:
        created.append(member)
    if kind == EntityType.ORGANIZATION:
        return created

    ws_role = invitation.role if kind == EntityType.WORKSPACE else Role.MEMBER.value
    member, was_created = ensure_workspace_member(session, user_id, resolved.workspace, ws_role, inviter_id)
    if was_created:
        created.append(member)
    if kind == EntityType.WORKSPACE:
        return created

    member, was_created = ensure_project_member(session, user_id, resolved.entity, invitation.role, inviter_id)
    if was_created:
        created.append(member)
    return created


def accept_invitation(token: str, user_id: int) -> AcceptResult:
    user = permissions.get_user(user_id)
    expired = False
    with atomic() as session:
        invitation = session.query(Invitation).filter_by(token=token).with_for_update().first()
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.status == InvitationStatus.EXPIRED.value:
            raise ValidationError("Invitation has expired")
        if invitation.status != PENDING:
            raise ValidationError("Invitation has already been processed")
        if invitation.is_expired:
            # committed below; the caller still gets an error
            invitation.status = InvitationStatus.EXPIRED.value
            expired = True
        else:
            if user.email.lower() != invitation.invitee_email.lower():
                raise ValidationError("Invitation email does not match user email")
            resolved = resolve(Target.of(invitation))
            created = _materialize(session, invitation, resolved, user.id)
            invitation.status = InvitationStatus.ACCEPTED.value
            invitation.accepted_at = utcnow()

    if expired:
        current_app.logger.info("invitation %s expired on accept", invitation.id)
        raise ValidationError("Invitation has expired")

    current_app.logger.info(
        "invitation %s accepted by user %s (%s memberships created)", invitation.id, user.id, len(created)
    )
    return AcceptResult(invitation=invitation, resolved=resolved, created=created)


def decline_invitation(token: str, user_id: int | None = None) -> Invitation:
    invitation = _get_by_token(token)
    if invitation.status != PENDING:
        raise ValidationError("Invitation has already been processed")
    if user_id is not None:
        user = permissions.get_user(user_id)
        if user.email.lower() != invitation.invitee_email.lower():
            raise ValidationError("Invitation email does not match user email")
    with atomic():
        invitation.status = InvitationStatus.DECLINED.value
    current_app.logger.info("invitation %s declined", invitation.id)
    return invitation


def resend_invitation(invitation_id: int, requester_id: int) -> ResendResult:
    invitation = _get_invitation(invitation_id)
    target = Target.of(invitation)
    _require_target_manager(requester_id, resolve(target), invitation.role)
    if invitation.status in (InvitationStatus.DECLINED.value, InvitationStatus.ACCEPTED.value):
        raise ValidationError(f"Cannot resend {invitation.status.lower()} invitation")

    with atomic("A pending invitation already exists for this email") as session:
        advisory_xact_lock(session, _lock_name(invitation.invitee_email, target))
        if _pending_for(invitation.invitee_email, target, exclude_id=invitation.id) is not None:
            raise ConflictError("A pending invitation already exists for this email")
        invitation.token = new_token()
        invitation.expires_at = _expiry()
        invitation.status = PENDING
        invitation.inviter_id = requester_id

    current_app.logger.info("invitation %s reissued by user %s", invitation.id, requester_id)
    return ResendResult(invitation=invitation, delivery=_send_invitation(invitation))


def delete_invitation(invitation_id: int, requester_id: int | None = None) -> None:
    invitation = _get_invitation(invitation_id)
    if requester_id is not None:
        _require_target_manager(requester_id, resolve(Target.of(invitation)))
    with atomic() as session:
        session.delete(invitation)
    current_app.logger.info("invitation %s deleted", invitation_id)


def expire_pending(target: Target) -> int:
    """Flip the target's overdue PENDING invitations to EXPIRED; flush only."""
    now = utcnow()
    return (
        Invitation.query.filter(
            target.column == target.id,
            Invitation.status == PENDING,
            Invitation.expires_at < now,
        )
        .update({"status": InvitationStatus.EXPIRED.value, "updated_at": now}, synchronize_session=False)
    )


def get_entity_invitations(target: Target, requester_id: int | None = None) -> list[Invitation]:
    resolved = resolve(target)
    if requester_id is not None:
        _require_entity_viewer(requester_id, resolved)

    with atomic():
        swept = expire_pending(target)
    if swept:
        current_app.logger.info("expired %s invitations for %s#%s", swept, target.type.value, target.id)

    return (
        Invitation.query.filter(
            target.column == target.id,
            Invitation.status.in_(
                [PENDING, InvitationStatus.DECLINED.value, InvitationStatus.EXPIRED.value]
            ),
        )
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        .all()
    )


def _require_entity_viewer(requester_id: int, resolved: ResolvedTarget) -> None:
    kind = resolved.target.type
    if kind == EntityType.ORGANIZATION:
        permissions.require_org_member(requester_id, resolved.organization.id)
        return
    memberships = [find_by_user_and_workspace(requester_id, resolved.workspace.id)]
    if kind == EntityType.PROJECT:
        memberships.append(find_by_user_and_project(requester_id, resolved.entity.id))
    permissions.require_entity_viewer(requester_id, resolved.organization.id, *memberships)


def verify_invitation(token: str) -> VerifyResult:
    invitation = _get_by_token(token)
    is_expired = invitation.is_expired
    return VerifyResult(
        invitation=invitation,
        resolved=resolve(Target.of(invitation)),
        is_expired=is_expired,
        is_valid=invitation.status == PENDING and not is_expired,
        invitee_exists=User.query.filter_by(email=invitation.invitee_email).first() is not None,
    )


def get_user_invitations(email: str) -> list[Invitation]:
    return (
        Invitation.query.filter(
            Invitation.invitee_email == normalize_email(email),
            Invitation.status == PENDING,
            Invitation.expires_at > utcnow(),
        )
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        .all()
    )
