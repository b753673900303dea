from datetime import timedelta
import pytest
from teamspace_app.app import db
from teamspace_app.app.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from teamspace_app.app.invitations import service
from teamspace_app.app.invitations.targets import EntityType, Target
from teamspace_app.app.membership import service as members
from teamspace_app.app.models import Invitation, OrganizationMember, ProjectMember, WorkspaceMember, utcnow
from teamspace_app.app.utils.transaction import atomic


def invite(hierarchy, email, target, role='MEMBER'):
    return service.create_invitation(email, target, role, hierarchy.owner.id)


def expire(invitation):
    invitation.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()


def test_target_requires_exactly_one_level():
    with pytest.raises(ValidationError):
        Target.from_ids()
    with pytest.raises(ValidationError):
        Target.from_ids(organization_id=1, workspace_id=2)
    assert Target.from_ids(project_id=3) == Target(EntityType.PROJECT, 3)
    with pytest.raises(ValidationError):
        Target.parse('team', 1)


def test_workspace_invitation_then_accept(hierarchy, make_user, outbox):
    result = invite(hierarchy, 'a@x.com', Target.parse('workspace', hierarchy.w1.id))

    inv = result.invitation
    assert result.kind == 'invitation'
    assert inv.status == 'PENDING'
    assert inv.workspace_id == hierarchy.w1.id
    assert inv.organization_id is None and inv.project_id is None
    assert len(inv.token) == 64
    assert abs((inv.expires_at - (utcnow() + timedelta(days=7))).total_seconds()) < 60
    assert result.delivery.sent is True
    assert outbox[0]['to'] == 'a@x.com'
    assert f'http://app.test/invite?token={inv.token}' in outbox[0]['body']

    u2 = make_user('a@x.com')
    accepted = service.accept_invitation(inv.token, u2.id)

    assert accepted.resolved.name == 'Design'
    org_member = members.find_by_user_and_organization(u2.id, hierarchy.org.id)
    ws_member = members.find_by_user_and_workspace(u2.id, hierarchy.w1.id)
    assert org_member.role == 'MEMBER'
    assert ws_member.role == 'MEMBER'
    assert ws_member.created_by == hierarchy.owner.id
    assert inv.status == 'ACCEPTED'
    assert inv.accepted_at is not None


def test_accepting_twice_is_rejected(hierarchy, make_user):
    inv = invite(hierarchy, 'a@x.com', Target.parse('organization', hierarchy.org.id)).invitation
    u2 = make_user('a@x.com')

    service.accept_invitation(inv.token, u2.id)
    with pytest.raises(ValidationError, match='already been processed'):
        service.accept_invitation(inv.token, u2.id)


def test_project_invitation_materializes_every_level(hierarchy, make_user):
    inv = invite(hierarchy, 'a@x.com', Target.parse('project', hierarchy.p1.id), role='MANAGER').invitation
    u2 = make_user('a@x.com')

    result = service.accept_invitation(inv.token, u2.id)

    assert len(result.created) == 3
    assert members.find_by_user_and_organization(u2.id, hierarchy.org.id).role == 'MEMBER'
    assert members.find_by_user_and_workspace(u2.id, hierarchy.w1.id).role == 'MEMBER'
    assert members.find_by_user_and_project(u2.id, hierarchy.p1.id).role == 'MANAGER'
    # plain workspace role: nothing leaks into the second workspace
    assert members.find_by_user_and_workspace(u2.id, hierarchy.w2.id) is None


def test_expired_invitation_is_swept_and_cannot_be_accepted(hierarchy, make_user):
    target = Target.parse('workspace', hierarchy.w1.id)
    inv = invite(hierarchy, 'a@x.com', target).invitation
    expire(inv)

    listed = service.get_entity_invitations(target)
    assert [i.id for i in listed] == [inv.id]
    db.session.expire_all()
    assert listed[0].status == 'EXPIRED'

    u2 = make_user('a@x.com')
    with pytest.raises(ValidationError, match='expired'):
        service.accept_invitation(inv.token, u2.id)


def test_accepting_past_expiry_marks_expired(hierarchy, make_user):
    inv = invite(hierarchy, 'a@x.com', Target.parse('organization', hierarchy.org.id)).invitation
    expire(inv)
    u2 = make_user('a@x.com')

    with pytest.raises(ValidationError, match='expired'):
        service.accept_invitation(inv.token, u2.id)

    db.session.expire_all()
    assert db.session.get(Invitation, inv.id).status == 'EXPIRED'
    assert members.find_by_user_and_organization(u2.id, hierarchy.org.id) is None


def test_accept_requires_matching_email(hierarchy, make_user):
    inv = invite(hierarchy, 'a@x.com', Target.parse('organization', hierarchy.org.id)).invitation
    other = make_user('someone-else@x.com')

    with pytest.raises(ValidationError, match='does not match'):
        service.accept_invitation(inv.token, other.id)
    assert inv.status == 'PENDING'


def test_existing_org_member_is_added_directly(hierarchy, make_user, outbox):
    u2 = make_user('u2@x.com', 'Uma Two')
    members.create_organization_member(u2.id, hierarchy.org.id, 'MEMBER', hierarchy.owner.id)

    result = invite(hierarchy, 'u2@x.com', Target.parse('workspace', hierarchy.w1.id), role='MANAGER')

    assert result.kind == 'direct_add'
    assert result.added_to_workspace is False
    assert members.find_by_user_and_workspace(u2.id, hierarchy.w1.id).role == 'MANAGER'
    # workspace manager role still fans out to the workspace's projects
    assert members.find_by_user_and_project(u2.id, hierarchy.p1.id).role == 'MANAGER'
    assert Invitation.query.count() == 0
    assert result.delivery.sent is True
    assert outbox[0]['subject'] == 'You were added to Design'
    assert 'http://app.test/workspaces/design' in outbox[0]['body']


def test_direct_add_to_project_backfills_workspace(hierarchy, make_user):
    u2 = make_user('u2@x.com')
    members.create_organization_member(u2.id, hierarchy.org.id, 'MEMBER', hierarchy.owner.id)

    result = invite(hierarchy, 'u2@x.com', Target.parse('project', hierarchy.p1.id), role='VIEWER')

    assert result.kind == 'direct_add'
    assert result.added_to_workspace is True
    assert members.find_by_user_and_workspace(u2.id, hierarchy.w1.id).role == 'MEMBER'
    assert members.find_by_user_and_project(u2.id, hierarchy.p1.id).role == 'VIEWER'
    assert Invitation.query.count() == 0


def test_inviting_an_existing_member_is_rejected(hierarchy):
    with pytest.raises(ValidationError, match='already a member'):
        invite(hierarchy, 'owner@x.com', Target.parse('organization', hierarchy.org.id))


def test_duplicate_pending_invitation_is_rejected(hierarchy):
    target = Target.parse('project', hierarchy.p1.id)
    invite(hierarchy, 'b@x.com', target)

    with pytest.raises(ValidationError, match='already exists'):
        invite(hierarchy, ' B@X.com ', target)
    assert Invitation.query.count() == 1


def test_store_rejects_second_pending_row(hierarchy):
    inv = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id)).invitation

    with pytest.raises(ConflictError):
        with atomic('Invitation already exists for this email') as session:
            session.add(Invitation(
                inviter_id=hierarchy.owner.id,
                invitee_email='b@x.com',
                organization_id=hierarchy.org.id,
                role='MEMBER',
                token='f' * 64,
                status='PENDING',
                expires_at=inv.expires_at,
            ))
    assert Invitation.query.count() == 1


def test_email_is_normalized(hierarchy):
    inv = invite(hierarchy, '  Mixed.Case@X.com ', Target.parse('organization', hierarchy.org.id)).invitation
    assert inv.invitee_email == 'mixed.case@x.com'


def test_resend_reissues_token_and_expiry(hierarchy, make_user):
    inv = invite(hierarchy, 'b@x.com', Target.parse('project', hierarchy.p1.id)).invitation
    old_token, old_expiry, inv_id = inv.token, inv.expires_at, inv.id

    manager = make_user('m@x.com')
    members.create_organization_member(manager.id, hierarchy.org.id, 'MANAGER', hierarchy.owner.id)
    result = service.resend_invitation(inv_id, manager.id)

    assert result.invitation.id == inv_id
    assert result.invitation.token != old_token
    assert result.invitation.expires_at >= old_expiry
    assert result.invitation.status == 'PENDING'
    assert result.invitation.inviter_id == manager.id
    assert result.message == 'Invitation resent successfully'
    assert Invitation.query.count() == 1


def test_resend_revives_expired_but_not_terminal_invitations(hierarchy, make_user):
    target = Target.parse('organization', hierarchy.org.id)
    inv = invite(hierarchy, 'b@x.com', target).invitation
    expire(inv)
    service.get_entity_invitations(target)

    assert service.resend_invitation(inv.id, hierarchy.owner.id).invitation.status == 'PENDING'

    service.decline_invitation(inv.token)
    with pytest.raises(ValidationError, match='declined'):
        service.resend_invitation(inv.id, hierarchy.owner.id)

    accepted = invite(hierarchy, 'c@x.com', target).invitation
    service.accept_invitation(accepted.token, make_user('c@x.com').id)
    with pytest.raises(ValidationError, match='accepted'):
        service.resend_invitation(accepted.id, hierarchy.owner.id)


def test_resend_conflicts_with_newer_pending_invitation(hierarchy):
    target = Target.parse('organization', hierarchy.org.id)
    old = invite(hierarchy, 'b@x.com', target).invitation
    expire(old)
    service.get_entity_invitations(target)
    invite(hierarchy, 'b@x.com', target)

    with pytest.raises(ConflictError):
        service.resend_invitation(old.id, hierarchy.owner.id)


def test_delivery_failure_keeps_the_invitation(hierarchy, monkeypatch):
    monkeypatch.setattr('teamspace_app.app.notifications.mailer.send_email', lambda *a, **kw: False)

    result = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id))

    assert result.delivery.sent is False
    assert 'failed' in result.delivery.error
    assert db.session.get(Invitation, result.invitation.id).status == 'PENDING'


def test_resend_reports_delivery_failure(hierarchy, monkeypatch):
    inv = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id)).invitation
    monkeypatch.setattr('teamspace_app.app.notifications.mailer.send_email', lambda *a, **kw: False)

    result = service.resend_invitation(inv.id, hierarchy.owner.id)

    assert result.delivery.sent is False
    assert result.message == 'Invitation updated successfully, but email delivery failed'


def test_unconfigured_mail_blocks_invitations_outside_development(app, hierarchy):
    app.config['MAIL_SERVER'] = ''
    target = Target.parse('organization', hierarchy.org.id)

    with pytest.raises(ServiceUnavailableError):
        invite(hierarchy, 'b@x.com', target)

    app.config['APP_ENV'] = 'development'
    result = invite(hierarchy, 'b@x.com', target)
    assert result.delivery.sent is False
    assert result.delivery.error == 'Email service is not configured'


def test_only_managers_can_invite(hierarchy, make_user):
    u2 = make_user('u2@x.com')
    members.create_organization_member(u2.id, hierarchy.org.id, 'MEMBER', hierarchy.owner.id)

    with pytest.raises(ForbiddenError):
        service.create_invitation('b@x.com', Target.parse('organization', hierarchy.org.id), 'MEMBER', u2.id)


def test_unknown_target_is_not_found(hierarchy):
    with pytest.raises(NotFoundError):
        invite(hierarchy, 'b@x.com', Target.parse('workspace', 9999))


def test_verify_does_not_mutate(hierarchy, make_user):
    inv = invite(hierarchy, 'b@x.com', Target.parse('workspace', hierarchy.w1.id)).invitation

    result = service.verify_invitation(inv.token)
    assert result.is_valid and result.can_respond
    assert result.is_expired is False
    assert result.invitee_exists is False
    assert result.resolved.name == 'Design'

    expire(inv)
    make_user('b@x.com')
    result = service.verify_invitation(inv.token)
    assert result.is_expired is True
    assert result.can_respond is False
    assert result.invitee_exists is True
    assert db.session.get(Invitation, inv.id).status == 'PENDING'

    with pytest.raises(NotFoundError):
        service.verify_invitation('nope')


def test_user_invitations_are_pending_and_newest_first(hierarchy):
    first = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id)).invitation
    second = invite(hierarchy, 'b@x.com', Target.parse('workspace', hierarchy.w2.id)).invitation
    stale = invite(hierarchy, 'b@x.com', Target.parse('project', hierarchy.p1.id)).invitation
    expire(stale)

    ids = [i.id for i in service.get_user_invitations('B@x.com')]
    assert ids == [second.id, first.id]


def test_entity_listing_hides_accepted(hierarchy, make_user):
    target = Target.parse('organization', hierarchy.org.id)
    accepted = invite(hierarchy, 'a@x.com', target).invitation
    service.accept_invitation(accepted.token, make_user('a@x.com').id)
    declined = invite(hierarchy, 'd@x.com', target).invitation
    service.decline_invitation(declined.token)
    pending = invite(hierarchy, 'p@x.com', target).invitation

    ids = [i.id for i in service.get_entity_invitations(target, hierarchy.owner.id)]
    assert ids == [pending.id, declined.id]


def test_decline_is_terminal(hierarchy):
    inv = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id)).invitation

    assert service.decline_invitation(inv.token).status == 'DECLINED'
    with pytest.raises(ValidationError):
        service.decline_invitation(inv.token)
    assert WorkspaceMember.query.count() == 2 and ProjectMember.query.count() == 1


def test_delete_invitation(hierarchy):
    inv = invite(hierarchy, 'b@x.com', Target.parse('organization', hierarchy.org.id)).invitation

    service.delete_invitation(inv.id, hierarchy.owner.id)

    assert Invitation.query.count() == 0
    with pytest.raises(NotFoundError):
        service.delete_invitation(inv.id)


def test_advisory_lock_is_a_noop_off_postgres(app):
    from teamspace_app.app.utils.pg_lock import _lock_key, advisory_xact_lock

    key = _lock_key('invitation:b@x.com:organization:1')
    assert key == _lock_key('invitation:b@x.com:organization:1')
    assert -2 ** 63 <= key < 2 ** 63
    assert advisory_xact_lock(db.session, 'invitation:b@x.com:organization:1') is False


def test_failed_accept_leaves_no_partial_membership(hierarchy, make_user, monkeypatch):
    inv = invite(hierarchy, 'a@x.com', Target.parse('project', hierarchy.p1.id)).invitation
    u2 = make_user('a@x.com')

    def broken(*args, **kwargs):
        raise RuntimeError('store went away')

    monkeypatch.setattr('teamspace_app.app.invitations.service.ensure_project_member', broken)
    with pytest.raises(RuntimeError):
        service.accept_invitation(inv.token, u2.id)

    db.session.expire_all()
    assert OrganizationMember.query.filter_by(user_id=u2.id).count() == 0
    assert WorkspaceMember.query.filter_by(user_id=u2.id).count() == 0
    assert ProjectMember.query.filter_by(user_id=u2.id).count() == 0
    assert db.session.get(Invitation, inv.id).status == 'PENDING'


def test_mixed_case_account_email_still_matches(hierarchy, make_user):
    u2 = make_user('Mixed@X.com')
    assert u2.email == 'mixed@x.com'
    members.create_organization_member(u2.id, hierarchy.org.id, 'MEMBER', hierarchy.owner.id)

    result = invite(hierarchy, 'MIXED@x.com', Target.parse('workspace', hierarchy.w1.id))

    assert result.kind == 'direct_add'
    assert members.find_by_user_and_workspace(u2.id, hierarchy.w1.id) is not None
