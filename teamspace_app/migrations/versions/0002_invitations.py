"""invitations with single-target check and pending uniqueness

Revision ID: 0002_invitations
Revises: 0001_initial
Create Date: 2026-10-19 09:30:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_invitations'
down_revision = '0001_initial'
branch_labels = None
depends_on = None

PENDING_ONLY = sa.text("status = 'PENDING'")


def upgrade():
    op.create_table(
        'invitations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('inviter_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('invitee_email', sa.String(length=255), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('workspace_id', sa.Integer(), sa.ForeignKey('workspaces.id'), nullable=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='MEMBER'),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "(CASE WHEN organization_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN workspace_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN project_id IS NULL THEN 0 ELSE 1 END) = 1",
            name='ck_invitations_single_target',
        ),
    )
    op.create_index(op.f('ix_invitations_token'), 'invitations', ['token'], unique=True)
    op.create_index(op.f('ix_invitations_invitee_email'), 'invitations', ['invitee_email'])
    op.create_index(op.f('ix_invitations_status'), 'invitations', ['status'])
    for column in ('organization_id', 'workspace_id', 'project_id'):
        op.create_index(op.f(f'ix_invitations_{column}'), 'invitations', [column])

    # at most one PENDING invitation per (email, target)
    op.create_index(
        'uq_invitations_pending_org', 'invitations', ['invitee_email', 'organization_id'], unique=True,
        postgresql_where=PENDING_ONLY, sqlite_where=PENDING_ONLY,
    )
    op.create_index(
        'uq_invitations_pending_workspace', 'invitations', ['invitee_email', 'workspace_id'], unique=True,
        postgresql_where=PENDING_ONLY, sqlite_where=PENDING_ONLY,
    )
    op.create_index(
        'uq_invitations_pending_project', 'invitations', ['invitee_email', 'project_id'], unique=True,
        postgresql_where=PENDING_ONLY, sqlite_where=PENDING_ONLY,
    )


def downgrade():
    op.drop_index('uq_invitations_pending_project', table_name='invitations')
    op.drop_index('uq_invitations_pending_workspace', table_name='invitations')
    op.drop_index('uq_invitations_pending_org', table_name='invitations')
    op.drop_table('invitations')
