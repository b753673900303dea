"""initial schema: users, hierarchy, memberships

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _member_columns(entity_column):
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        entity_column,
        sa.Column('role', sa.String(length=20), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='USER'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('slug', sa.String(length=140), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_organizations_slug'), 'organizations', ['slug'], unique=True)

    op.create_table(
        'workspaces',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('slug', sa.String(length=140), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'slug', name='uq_workspaces_org_slug'),
    )
    op.create_index(op.f('ix_workspaces_organization_id'), 'workspaces', ['organization_id'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('workspace_id', sa.Integer(), sa.ForeignKey('workspaces.id'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('slug', sa.String(length=140), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('workspace_id', 'slug', name='uq_projects_workspace_slug'),
    )
    op.create_index(op.f('ix_projects_workspace_id'), 'projects', ['workspace_id'])

    op.create_table(
        'organization_members',
        *_member_columns(sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False)),
        sa.UniqueConstraint('user_id', 'organization_id', name='uq_organization_members_user_org'),
    )
    op.create_index(op.f('ix_organization_members_user_id'), 'organization_members', ['user_id'])
    op.create_index(op.f('ix_organization_members_organization_id'), 'organization_members', ['organization_id'])

    op.create_table(
        'workspace_members',
        *_member_columns(sa.Column('workspace_id', sa.Integer(), sa.ForeignKey('workspaces.id'), nullable=False)),
        sa.UniqueConstraint('user_id', 'workspace_id', name='uq_workspace_members_user_workspace'),
    )
    op.create_index(op.f('ix_workspace_members_user_id'), 'workspace_members', ['user_id'])
    op.create_index(op.f('ix_workspace_members_workspace_id'), 'workspace_members', ['workspace_id'])

    op.create_table(
        'project_members',
        *_member_columns(sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False)),
        sa.UniqueConstraint('user_id', 'project_id', name='uq_project_members_user_project'),
    )
    op.create_index(op.f('ix_project_members_user_id'), 'project_members', ['user_id'])
    op.create_index(op.f('ix_project_members_project_id'), 'project_members', ['project_id'])


def downgrade():
    for table in ('project_members', 'workspace_members', 'organization_members'):
        op.drop_table(table)
    op.drop_table('projects')
    op.drop_table('workspaces')
    op.drop_table('organizations')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
