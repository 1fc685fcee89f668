"""Initial schema: tenants, members, waitlist_responses

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_initial_schema'
down_revision = None


def upgrade():
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('tenant_id', sa.String(255), primary_key=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True, unique=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('api_key', sa.String(512), nullable=True),
        sa.Column('webhook_secret', sa.String(512), nullable=True),
        sa.Column('installation_id', sa.String(255), nullable=True),
        sa.Column('is_app_install', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('custom_questions', postgresql.JSONB(), nullable=True, server_default='[]'),
        sa.Column('branding', postgresql.JSONB(), nullable=True, server_default='{}'),
        sa.Column('installed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_tenants_display_name', 'tenants', ['display_name'])
    op.create_index('ix_tenants_status', 'tenants', ['status'])
    op.create_index('ix_tenants_last_activity', 'tenants', ['last_activity'])

    # Create members table
    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'tenant_id',
            sa.String(255),
            sa.ForeignKey('tenants.tenant_id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('member_id', sa.String(255), nullable=False),
        sa.Column('membership_id', sa.String(255), nullable=True, unique=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('custom_fields', postgresql.JSONB(), nullable=True, server_default='{}'),
        sa.Column('membership_data', postgresql.JSONB(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
        sa.UniqueConstraint('tenant_id', 'member_id', name='uq_members_tenant_member'),
    )
    op.create_index('ix_members_tenant_id', 'members', ['tenant_id'])
    op.create_index('ix_members_member_id', 'members', ['member_id'])
    op.create_index('ix_members_status', 'members', ['status'])
    op.create_index('ix_members_joined_at', 'members', ['joined_at'])

    # Create waitlist_responses table
    op.create_table(
        'waitlist_responses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'tenant_id',
            sa.String(255),
            sa.ForeignKey('tenants.tenant_id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('responses', postgresql.JSONB(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_waitlist_responses_tenant_id', 'waitlist_responses', ['tenant_id'])
    op.create_index('ix_waitlist_responses_user_id', 'waitlist_responses', ['user_id'])
    op.create_index('ix_waitlist_responses_user_email', 'waitlist_responses', ['user_email'])


def downgrade():
    # Drop in reverse dependency order
    op.drop_table('waitlist_responses')
    op.drop_table('members')
    op.drop_table('tenants')
