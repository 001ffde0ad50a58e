"""Initial import schema

Revision ID: 001_initial_import
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_import'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create organizations table
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('plan_source', sa.String(length=20), nullable=False, server_default='free'),
        sa.Column('plan_name', sa.String(length=100), nullable=True),
        sa.Column('monthly_event_limit', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_organizations_id'), 'organizations', ['id'], unique=False)

    # Create sites table
    op.create_table(
        'sites',
        sa.Column('site_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.String(length=64), nullable=False),
        sa.Column('domain', sa.String(length=253), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('site_id')
    )
    op.create_index(op.f('ix_sites_site_id'), 'sites', ['site_id'], unique=False)
    op.create_index(op.f('ix_sites_organization_id'), 'sites', ['organization_id'], unique=False)

    # Create import_jobs table
    op.create_table(
        'import_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('site_id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.String(length=64), nullable=False),
        sa.Column('source_platform', sa.Enum('umami', 'simple_analytics', name='importplatform'), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'processing', 'completed', 'failed', name='importstatus'),
            nullable=False
        ),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('imported_events', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_events', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invalid_events', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['site_id'], ['sites.site_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_import_jobs_site_id'), 'import_jobs', ['site_id'], unique=False)
    op.create_index(op.f('ix_import_jobs_organization_id'), 'import_jobs', ['organization_id'], unique=False)
    op.create_index(op.f('ix_import_jobs_status'), 'import_jobs', ['status'], unique=False)

    # Create events table
    op.create_table(
        'events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('site_id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('event_name', sa.String(length=256), nullable=False, server_default=''),
        sa.Column('session_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('user_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('hostname', sa.String(length=253), nullable=False, server_default=''),
        sa.Column('pathname', sa.Text(), nullable=False, server_default=''),
        sa.Column('querystring', sa.Text(), nullable=False, server_default=''),
        sa.Column('url_parameters', sa.JSON(), nullable=True),
        sa.Column('page_title', sa.String(length=512), nullable=False, server_default=''),
        sa.Column('referrer', sa.Text(), nullable=False, server_default=''),
        sa.Column('channel', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('browser', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('browser_version', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('operating_system', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('operating_system_version', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('language', sa.String(length=35), nullable=False, server_default=''),
        sa.Column('country', sa.String(length=2), nullable=False, server_default=''),
        sa.Column('region', sa.String(length=8), nullable=False, server_default=''),
        sa.Column('city', sa.String(length=60), nullable=False, server_default=''),
        sa.Column('lat', sa.Float(), nullable=False, server_default='0'),
        sa.Column('lon', sa.Float(), nullable=False, server_default='0'),
        sa.Column('screen_width', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('screen_height', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('device_type', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('props', sa.JSON(), nullable=True),
        sa.Column('import_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_events_site_id'), 'events', ['site_id'], unique=False)
    op.create_index(op.f('ix_events_timestamp'), 'events', ['timestamp'], unique=False)
    op.create_index(op.f('ix_events_import_id'), 'events', ['import_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_events_import_id'), table_name='events')
    op.drop_index(op.f('ix_events_timestamp'), table_name='events')
    op.drop_index(op.f('ix_events_site_id'), table_name='events')
    op.drop_table('events')

    op.drop_index(op.f('ix_import_jobs_status'), table_name='import_jobs')
    op.drop_index(op.f('ix_import_jobs_organization_id'), table_name='import_jobs')
    op.drop_index(op.f('ix_import_jobs_site_id'), table_name='import_jobs')
    op.drop_table('import_jobs')
    sa.Enum(name='importstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='importplatform').drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f('ix_sites_organization_id'), table_name='sites')
    op.drop_index(op.f('ix_sites_site_id'), table_name='sites')
    op.drop_table('sites')

    op.drop_index(op.f('ix_organizations_id'), table_name='organizations')
    op.drop_table('organizations')
