"""Listing sync schema

Revision ID: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'source_configs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(100), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(255)),
        sa.Column('description', sa.Text()),
        sa.Column('api_base_url', sa.String(255), nullable=False),
        sa.Column('list_path', sa.String(255), nullable=False, server_default='/'),
        sa.Column('check_path_template', sa.String(255), nullable=False, server_default='/item/{id}'),
        sa.Column('default_filters', sa.JSON()),
        sa.Column('columns', sa.JSON()),
        sa.Column('filters', sa.JSON()),
        sa.Column('sorts', sa.JSON()),
        sa.Column('fetch_worker_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('check_worker_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('fetch_interval_minutes', sa.Integer(), server_default='60'),
        sa.Column('fetch_page_limit', sa.Integer(), server_default='10'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'listings',
        sa.Column('source_id', sa.Integer(), sa.ForeignKey('source_configs.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('item_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('url', sa.String(2048)),
        sa.Column('title', sa.String(512)),
        sa.Column('price', sa.Float()),
        sa.Column('currency', sa.String(10)),
        sa.Column('extension_data', sa.JSON()),
        sa.Column('score', sa.Integer()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('archived_reason', sa.String(255)),
        sa.Column('archived_at', sa.DateTime(timezone=True)),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('raw_payload', sa.JSON()),
    )
    op.create_index('ix_listings_source_state', 'listings', ['source_id', 'is_hidden', 'is_archived'])

    op.create_table(
        'ingestion_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('source_id', sa.Integer(), sa.ForeignKey('source_configs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('page', sa.Integer(), nullable=False),
        sa.Column('items_fetched', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text()),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_ingestion_runs_source_id', 'ingestion_runs', ['source_id'])
    op.create_index('ix_ingestion_runs_source_time', 'ingestion_runs', ['source_id', 'started_at'])

    op.create_table(
        'reconciliation_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('source_id', sa.Integer(), sa.ForeignKey('source_configs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True)),
        sa.Column('items_checked', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items_archived', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_cursor', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_cursor', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text()),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_reconciliation_runs_source_id', 'reconciliation_runs', ['source_id'])
    op.create_index('ix_reconciliation_runs_source_time', 'reconciliation_runs', ['source_id', 'started_at'])

    op.create_table(
        'run_leases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('source_id', sa.Integer(), sa.ForeignKey('source_configs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('worker_kind', sa.String(20), nullable=False),
        sa.Column('holder', sa.String(36), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('source_id', 'worker_kind', name='uix_lease_source_kind'),
    )

    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('value', sa.Text()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('app_settings')
    op.drop_table('run_leases')
    op.drop_index('ix_reconciliation_runs_source_time', 'reconciliation_runs')
    op.drop_index('ix_reconciliation_runs_source_id', 'reconciliation_runs')
    op.drop_table('reconciliation_runs')
    op.drop_index('ix_ingestion_runs_source_time', 'ingestion_runs')
    op.drop_index('ix_ingestion_runs_source_id', 'ingestion_runs')
    op.drop_table('ingestion_runs')
    op.drop_index('ix_listings_source_state', 'listings')
    op.drop_table('listings')
    op.drop_table('source_configs')
