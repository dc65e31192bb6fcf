"""Initial schema: profiles, calendar items, categorization rules, sync logs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. profiles with Canvas credentials and the Google OAuth credential
2. calendar_items keyed by (user_id, source, source_id)
3. categorization_rules keyed by (user_id, match_type, match_value)
4. sync_logs, one row per sync run
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('canvas_token', sa.Text(), nullable=True),
        sa.Column('canvas_base_url', sa.String(255), nullable=True),
        sa.Column('canvas_calendar_url', sa.Text(), nullable=True),
        sa.Column('google_access_token', sa.Text(), nullable=True),
        sa.Column('google_refresh_token', sa.Text(), nullable=True),
        sa.Column('google_token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'calendar_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('item_type', sa.String(20), nullable=False, server_default='assignment'),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('all_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('source', sa.String(32), nullable=False, comment='canvas | canvas_calendar | google_classroom | gmail | manual'),
        sa.Column('source_id', sa.String(255), nullable=True, comment='Stable upstream identifier, NULL for manual items'),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('course_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_locked', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Set once the user edits status directly'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('effort_estimate', sa.String(10), nullable=True),
        sa.Column('steps', JSON_TYPE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'source', 'source_id', name='uq_calendar_items_user_source_id'),
    )
    op.create_index('ix_calendar_items_user_id', 'calendar_items', ['user_id'])
    op.create_index('ix_calendar_items_course_name', 'calendar_items', ['course_name'])

    op.create_table(
        'categorization_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('match_type', sa.String(32), nullable=False, comment='title_contains | title_prefix | source_id_prefix | context_code'),
        sa.Column('match_value', sa.String(255), nullable=False),
        sa.Column('course_name', sa.String(255), nullable=False),
        sa.Column('auto_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'match_type', 'match_value', name='uq_categorization_rules_match'),
    )
    op.create_index('ix_categorization_rules_user_id', 'categorization_rules', ['user_id'])

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, comment='success | error'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('items_synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_logs_user_id', 'sync_logs', ['user_id'])
    op.create_index('ix_sync_logs_user_source_synced', 'sync_logs', ['user_id', 'source', 'synced_at'])


def downgrade() -> None:
    op.drop_index('ix_sync_logs_user_source_synced', 'sync_logs')
    op.drop_index('ix_sync_logs_user_id', 'sync_logs')
    op.drop_table('sync_logs')

    op.drop_index('ix_categorization_rules_user_id', 'categorization_rules')
    op.drop_table('categorization_rules')

    op.drop_index('ix_calendar_items_course_name', 'calendar_items')
    op.drop_index('ix_calendar_items_user_id', 'calendar_items')
    op.drop_table('calendar_items')

    op.drop_table('profiles')
