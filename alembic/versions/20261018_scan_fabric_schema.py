"""Create monitors, results, usage and workflow run tables

Revision ID: 20261018_scan_fabric_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261018_scan_fabric_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('subscription_status', sa.String(), nullable=False, server_default='free'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('results_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('period_start', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_usage_user_id', 'usage', ['user_id'], unique=True)

    op.create_table(
        'monitors',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('keywords', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('search_query', sa.String(), nullable=True),
        sa.Column('sources', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('source_config', postgresql.JSONB(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_scanning', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_checked_at', sa.DateTime(), nullable=True),
        sa.Column('last_manual_scan_at', sa.DateTime(), nullable=True),
        sa.Column('new_match_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('schedule_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('schedule_start_hour', sa.Integer(), nullable=True),
        sa.Column('schedule_end_hour', sa.Integer(), nullable=True),
        sa.Column('schedule_days', postgresql.JSONB(), nullable=True),
        sa.Column('schedule_timezone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_monitors_user_id', 'monitors', ['user_id'])
    op.create_index('ix_monitors_is_active', 'monitors', ['is_active'])

    # Stuck scan reaper: is_scanning = true AND updated_at < cutoff
    op.create_index(
        'idx_monitors_stuck_detection',
        'monitors',
        ['is_scanning', 'updated_at'],
        if_not_exists=True
    )

    op.create_table(
        'results',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('monitor_id', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('source_url', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('source_metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['monitor_id'], ['monitors.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_results_monitor_id', 'results', ['monitor_id'])
    op.create_index('ix_results_source', 'results', ['source'])

    # Global dedup key; ON CONFLICT (source_url) DO NOTHING relies on it
    op.create_index('ix_results_source_url', 'results', ['source_url'], unique=True)

    op.create_table(
        'workflow_runs',
        sa.Column('run_id', sa.String(), nullable=False),
        sa.Column('function_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='running'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payload', postgresql.JSONB(), nullable=True),
        sa.Column('output', postgresql.JSONB(), nullable=True),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('started_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('run_id'),
    )
    op.create_index('ix_workflow_runs_function_id', 'workflow_runs', ['function_id'])
    op.create_index('ix_workflow_runs_status', 'workflow_runs', ['status'])

    op.create_table(
        'run_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(), nullable=False),
        sa.Column('step_id', sa.String(), nullable=False),
        sa.Column('output', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('run_id', 'step_id', name='uq_run_steps_run_step'),
    )
    op.create_index('ix_run_steps_run_id', 'run_steps', ['run_id'])


def downgrade() -> None:
    op.drop_index('ix_run_steps_run_id', table_name='run_steps')
    op.drop_table('run_steps')
    op.drop_index('ix_workflow_runs_status', table_name='workflow_runs')
    op.drop_index('ix_workflow_runs_function_id', table_name='workflow_runs')
    op.drop_table('workflow_runs')
    op.drop_index('ix_results_source_url', table_name='results')
    op.drop_index('ix_results_source', table_name='results')
    op.drop_index('ix_results_monitor_id', table_name='results')
    op.drop_table('results')
    op.drop_index('idx_monitors_stuck_detection', table_name='monitors')
    op.drop_index('ix_monitors_is_active', table_name='monitors')
    op.drop_index('ix_monitors_user_id', table_name='monitors')
    op.drop_table('monitors')
    op.drop_index('ix_usage_user_id', table_name='usage')
    op.drop_table('usage')
    op.drop_table('users')
