"""Create agents, executions and engine_logs tables

Revision ID: 001_create_execution_engine_tables
Revises:
Create Date: 2026-10-17

Step-based execution engine: execution records and append-only step logs.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_create_execution_engine_tables'
down_revision = None
branch_labels = None
depends_on = None

EXECUTION_STATUS = sa.Enum('RUNNING', 'PAUSED', 'DONE', 'FAILED', 'STOPPED', name='executionstatus')
LOG_TYPE = sa.Enum('SYSTEM', 'THINKING', 'TOOL_CALL', 'TOOL_RESULT', 'MESSAGE', 'ERROR', 'COMMIT', name='logtype')


def upgrade():
    op.create_table(
        'agents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('soul', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_agents_name', 'agents', ['name'], unique=True)

    op.create_table(
        'executions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.String(100), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('agent_id', sa.Integer(), sa.ForeignKey('agents.id', ondelete='SET NULL'), nullable=True),
        sa.Column('agent_name', sa.String(50), nullable=False),
        sa.Column('status', EXECUTION_STATUS, nullable=False),

        # Loop state
        sa.Column('system_prompt', sa.Text(), nullable=False),
        sa.Column('conversation', sa.JSON(), nullable=False),
        sa.Column('staged_changes', sa.JSON(), nullable=False),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_steps', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('files_changed', sa.JSON(), nullable=False),

        # Outcome
        sa.Column('commit_sha', sa.String(64), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),

        # Target
        sa.Column('model', sa.String(100), nullable=False),
        sa.Column('repo', sa.String(200), nullable=False),
        sa.Column('branch', sa.String(200), nullable=False),

        # Timing
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),

        sa.UniqueConstraint('task_id', 'attempt', name='uq_executions_task_attempt'),
    )
    op.create_index('ix_executions_task_id', 'executions', ['task_id'])
    op.create_index('ix_executions_status', 'executions', ['status'])

    op.create_table(
        'engine_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('execution_id', sa.Integer(), sa.ForeignKey('executions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('type', LOG_TYPE, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
    )
    op.create_index('ix_engine_logs_execution_id', 'engine_logs', ['execution_id'])


def downgrade():
    op.drop_index('ix_engine_logs_execution_id', table_name='engine_logs')
    op.drop_table('engine_logs')
    op.drop_index('ix_executions_status', table_name='executions')
    op.drop_index('ix_executions_task_id', table_name='executions')
    op.drop_table('executions')
    op.drop_index('ix_agents_name', table_name='agents')
    op.drop_table('agents')
    LOG_TYPE.drop(op.get_bind(), checkfirst=True)
    EXECUTION_STATUS.drop(op.get_bind(), checkfirst=True)
