"""Create goal tracking schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create transactions, goals and the goal child tables."""

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("type IN ('INCOME', 'EXPENSE')", name='check_transaction_type'),
        sa.CheckConstraint('amount >= 0', name='check_amount_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_date'), 'transactions', ['date'], unique=False)
    op.create_index(op.f('ix_transactions_category'), 'transactions', ['category'], unique=False)
    op.create_index('idx_transactions_user_date', 'transactions', ['user_id', 'date'], unique=False)
    op.create_index('idx_transactions_user_category', 'transactions', ['user_id', 'category'], unique=False)
    op.create_index('idx_transactions_user_type', 'transactions', ['user_id', 'type'], unique=False)

    # Create goals table
    op.create_table(
        'goals',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('target_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('current_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('initial_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('deadline', sa.DateTime(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('priority', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('notes', sa.String(length=2000), nullable=True),
        sa.Column('auto_track', sa.Boolean(), nullable=False),
        sa.Column('tracking_rules', sa.JSON(), nullable=True),
        sa.Column('reminder_enabled', sa.Boolean(), nullable=False),
        sa.Column('reminder_frequency', sa.String(length=10), nullable=True),
        sa.Column('last_reminder_sent', sa.DateTime(), nullable=True),
        sa.Column('completed_date', sa.DateTime(), nullable=True),
        sa.Column('failed_date', sa.DateTime(), nullable=True),
        sa.Column('paused_date', sa.DateTime(), nullable=True),
        sa.Column('last_calculated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'completed', 'paused', 'failed', 'cancelled')",
            name='check_goal_status'
        ),
        sa.CheckConstraint(
            "type IN ('savings', 'investment', 'debt_payoff', 'revenue', "
            "'expense_reduction', 'emergency_fund', 'custom')",
            name='check_goal_type'
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high', 'critical')", name='check_goal_priority'),
        sa.CheckConstraint('target_amount > 0', name='check_target_amount_positive'),
        sa.CheckConstraint('current_amount >= 0', name='check_current_amount_non_negative'),
        sa.CheckConstraint('initial_amount >= 0', name='check_initial_amount_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_goals_user_id'), 'goals', ['user_id'], unique=False)
    op.create_index(op.f('ix_goals_type'), 'goals', ['type'], unique=False)
    op.create_index(op.f('ix_goals_deadline'), 'goals', ['deadline'], unique=False)
    op.create_index(op.f('ix_goals_priority'), 'goals', ['priority'], unique=False)
    op.create_index(op.f('ix_goals_status'), 'goals', ['status'], unique=False)
    op.create_index('idx_goals_user_status_priority', 'goals', ['user_id', 'status', 'priority'], unique=False)
    op.create_index('idx_goals_user_deadline', 'goals', ['user_id', 'deadline'], unique=False)
    op.create_index('idx_goals_user_type_status', 'goals', ['user_id', 'type', 'status'], unique=False)

    # Create goal_milestones table
    op.create_table(
        'goal_milestones',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('goal_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('target_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('target_date', sa.DateTime(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('completed_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.CheckConstraint('target_amount >= 0', name='check_milestone_target_non_negative'),
        sa.ForeignKeyConstraint(['goal_id'], ['goals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_goal_milestones_goal_id'), 'goal_milestones', ['goal_id'], unique=False)

    # Create goal_progress_entries table
    op.create_table(
        'goal_progress_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('goal_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.Uuid(), nullable=True),
        sa.CheckConstraint("source IN ('manual', 'auto', 'milestone')", name='check_progress_source'),
        sa.ForeignKeyConstraint(['goal_id'], ['goals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_goal_progress_entries_goal_id'), 'goal_progress_entries', ['goal_id'], unique=False
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('goal_progress_entries')
    op.drop_table('goal_milestones')
    op.drop_table('goals')
    op.drop_table('transactions')
