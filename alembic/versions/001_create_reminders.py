"""create users and reminders tables

Revision ID: 001_create_reminders
Revises:
Create Date: 2025-01-25

Scheduling state is `next_due` and `is_completed`; the claim columns guard
concurrent sweeps.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_create_reminders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('timezone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'reminders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('reminder_type', sa.String(), nullable=False, server_default='once'),
        sa.Column('frequency', sa.String(), nullable=True),
        sa.Column('next_due', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.text('FALSE')),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claim_token', sa.String(32), nullable=True),
        sa.Column('last_fired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fire_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint("reminder_type IN ('once', 'recurring')", name='ck_reminders_reminder_type'),
        sa.CheckConstraint(
            "frequency IS NULL OR frequency IN ('daily', 'weekly', 'biweekly', 'monthly')",
            name='ck_reminders_frequency',
        ),
    )
    op.create_index('ix_reminders_user_next_due', 'reminders', ['user_id', 'next_due'])
    op.create_index('reminders_next_due_idx', 'reminders', ['next_due'])
    op.create_index('ix_reminders_completed_next_due', 'reminders', ['is_completed', 'next_due'])
    op.create_index('ix_reminders_claimed_at', 'reminders', ['claimed_at'])


def downgrade() -> None:
    op.drop_index('ix_reminders_claimed_at', table_name='reminders')
    op.drop_index('ix_reminders_completed_next_due', table_name='reminders')
    op.drop_index('reminders_next_due_idx', table_name='reminders')
    op.drop_index('ix_reminders_user_next_due', table_name='reminders')
    op.drop_table('reminders')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
