"""Initial migration: create user, drill, assignment and attempt tables

Revision ID: initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create user table
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='learner'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_role'), 'user', ['role'], unique=False)

    # Create drill table
    op.create_table(
        'drill',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('difficulty', sa.String(), nullable=False, server_default='beginner'),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('duration_days', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('context', sa.String(), nullable=True),
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_assignments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['created_by_id'], ['user.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_drill_type'), 'drill', ['type'], unique=False)
    op.create_index(op.f('ix_drill_created_by_id'), 'drill', ['created_by_id'], unique=False)

    # Create drill_assignment table; one row per (drill, learner)
    op.create_table(
        'drill_assignment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('drill_id', sa.Integer(), nullable=False),
        sa.Column('learner_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['drill_id'], ['drill.id'], ),
        sa.ForeignKeyConstraint(['learner_id'], ['user.id'], ),
        sa.ForeignKeyConstraint(['assigned_by_id'], ['user.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('drill_id', 'learner_id', name='uq_drill_assignment_drill_learner')
    )
    op.create_index(op.f('ix_drill_assignment_drill_id'), 'drill_assignment', ['drill_id'], unique=False)
    op.create_index(op.f('ix_drill_assignment_learner_id'), 'drill_assignment', ['learner_id'], unique=False)
    op.create_index(op.f('ix_drill_assignment_assigned_by_id'), 'drill_assignment', ['assigned_by_id'], unique=False)
    op.create_index(op.f('ix_drill_assignment_status'), 'drill_assignment', ['status'], unique=False)

    # Create drill_attempt table
    op.create_table(
        'drill_attempt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('learner_id', sa.Integer(), nullable=False),
        sa.Column('drill_id', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('max_score', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('results_kind', sa.String(), nullable=True),
        sa.Column('results', sa.JSON(), nullable=True),
        sa.Column('review_status', sa.String(), nullable=True),
        sa.Column('platform', sa.String(), nullable=False, server_default='web'),
        sa.Column('device_info', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['assignment_id'], ['drill_assignment.id'], ),
        sa.ForeignKeyConstraint(['learner_id'], ['user.id'], ),
        sa.ForeignKeyConstraint(['drill_id'], ['drill.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_drill_attempt_assignment_id'), 'drill_attempt', ['assignment_id'], unique=False)
    op.create_index(op.f('ix_drill_attempt_learner_id'), 'drill_attempt', ['learner_id'], unique=False)
    op.create_index(op.f('ix_drill_attempt_drill_id'), 'drill_attempt', ['drill_id'], unique=False)
    op.create_index(op.f('ix_drill_attempt_completed_at'), 'drill_attempt', ['completed_at'], unique=False)
    op.create_index(op.f('ix_drill_attempt_results_kind'), 'drill_attempt', ['results_kind'], unique=False)
    op.create_index(op.f('ix_drill_attempt_review_status'), 'drill_attempt', ['review_status'], unique=False)


def downgrade() -> None:
    op.drop_table('drill_attempt')
    op.drop_table('drill_assignment')
    op.drop_table('drill')
    op.drop_table('user')
