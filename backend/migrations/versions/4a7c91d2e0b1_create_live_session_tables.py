"""create quiz, live session, participant and answer tables

Revision ID: 4a7c91d2e0b1
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4a7c91d2e0b1'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('questions', sa.Text(), nullable=False),
        sa.Column('live_settings', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'quiz_session',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_code', sa.String(length=6), nullable=False),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('host_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=True),
        sa.Column('current_question_index', sa.Integer(), nullable=True),
        sa.Column('question_started_at', sa.DateTime(), nullable=True),
        sa.Column('time_per_question', sa.Integer(), nullable=False),
        sa.Column('base_points', sa.Integer(), nullable=False),
        sa.Column('max_speed_bonus', sa.Integer(), nullable=False),
        sa.Column('allow_late_join', sa.Boolean(), nullable=True),
        sa.Column('show_leaderboard_after_each', sa.Boolean(), nullable=True),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('remaining_ms_when_paused', sa.Integer(), nullable=True),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_quiz_session_session_code', 'quiz_session', ['session_code'], unique=True)
    op.create_index('ix_quiz_session_host_id', 'quiz_session', ['host_id'])
    op.create_index('ix_quiz_session_status', 'quiz_session', ['status'])

    op.create_table(
        'session_participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_code', sa.String(length=6), nullable=False),
        sa.Column('participant_id', sa.String(length=128), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('photo_ref', sa.String(length=512), nullable=True),
        sa.Column('connection_id', sa.String(length=64), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('correct_count', sa.Integer(), nullable=True),
        sa.Column('answered_count', sa.Integer(), nullable=True),
        sa.Column('connected', sa.Boolean(), nullable=True),
        sa.Column('last_disconnected_at', sa.DateTime(), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('session_code', 'participant_id', name='uq_session_participant'),
    )
    op.create_index('ix_session_participant_session_code', 'session_participant', ['session_code'])

    op.create_table(
        'session_answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_code', sa.String(length=6), nullable=False),
        sa.Column('participant_id', sa.String(length=128), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.String(length=64), nullable=False),
        sa.Column('selected_option', sa.Text(), nullable=False),
        sa.Column('correct', sa.Boolean(), nullable=False),
        sa.Column('response_latency_ms', sa.Integer(), nullable=False),
        sa.Column('points_awarded', sa.Integer(), nullable=True),
        sa.Column('speed_bonus', sa.Integer(), nullable=True),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_session_answer_question', 'session_answer', ['session_code', 'question_index'])
    op.create_index('ix_session_answer_participant_id', 'session_answer', ['participant_id'])


def downgrade():
    op.drop_table('session_answer')
    op.drop_table('session_participant')
    op.drop_table('quiz_session')
    op.drop_table('quiz')
    op.drop_table('user')
