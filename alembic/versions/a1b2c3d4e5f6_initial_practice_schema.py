"""initial practice and progression schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
    )

    # Content
    op.create_table(
        'subjects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('weightage', sa.Integer(), nullable=True),
        sa.Column('is_active_in_random', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
    )
    op.create_table(
        'topics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('weightage', sa.Integer(), nullable=True),
        sa.Column('is_active_in_random', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_topics_subject_id', 'topics', ['subject_id'])
    op.create_table(
        'questions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topics.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('difficulty', sa.Integer(), server_default='3', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('difficulty BETWEEN 1 AND 5', name='ck_questions_difficulty'),
    )
    op.create_index('ix_questions_topic_id', 'questions', ['topic_id'])
    op.create_table(
        'answer_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), server_default='false', nullable=False),
    )
    op.create_index('ix_answer_options_question_id', 'answer_options', ['question_id'])

    # Preferences and history
    op.create_table(
        'user_quiz_preferences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('default_strategy', sa.String(50), nullable=True),
        sa.Column('default_questions_per_session', sa.Integer(), nullable=True),
        sa.Column('preferred_difficulty', sa.Integer(), nullable=True),
        sa.Column('difficulty_adaptation_enabled', sa.Boolean(), nullable=True),
        sa.Column('excluded_subject_ids', sa.JSON(), nullable=True),
        sa.Column('preferred_subject_ids', sa.JSON(), nullable=True),
        sa.Column('weak_area_threshold', sa.Float(), nullable=True),
        sa.Column('min_questions_for_weak_detection', sa.Integer(), nullable=True),
        sa.Column('avoid_recent_questions_days', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'user_question_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('times_seen', sa.Integer(), server_default='0', nullable=False),
        sa.Column('times_correct', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'question_id', name='uq_history_user_question'),
    )
    op.create_index('idx_history_user_correct', 'user_question_history', ['user_id', 'times_correct'])

    # Sessions
    op.create_table(
        'practice_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('strategy', sa.String(50), server_default='balanced', nullable=False),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topics.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), server_default='in_progress', nullable=False),
        sa.Column('total_questions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('questions_attempted', sa.Integer(), server_default='0', nullable=False),
        sa.Column('correct_answers', sa.Integer(), server_default='0', nullable=False),
        sa.Column('wrong_answers', sa.Integer(), server_default='0', nullable=False),
        sa.Column('accuracy', sa.Float(), server_default='0', nullable=False),
        sa.Column('xp_earned', sa.Integer(), server_default='0', nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('question_ids', sa.JSON(), nullable=False),
        sa.Column('topic_distribution', sa.JSON(), nullable=False),
        sa.Column('subject_distribution', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_sessions_user_status', 'practice_sessions', ['user_id', 'status'])
    # At most one in_progress session per user
    op.create_index(
        'uq_practice_sessions_active_user',
        'practice_sessions',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )
    op.create_table(
        'session_answers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('practice_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('selected_option_id', sa.Integer(), sa.ForeignKey('answer_options.id'), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('answered_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_session_answers_session_question'),
    )
    op.create_index('ix_session_answers_session_id', 'session_answers', ['session_id'])

    # Progression
    op.create_table(
        'user_stats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('total_xp', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('level', sa.Integer(), server_default='1', nullable=False),
        sa.Column('xp_to_next_level', sa.Integer(), server_default='100', nullable=False),
        sa.Column('current_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('longest_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('total_quizzes_completed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_questions_attempted', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_correct_answers', sa.Integer(), server_default='0', nullable=False),
        sa.Column('overall_accuracy', sa.Float(), server_default='0', nullable=False),
        sa.Column('total_practice_time_minutes', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_table(
        'user_topic_progress',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topics.id'), nullable=False),
        sa.Column('questions_attempted', sa.Integer(), server_default='0', nullable=False),
        sa.Column('correct_answers', sa.Integer(), server_default='0', nullable=False),
        sa.Column('accuracy', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_practiced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'topic_id', name='uq_topic_progress_user_topic'),
    )
    op.create_index('idx_topic_progress_user_accuracy', 'user_topic_progress', ['user_id', 'accuracy'])
    op.create_table(
        'streak_calendar',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('activity_date', sa.Date(), nullable=False),
        sa.Column('quizzes_completed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('questions_answered', sa.Integer(), server_default='0', nullable=False),
        sa.Column('xp_earned', sa.Integer(), server_default='0', nullable=False),
        sa.UniqueConstraint('user_id', 'activity_date', name='uq_streak_calendar_user_date'),
    )

    # Badges
    op.create_table(
        'badges',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('badge_type', sa.String(50), nullable=True),
        sa.Column('unlock_criteria', sa.JSON(), nullable=False),
        sa.Column('xp_reward', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
    )
    op.create_table(
        'user_badges',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('badge_id', sa.Integer(), sa.ForeignKey('badges.id'), nullable=False),
        sa.Column('progress_percentage', sa.Float(), server_default='0', nullable=False),
        sa.Column('unlocked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badges_user_badge'),
    )
    op.create_index('ix_user_badges_user_id', 'user_badges', ['user_id'])


def downgrade() -> None:
    op.drop_table('user_badges')
    op.drop_table('badges')
    op.drop_table('streak_calendar')
    op.drop_table('user_topic_progress')
    op.drop_table('user_stats')
    op.drop_table('session_answers')
    op.drop_index('uq_practice_sessions_active_user', table_name='practice_sessions')
    op.drop_table('practice_sessions')
    op.drop_table('user_question_history')
    op.drop_table('user_quiz_preferences')
    op.drop_table('answer_options')
    op.drop_table('questions')
    op.drop_table('topics')
    op.drop_table('subjects')
    op.drop_table('users')
