"""Create users, quiz, attempt and analytics tables

Revision ID: 3f2a9c1d7e40
Revises:
Create Date: 2026-10-19 09:12:04.118203

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '3f2a9c1d7e40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    inspector = inspect(op.get_bind())
    tables = inspector.get_table_names()

    if 'users' not in tables:
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('full_name', sa.String(length=255), nullable=False),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='student'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_role', 'users', ['role'], unique=False)

    # Create quizzes table
    if 'quizzes' not in tables:
        op.create_table('quizzes',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('category', sa.String(length=100), nullable=True),
            sa.Column('tags', sa.JSON(), nullable=False),
            sa.Column('time_limit_minutes', sa.Integer(), nullable=True),
            sa.Column('randomize_questions', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('randomize_options', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('passing_score', sa.Float(), nullable=False, server_default='60'),
            sa.Column('attempts_allowed', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
            sa.Column('owner_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_quizzes_category', 'quizzes', ['category'], unique=False)
        op.create_index('ix_quizzes_status', 'quizzes', ['status'], unique=False)
        op.create_index('ix_quizzes_owner_id', 'quizzes', ['owner_id'], unique=False)
        op.create_index('ix_quizzes_created_at', 'quizzes', ['created_at'], unique=False)

    for association in ('quiz_collaborators', 'quiz_assignments'):
        if association not in tables:
            op.create_table(association,
                sa.Column('quiz_id', sa.Integer(), nullable=False),
                sa.Column('user_id', sa.Integer(), nullable=False),
                sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
                sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
                sa.PrimaryKeyConstraint('quiz_id', 'user_id')
            )

    # Create quiz_questions table
    if 'quiz_questions' not in tables:
        op.create_table('quiz_questions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('question_type', sa.String(length=50), nullable=False),
            sa.Column('prompt', sa.Text(), nullable=False),
            sa.Column('correct_answer', sa.Text(), nullable=True),
            sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('difficulty', sa.String(length=20), nullable=False, server_default='medium'),
            sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_quiz_questions_quiz_id', 'quiz_questions', ['quiz_id'], unique=False)
        op.create_index('ix_quiz_questions_quiz_order', 'quiz_questions', ['quiz_id', 'order_index'], unique=False)

    # Create quiz_question_options table
    if 'quiz_question_options' not in tables:
        op.create_table('quiz_question_options',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('question_id', sa.Integer(), nullable=False),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('is_correct', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['question_id'], ['quiz_questions.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_quiz_question_options_question_id', 'quiz_question_options', ['question_id'], unique=False)

    if 'quiz_attempt_counters' not in tables:
        op.create_table('quiz_attempt_counters',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('quiz_id', 'user_id', name='uq_attempt_counter_quiz_user')
        )

    # Create quiz_attempts table
    if 'quiz_attempts' not in tables:
        op.create_table('quiz_attempts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='in_progress'),
            sa.Column('started_at', sa.DateTime(), nullable=False),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.Column('time_spent', sa.Float(), nullable=True),
            sa.Column('total_points', sa.Integer(), nullable=True),
            sa.Column('max_points', sa.Integer(), nullable=True),
            sa.Column('score', sa.Float(), nullable=True),
            sa.Column('pending_review', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('analytics_recorded_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_quiz_attempts_quiz_id', 'quiz_attempts', ['quiz_id'], unique=False)
        op.create_index('ix_quiz_attempts_user_id', 'quiz_attempts', ['user_id'], unique=False)
        op.create_index('ix_quiz_attempts_status', 'quiz_attempts', ['status'], unique=False)
        op.create_index('ix_quiz_attempts_quiz_user', 'quiz_attempts', ['quiz_id', 'user_id'], unique=False)
        op.create_index('ix_quiz_attempts_user_status', 'quiz_attempts', ['user_id', 'status'], unique=False)

    # Create quiz_answers table
    if 'quiz_answers' not in tables:
        op.create_table('quiz_answers',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('attempt_id', sa.Integer(), nullable=False),
            sa.Column('question_id', sa.Integer(), nullable=False),
            sa.Column('option_id', sa.Integer(), nullable=True),
            sa.Column('answer_text', sa.Text(), nullable=True),
            sa.Column('skipped', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('is_correct', sa.Boolean(), nullable=True),
            sa.Column('points_earned', sa.Integer(), nullable=True),
            sa.Column('graded_by', sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(['attempt_id'], ['quiz_attempts.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['question_id'], ['quiz_questions.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['option_id'], ['quiz_question_options.id'], ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['graded_by'], ['users.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_question')
        )
        op.create_index('ix_quiz_answers_attempt_id', 'quiz_answers', ['attempt_id'], unique=False)
        op.create_index('ix_quiz_answers_question_id', 'quiz_answers', ['question_id'], unique=False)

    # Analytics tables
    if 'analytics_records' not in tables:
        op.create_table('analytics_records',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('attempts_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('highest_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('last_score', sa.Float(), nullable=True),
            sa.Column('total_time_spent', sa.Float(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('last_updated', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'quiz_id', name='uq_analytics_user_quiz')
        )
        op.create_index('ix_analytics_records_last_updated', 'analytics_records', ['last_updated'], unique=False)
        op.create_index('ix_analytics_records_quiz_avg', 'analytics_records', ['quiz_id', 'average_score'], unique=False)

    if 'analytics_question_stats' not in tables:
        op.create_table('analytics_question_stats',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('record_id', sa.Integer(), nullable=False),
            sa.Column('question_id', sa.Integer(), nullable=False),
            sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('correct_attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('average_time_spent', sa.Float(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['record_id'], ['analytics_records.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['question_id'], ['quiz_questions.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('record_id', 'question_id', name='uq_question_stat_record_question')
        )
        op.create_index('ix_analytics_question_stats_record_id', 'analytics_question_stats', ['record_id'], unique=False)
        op.create_index('ix_analytics_question_stats_question_id', 'analytics_question_stats', ['question_id'], unique=False)

    if 'analytics_quiz_rollups' not in tables:
        op.create_table('analytics_quiz_rollups',
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('attempts_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('highest_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('pass_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_time_spent', sa.Float(), nullable=False, server_default='0'),
            sa.Column('last_updated', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('quiz_id')
        )

    if 'analytics_category_performance' not in tables:
        op.create_table('analytics_category_performance',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('category', sa.String(length=100), nullable=False),
            sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('last_updated', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'category', name='uq_category_performance_user_category')
        )


def downgrade():
    op.drop_table('analytics_category_performance')
    op.drop_table('analytics_quiz_rollups')
    op.drop_index('ix_analytics_question_stats_question_id', table_name='analytics_question_stats')
    op.drop_index('ix_analytics_question_stats_record_id', table_name='analytics_question_stats')
    op.drop_table('analytics_question_stats')
    op.drop_index('ix_analytics_records_quiz_avg', table_name='analytics_records')
    op.drop_index('ix_analytics_records_last_updated', table_name='analytics_records')
    op.drop_table('analytics_records')
    op.drop_index('ix_quiz_answers_question_id', table_name='quiz_answers')
    op.drop_index('ix_quiz_answers_attempt_id', table_name='quiz_answers')
    op.drop_table('quiz_answers')
    op.drop_index('ix_quiz_attempts_user_status', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_quiz_user', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_status', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_user_id', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_quiz_id', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')
    op.drop_table('quiz_attempt_counters')
    op.drop_index('ix_quiz_question_options_question_id', table_name='quiz_question_options')
    op.drop_table('quiz_question_options')
    op.drop_index('ix_quiz_questions_quiz_order', table_name='quiz_questions')
    op.drop_index('ix_quiz_questions_quiz_id', table_name='quiz_questions')
    op.drop_table('quiz_questions')
    op.drop_table('quiz_assignments')
    op.drop_table('quiz_collaborators')
    op.drop_index('ix_quizzes_created_at', table_name='quizzes')
    op.drop_index('ix_quizzes_owner_id', table_name='quizzes')
    op.drop_index('ix_quizzes_status', table_name='quizzes')
    op.drop_index('ix_quizzes_category', table_name='quizzes')
    op.drop_table('quizzes')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
