"""create exam access tables

Revision ID: 5c1a9e2d7b40
Revises:
Create Date: 2026-10-17 10:12:05.118734

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '5c1a9e2d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    conn = op.get_bind()
    return table_name in inspect(conn).get_table_names()


def upgrade() -> None:
    # users and submissions may already be owned by the main platform schema
    if not table_exists('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('hashed_password', sa.String(), nullable=False),
            sa.Column('role', sa.Enum('admin', 'faculty', 'student', name='user_role'), nullable=False),
            sa.Column('full_name', sa.String(), nullable=False),
            sa.Column('roll_no', sa.String(), nullable=True),
            sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        )
        op.create_index('ix_users_id', 'users', ['id'])
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    if not table_exists('submissions'):
        op.create_table(
            'submissions',
            sa.Column('id', sa.String(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('challenge_id', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=True),
            sa.Column('passed', sa.Boolean(), nullable=True),
            sa.Column('submitted_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        )
        op.create_index('ix_submissions_id', 'submissions', ['id'])

    op.create_table(
        'courses',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('restrictions', sa.Text(), nullable=True),
        sa.Column('level_settings', sa.Text(), nullable=True),
    )
    op.create_index('ix_courses_id', 'courses', ['id'])

    op.create_table(
        'daily_schedules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_daily_schedules_id', 'daily_schedules', ['id'])

    op.create_table(
        'global_test_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('course_id', sa.String(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('ended_reason', sa.Enum('NORMAL', 'FORCED', 'TIMEOUT', name='session_end_reason'), nullable=True),
        sa.Column('forced_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_global_test_sessions_id', 'global_test_sessions', ['id'])
    op.create_index('ix_global_test_sessions_course_id', 'global_test_sessions', ['course_id'])

    op.create_table(
        'test_attendance',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('test_identifier', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=True),
        sa.Column(
            'state',
            sa.Enum('requested', 'approved', 'rejected', 'locked', 'used', name='attendance_state'),
            nullable=False,
        ),
        sa.Column('locked_reason', sa.String(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('violation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.UniqueConstraint('user_id', 'session_id', name='uq_attendance_user_session'),
    )
    op.create_index('ix_test_attendance_id', 'test_attendance', ['id'])
    op.create_index('ix_test_attendance_user_id', 'test_attendance', ['user_id'])
    op.create_index('ix_test_attendance_test_identifier', 'test_attendance', ['test_identifier'])
    op.create_index('ix_test_attendance_session_id', 'test_attendance', ['session_id'])

    op.create_table(
        'test_sessions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('course_id', sa.String(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('submission_ids', sa.JSON(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('passed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overall_status', sa.Enum('passed', 'failed', name='attempt_status'), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('user_feedback', sa.Text(), nullable=True),
    )
    op.create_index('ix_test_sessions_user_id', 'test_sessions', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_test_sessions_user_id', table_name='test_sessions')
    op.drop_table('test_sessions')

    op.drop_index('ix_test_attendance_session_id', table_name='test_attendance')
    op.drop_index('ix_test_attendance_test_identifier', table_name='test_attendance')
    op.drop_index('ix_test_attendance_user_id', table_name='test_attendance')
    op.drop_index('ix_test_attendance_id', table_name='test_attendance')
    op.drop_table('test_attendance')

    op.drop_index('ix_global_test_sessions_course_id', table_name='global_test_sessions')
    op.drop_index('ix_global_test_sessions_id', table_name='global_test_sessions')
    op.drop_table('global_test_sessions')

    op.drop_index('ix_daily_schedules_id', table_name='daily_schedules')
    op.drop_table('daily_schedules')

    op.drop_index('ix_courses_id', table_name='courses')
    op.drop_table('courses')
    # users / submissions are left alone, they may predate this revision
