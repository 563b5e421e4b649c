"""initial waitroom schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=False)
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)

    op.create_table(
        'projects',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('api_key', sa.String(64), nullable=False),
        sa.Column('secret_key', sa.String(64), nullable=False),
        sa.Column('settings', sa.Text(), nullable=True),
        sa.Column('next_join_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_entries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('api_key'),
        sa.UniqueConstraint('secret_key'),
    )
    op.create_index(op.f('ix_projects_id'), 'projects', ['id'], unique=False)
    op.create_index(op.f('ix_projects_user_id'), 'projects', ['user_id'], unique=False)
    op.create_index(op.f('ix_projects_api_key'), 'projects', ['api_key'], unique=False)

    op.create_table(
        'waitlist_entries',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('username', sa.String(30), nullable=False),
        sa.Column('display_username', sa.String(30), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('metadata', sa.Text(), nullable=True),
        sa.Column('tags', sa.Text(), nullable=True),
        sa.Column('referred_by', sa.String(30), nullable=True),
        sa.Column('invite_code', sa.String(32), nullable=False),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('priority_score', sa.String(40), nullable=False),
        sa.Column('join_index', sa.Integer(), nullable=False),
        sa.Column('total_at_join', sa.Integer(), nullable=False),
        sa.Column('initial_position', sa.Integer(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('time_score', sa.String(40), nullable=False),
        sa.Column('verified_referrals_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verified_shares_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'status',
            sa.Enum('active', 'invited', 'converted', 'blocked', name='entrystatus'),
            nullable=False,
        ),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'username', name='uq_waitlist_project_username'),
        sa.UniqueConstraint('project_id', 'email', name='uq_waitlist_project_email'),
        sa.UniqueConstraint('project_id', 'join_index', name='uq_waitlist_project_join_index'),
        sa.CheckConstraint('join_index >= 0', name='ck_waitlist_join_index_non_negative'),
        sa.CheckConstraint('total_at_join > join_index', name='ck_waitlist_total_at_join'),
    )
    op.create_index(op.f('ix_waitlist_entries_id'), 'waitlist_entries', ['id'], unique=False)
    op.create_index(op.f('ix_waitlist_entries_project_id'), 'waitlist_entries', ['project_id'], unique=False)
    op.create_index(op.f('ix_waitlist_entries_invite_code'), 'waitlist_entries', ['invite_code'], unique=True)
    op.create_index('ix_waitlist_project_status', 'waitlist_entries', ['project_id', 'status'], unique=False)
    op.create_index('ix_waitlist_project_position', 'waitlist_entries', ['project_id', 'position'], unique=False)

    op.create_table(
        'waitlist_referrals',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('referrer_username', sa.String(30), nullable=False),
        sa.Column('referee_username', sa.String(30), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'verification_method',
            sa.Enum('invite_code', 'manual', name='referralverificationmethod'),
            nullable=False,
        ),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'referee_username', name='uq_referrals_project_referee'),
    )
    op.create_index(op.f('ix_waitlist_referrals_id'), 'waitlist_referrals', ['id'], unique=False)
    op.create_index(
        'ix_referrals_project_referrer', 'waitlist_referrals', ['project_id', 'referrer_username'], unique=False
    )

    op.create_table(
        'waitlist_social_shares',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('username', sa.String(30), nullable=False),
        sa.Column(
            'platform',
            sa.Enum(
                'twitter', 'facebook', 'linkedin', 'instagram', 'tiktok', 'reddit', 'other',
                name='shareplatform',
            ),
            nullable=False,
        ),
        sa.Column('share_url', sa.Text(), nullable=True),
        sa.Column('platform_post_id', sa.String(255), nullable=True),
        sa.Column('verification_token', sa.String(32), nullable=False),
        sa.Column('status', sa.Enum('pending', 'verified', 'rejected', name='sharestatus'), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'verification_method',
            sa.Enum('token_verification', 'manual', 'optimistic', name='shareverificationmethod'),
            nullable=False,
        ),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_waitlist_social_shares_id'), 'waitlist_social_shares', ['id'], unique=False)
    op.create_index(
        op.f('ix_waitlist_social_shares_verification_token'),
        'waitlist_social_shares',
        ['verification_token'],
        unique=True,
    )
    op.create_index(
        'ix_social_shares_project_username', 'waitlist_social_shares', ['project_id', 'username'], unique=False
    )
    op.create_index(
        'ix_social_shares_project_platform', 'waitlist_social_shares', ['project_id', 'platform'], unique=False
    )

    op.create_table(
        'waitlist_events',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column(
            'event_type',
            sa.Enum(
                'joined', 'referred', 'shared', 'verified', 'invited', 'converted', 'blocked', 'position_updated',
                name='eventtype',
            ),
            nullable=False,
        ),
        sa.Column('username', sa.String(30), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_waitlist_events_id'), 'waitlist_events', ['id'], unique=False)
    op.create_index(
        'ix_waitlist_events_project_created', 'waitlist_events', ['project_id', 'created_at'], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('waitlist_events')
    op.drop_table('waitlist_social_shares')
    op.drop_table('waitlist_referrals')
    op.drop_table('waitlist_entries')
    op.drop_table('projects')
    op.drop_table('users')
    for enum_name in (
        'eventtype',
        'shareverificationmethod',
        'sharestatus',
        'shareplatform',
        'referralverificationmethod',
        'entrystatus',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
