"""initial auth schema

Revision ID: c3d4e5f6a7b8
Revises:
Create Date: 2026-10-18

Creates every table the auth backend uses:
  users                 : identity root, 2FA state, referral code, balance
  accounts              : one row per auth method (credentials / google)
  sessions              : one row per signed-in device, rotated refresh token
  otp_records           : hashed email verification codes (one live per email)
  password_reset_tokens : single-use reset links
  oauth_login_tickets   : one-time tickets handed to the frontend after Google callback
  notifications         : login alerts, security changes, referral bonuses
  referrals             : one completed referral per referred user
  transactions          : referral bonus credits
  audit_logs            : admin activate/deactivate trail

UUID columns use the generic sa.Uuid type: native UUID on Postgres,
CHAR(32) elsewhere.
"""
from alembic import op
import sqlalchemy as sa

revision = 'c3d4e5f6a7b8'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = False) -> list:
    columns = [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('profile_photo', sa.String(500), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('role', sa.Enum('user', 'admin', 'superadmin', name='user_role'), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(16), nullable=False),
        sa.Column(
            'referred_by_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('two_factor_enabled', sa.Boolean(), nullable=False),
        sa.Column('two_factor_secret', sa.String(64), nullable=True),
        sa.Column('backup_codes', sa.JSON(), nullable=False),
        sa.Column('require_two_factor_login', sa.Boolean(), nullable=False),
        *_timestamps(updated=True),
        sa.CheckConstraint(
            'two_factor_enabled OR NOT require_two_factor_login',
            name='ck_users_2fa_login_requires_enabled',
        ),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referral_code', 'users', ['referral_code'], unique=True)

    # ── accounts ───────────────────────────────────────────────────────────
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('provider_id', sa.String(255), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=True),
        *_timestamps(updated=True),
        sa.UniqueConstraint('user_id', 'provider', name='uq_accounts_user_provider'),
        sa.UniqueConstraint('provider', 'provider_id', name='uq_accounts_provider_identity'),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    # ── sessions ───────────────────────────────────────────────────────────
    op.create_table(
        'sessions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('previous_token', sa.String(), nullable=True),
        sa.Column('token_rotated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('device', sa.String(50), nullable=False),
        sa.Column('browser', sa.String(50), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_active', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_token', 'sessions', ['token'], unique=True)
    op.create_index('ix_sessions_previous_token', 'sessions', ['previous_token'])
    op.create_index('ix_sessions_is_active', 'sessions', ['is_active'])

    # ── otp_records / password_reset_tokens ────────────────────────────────
    op.create_table(
        'otp_records',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('code_hash', sa.String(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_otp_records_email', 'otp_records', ['email'])

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_password_reset_tokens_email', 'password_reset_tokens', ['email'])
    op.create_index('ix_password_reset_tokens_token', 'password_reset_tokens', ['token'], unique=True)

    # ── oauth_login_tickets ────────────────────────────────────────────────
    op.create_table(
        'oauth_login_tickets',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column(
            'user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_oauth_login_tickets_token', 'oauth_login_tickets', ['token'], unique=True)
    op.create_index('ix_oauth_login_tickets_user_id', 'oauth_login_tickets', ['user_id'])

    # ── notifications ──────────────────────────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    # ── referrals / transactions ───────────────────────────────────────────
    op.create_table(
        'referrals',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'referrer_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'referred_user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True,
        ),
        sa.Column('status', sa.Enum('pending', 'completed', name='referral_status'), nullable=False),
        sa.Column('reward', sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_referrals_referrer_id', 'referrals', ['referrer_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'user_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('status', sa.Enum('pending', 'completed', 'failed', name='txn_status'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])

    # ── audit_logs ─────────────────────────────────────────────────────────
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'admin_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('target_type', sa.String(50), nullable=True),
        sa.Column('target_id', sa.String(100), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_audit_logs_admin_id', 'audit_logs', ['admin_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_target_id', 'audit_logs', ['target_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('transactions')
    op.drop_table('referrals')
    op.drop_table('notifications')
    op.drop_table('oauth_login_tickets')
    op.drop_table('password_reset_tokens')
    op.drop_table('otp_records')
    op.drop_table('sessions')
    op.drop_table('accounts')
    op.drop_table('users')
    sa.Enum(name='txn_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='referral_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='user_role').drop(op.get_bind(), checkfirst=True)
