import uuid
from sqlalchemy import (
    Boolean, CheckConstraint, Column, String, Integer, TIMESTAMP, ForeignKey, JSON,
    UniqueConstraint, Uuid, Enum as SAEnum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class User(Base):
    """
    Identity root. Owns its Accounts (one per auth provider) and its Sessions.

    Users are never hard-deleted; deactivation flips is_active and revokes
    every active session.

    2FA fields jointly encode one state machine (see two_factor_service):
      disabled     → secret NULL, enabled False
      provisioned  → secret set,  enabled False
      enabled      → secret set,  enabled True (+ backup codes, login flag)
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "two_factor_enabled OR NOT require_two_factor_login",
            name="ck_users_2fa_login_requires_enabled",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    # Always stored normalised (lowercase, trimmed); see credential_service.normalize_email
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(50), nullable=True)
    profile_photo = Column(String(500), nullable=True)

    # Flags
    email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    role = Column(
        SAEnum("user", "admin", "superadmin", name="user_role"),
        nullable=False,
        default="user",
    )

    # Whole currency units, never floats
    balance = Column(Integer, nullable=False, default=0)

    # Referrals
    referral_code = Column(String(16), unique=True, nullable=False, index=True)
    referred_by_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Two-factor authentication
    two_factor_enabled = Column(Boolean, default=False, nullable=False)
    two_factor_secret = Column(String(64), nullable=True)
    # "salt$sha256" strings; each code is removed from the list once used
    backup_codes = Column(JSON, nullable=False, default=list)
    require_two_factor_login = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────────
    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    referred_by = relationship("User", remote_side=[id])

    @property
    def display_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.last_name or None

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "superadmin")


class Account(Base):
    """
    One authentication method bound to exactly one User.

    provider="credentials" carries a password hash and no provider_id;
    OAuth providers carry provider_id and no password hash.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_accounts_user_provider"),
        UniqueConstraint("provider", "provider_id", name="uq_accounts_provider_identity"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider = Column(String(32), nullable=False)
    provider_id = Column(String(255), nullable=True)
    password_hash = Column(String, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="accounts")
