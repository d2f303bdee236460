import uuid
from sqlalchemy import Boolean, Column, String, TIMESTAMP, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class UserSession(Base):
    """
    One logical login on one device.

    token always holds the current refresh token. Right after a rotation the
    superseded token sits in previous_token, and token_rotated_at marks the
    start of its grace window (see session_service.REFRESH_GRACE_PERIOD).

    Rows are never deleted: logout, revocation, force-login displacement and
    password reset all flip is_active to False, which is terminal.
    """
    __tablename__ = "sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = Column(String, unique=True, nullable=False, index=True)
    previous_token = Column(String, nullable=True, index=True)
    token_rotated_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # Device fingerprint used by the single-device policy
    device = Column(String(50), nullable=False, default="Unknown")
    browser = Column(String(50), nullable=False, default="Unknown")
    ip_address = Column(String(64), nullable=False, default="")
    location = Column(String(255), nullable=False, default="Unknown")

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_active = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    # ── Relationships ──────────────────────────────────────────────────────────
    user = relationship("User", back_populates="sessions")
