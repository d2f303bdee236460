import uuid
from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from app.database import Base


class OTPRecord(Base):
    """
    Email verification code.

    Security notes:
    - Raw code is NEVER stored; only the bcrypt hash.
    - Issuing a new code deletes every previous code for the same email,
      so at most one code is live per email.
    - Codes expire after OTP_EXPIRY_MINUTES (10 min) and die after
      OTP_MAX_ATTEMPTS (5) wrong guesses.
    - Not tied to a user row: the email is the key.
    """
    __tablename__ = "otp_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    code_hash = Column(String, nullable=False)  # bcrypt hash of the raw 6-digit code
    attempts = Column(Integer, nullable=False, default=0)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())


class PasswordResetToken(Base):
    """
    Single-use password reset link token (1 hour).
    At most one per email; expired rows are deleted lazily when looked up.
    """
    __tablename__ = "password_reset_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    used = Column(Boolean, default=False, nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
