"""
OTP service: generation, storage (hashed), and verification of email codes.

Security design decisions:
  1. Raw OTP is NEVER stored; only bcrypt hash. If DB is breached, OTPs are useless.
  2. A new code deletes every previous code for the same email: one live code per email.
  3. Codes expire after 10 minutes.
  4. secrets.randbelow() is cryptographically secure (unlike random.randint).
  5. Five wrong guesses burn the code, on top of slowapi rate limiting at the HTTP layer.

Both limits are part of the contract with the frontend; do not tune them.
"""
import logging
import secrets
from datetime import timedelta
from sqlalchemy.orm import Session

from app.models.otp import OTPRecord
from app.core.clock import utcnow, as_utc
from app.core.exceptions import InvalidOTPException, OTPExpiredException, TooManyOTPAttemptsException
from app.core.security import pwd_context
from app.services.credential_service import normalize_email

logger = logging.getLogger(__name__)

OTP_EXPIRY_MINUTES = 10
OTP_MAX_ATTEMPTS = 5


def generate_otp() -> str:
    """
    Generate a cryptographically secure 6-digit OTP.
    secrets.randbelow(900000) gives 0–899999, +100000 gives 100000–999999.
    Always 6 digits; no leading zero issues.
    """
    return str(secrets.randbelow(900000) + 100000)


def create_otp_record(db: Session, email: str) -> str:
    """
    Creates a new OTP record in the DB and returns the raw OTP.

    Steps:
    1. Delete any previous OTPs for this email (the old code stops working).
    2. Generate new raw OTP and hash it with bcrypt.
    3. Store hash, expiry, and a zero attempt counter.
    4. Return the raw OTP to the caller (who passes it to email_service).
    """
    email = normalize_email(email)

    db.query(OTPRecord).filter(OTPRecord.email == email).delete(synchronize_session=False)

    raw_otp = generate_otp()
    record = OTPRecord(
        email=email,
        code_hash=pwd_context.hash(raw_otp),
        attempts=0,
        expires_at=utcnow() + timedelta(minutes=OTP_EXPIRY_MINUTES),
    )
    db.add(record)
    db.commit()

    return raw_otp


def verify_otp_record(db: Session, email: str, otp: str) -> None:
    """
    Verifies a submitted code against the most recent record for the email.
    Returns None on success (the record is deleted; single use), raises otherwise:

    - no record            → InvalidOTPException
    - expired              → record deleted, OTPExpiredException
    - attempts exhausted   → record deleted, TooManyOTPAttemptsException
    - wrong code           → attempts + 1, InvalidOTPException with remaining count

    Every state change is committed before raising.
    """
    email = normalize_email(email)
    record = (
        db.query(OTPRecord)
        .filter(OTPRecord.email == email)
        .order_by(OTPRecord.created_at.desc())
        .first()
    )

    if not record:
        raise InvalidOTPException()

    if utcnow() > as_utc(record.expires_at):
        db.delete(record)
        db.commit()
        raise OTPExpiredException()

    if record.attempts >= OTP_MAX_ATTEMPTS:
        db.delete(record)
        db.commit()
        logger.warning(f"OTP attempts exhausted for {email}")
        raise TooManyOTPAttemptsException()

    if not pwd_context.verify(otp, record.code_hash):
        record.attempts += 1
        db.commit()
        remaining = OTP_MAX_ATTEMPTS - record.attempts
        plural = "s" if remaining != 1 else ""
        raise InvalidOTPException(
            f"Invalid code. {remaining} attempt{plural} remaining.",
            attempts_remaining=remaining,
        )

    db.delete(record)
    db.commit()

