"""
Two-factor authentication (TOTP, RFC 6238) with single-use backup codes.
Compatible with Google Authenticator, Authy, Aegis.

State machine over the 2FA fields on User:
    TwoFactorDisabled ──setup──► TwoFactorProvisioned ──enable(code)──► TwoFactorEnabled
            ▲                                                                   │
            └──────────────────────────── disable(live TOTP code) ◄─────────────┘

setup() may be repeated while provisioned (the secret is simply replaced).
require-on-login is a flag of the enabled state only; the users table also
carries a check constraint rejecting it otherwise.

Backup codes are stored as "salt$sha256(salt + CODE)". They are high-entropy
and compared against at most 10 entries, so a fast hash is enough.
"""
import base64
import hashlib
import io
import logging
import secrets
from dataclasses import dataclass
from typing import Union

import pyotp
import qrcode
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import InvalidTwoFactorCodeException, TwoFactorStateException
from app.models.user import User

logger = logging.getLogger(__name__)

BACKUP_CODE_COUNT = 10
# ±2 time steps (±60s) of clock skew between server and authenticator
TOTP_VALID_WINDOW = 2


# ── State ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TwoFactorDisabled:
    pass


@dataclass(frozen=True)
class TwoFactorProvisioned:
    secret: str


@dataclass(frozen=True)
class TwoFactorEnabled:
    secret: str
    backup_code_hashes: tuple
    login_required: bool


TwoFactorState = Union[TwoFactorDisabled, TwoFactorProvisioned, TwoFactorEnabled]


def two_factor_state(user: User) -> TwoFactorState:
    if user.two_factor_enabled and user.two_factor_secret:
        return TwoFactorEnabled(
            secret=user.two_factor_secret,
            backup_code_hashes=tuple(user.backup_codes or ()),
            login_required=bool(user.require_two_factor_login),
        )
    if user.two_factor_secret:
        return TwoFactorProvisioned(secret=user.two_factor_secret)
    return TwoFactorDisabled()


def login_requires_two_factor(user: User) -> bool:
    state = two_factor_state(user)
    return isinstance(state, TwoFactorEnabled) and state.login_required


# ── Helpers ───────────────────────────────────────────────────────────────────

def _clean_code(code: str) -> str:
    return (code or "").strip().replace(" ", "").replace("-", "")


def verify_totp(secret: str, code: str) -> bool:
    code = _clean_code(code)
    if not secret or len(code) != 6 or not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=TOTP_VALID_WINDOW)


def _hash_backup_code(code: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}{code.upper()}".encode()).hexdigest()


def _generate_backup_codes() -> tuple[list[str], list[str]]:
    """Returns (plaintext codes for the user, stored hashes)."""
    codes = [secrets.token_hex(4).upper() for _ in range(BACKUP_CODE_COUNT)]
    stored = []
    for code in codes:
        salt = secrets.token_hex(8)
        stored.append(f"{salt}${_hash_backup_code(code, salt)}")
    return codes, stored


def _match_backup_code(stored: list[str], code: str) -> int:
    """Index of the stored entry matching code, or -1."""
    candidate = _clean_code(code).upper()
    if not candidate:
        return -1
    for index, entry in enumerate(stored):
        salt, _, digest = entry.partition("$")
        if secrets.compare_digest(_hash_backup_code(candidate, salt), digest):
            return index
    return -1


def generate_qr_code_data_url(uri: str) -> str:
    """PNG of the provisioning URI, ready for <img src=...>."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("utf-8")


# ── Operations ────────────────────────────────────────────────────────────────

def setup_two_factor(db: Session, user: User) -> dict:
    """Generates a fresh secret. The user must confirm it with enable()."""
    if isinstance(two_factor_state(user), TwoFactorEnabled):
        raise TwoFactorStateException("Two-factor authentication is already enabled")

    secret = pyotp.random_base32()
    uri = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=settings.app_name)

    user.two_factor_secret = secret
    db.commit()
    logger.info(f"2FA setup initiated for {user.email}")

    return {
        "secret": secret,
        "otpauth_url": uri,
        "qr_code": generate_qr_code_data_url(uri),
    }


def enable_two_factor(db: Session, user: User, code: str) -> list[str]:
    """Confirms the provisioned secret. Returns the backup codes; they are never shown again."""
    state = two_factor_state(user)
    if isinstance(state, TwoFactorEnabled):
        raise TwoFactorStateException("2FA is already enabled")
    if isinstance(state, TwoFactorDisabled):
        raise TwoFactorStateException("2FA setup not initiated. Please setup 2FA first.")

    if not verify_totp(state.secret, code):
        raise InvalidTwoFactorCodeException("Invalid verification code. Please try again.")

    codes, stored = _generate_backup_codes()
    user.two_factor_enabled = True
    user.backup_codes = stored
    db.commit()
    logger.info(f"2FA enabled for {user.email}")
    return codes


def verify_login_code(db: Session, user: User, code: str) -> bool:
    """
    Login step-up gate. TOTP first, then backup codes; a matching backup code
    is consumed. Never raises: any failure is simply False.
    """
    state = two_factor_state(user)
    if not isinstance(state, TwoFactorEnabled):
        return False

    if verify_totp(state.secret, code):
        return True

    # Re-read under lock so one backup code can't be spent twice concurrently
    db.refresh(user, with_for_update=True)
    stored = list(user.backup_codes or [])
    index = _match_backup_code(stored, code)
    if index < 0:
        db.rollback()
        return False

    del stored[index]
    user.backup_codes = stored  # reassign; in-place JSON mutation isn't tracked
    db.commit()
    logger.info(f"Backup code used for {user.email}, {len(stored)} remaining")
    return True


def disable_two_factor(db: Session, user: User, code: str) -> None:
    """Requires a live TOTP code: backup codes are not accepted here."""
    state = two_factor_state(user)
    if not isinstance(state, TwoFactorEnabled):
        raise TwoFactorStateException("2FA is not enabled")

    if not verify_totp(state.secret, code):
        raise InvalidTwoFactorCodeException()

    user.require_two_factor_login = False
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.backup_codes = []
    db.commit()
    logger.info(f"2FA disabled for {user.email}")


def regenerate_backup_codes(db: Session, user: User, code: str) -> list[str]:
    state = two_factor_state(user)
    if not isinstance(state, TwoFactorEnabled):
        raise TwoFactorStateException("2FA must be enabled to generate backup codes")

    if not verify_totp(state.secret, code):
        raise InvalidTwoFactorCodeException()

    codes, stored = _generate_backup_codes()
    user.backup_codes = stored
    db.commit()
    logger.info(f"Backup codes regenerated for {user.email}")
    return codes


def set_login_requirement(db: Session, user: User, require: bool) -> bool:
    if require and not isinstance(two_factor_state(user), TwoFactorEnabled):
        raise TwoFactorStateException("You must enable 2FA before requiring it for login.")

    user.require_two_factor_login = require
    db.commit()
    logger.info(f"2FA login requirement for {user.email} set to {require}")
    return require


def two_factor_status(user: User) -> dict:
    state = two_factor_state(user)
    enabled = isinstance(state, TwoFactorEnabled)
    return {
        "enabled": enabled,
        "require_on_login": enabled and state.login_required,
        "backup_codes_remaining": len(state.backup_code_hashes) if enabled else 0,
    }
