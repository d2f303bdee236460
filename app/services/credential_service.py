"""
Credential store: users and their per-provider accounts.

Every email that enters the system goes through normalize_email() first,
so the unique index on users.email is effectively case-insensitive.
"""
import logging
import secrets
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from app.models.user import User, Account

logger = logging.getLogger(__name__)

CREDENTIALS_PROVIDER = "credentials"
GOOGLE_PROVIDER = "google"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_uuid(value) -> Optional[uuid.UUID]:
    """UUID from a token claim or path param; None when it isn't one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_id(db: Session, user_id) -> Optional[User]:
    parsed = parse_uuid(user_id)
    if parsed is None:
        return None
    return db.get(User, parsed)


def get_user_by_referral_code(db: Session, referral_code: str) -> Optional[User]:
    return db.query(User).filter(User.referral_code == referral_code.strip()).first()


def get_account(db: Session, user_id, provider: str) -> Optional[Account]:
    return (
        db.query(Account)
        .filter(Account.user_id == parse_uuid(user_id), Account.provider == provider)
        .first()
    )


def get_account_by_provider_identity(db: Session, provider: str, provider_id: str) -> Optional[Account]:
    return (
        db.query(Account)
        .filter(Account.provider == provider, Account.provider_id == provider_id)
        .first()
    )


def generate_referral_code(db: Session) -> str:
    """8 hex chars, re-rolled on the (rare) collision."""
    while True:
        code = secrets.token_hex(4)
        if not db.query(User.id).filter(User.referral_code == code).first():
            return code


def create_user_with_account(
    db: Session,
    email: str,
    provider: str,
    first_name: str = "",
    last_name: str = "",
    phone: Optional[str] = None,
    password_hash: Optional[str] = None,
    provider_id: Optional[str] = None,
    profile_photo: Optional[str] = None,
    email_verified: bool = False,
    referred_by: Optional[User] = None,
) -> User:
    """
    Creates a User and its first Account in one commit.
    The caller has already checked that the email is free.
    """
    user = User(
        email=normalize_email(email),
        first_name=first_name or "",
        last_name=last_name or "",
        phone=phone,
        profile_photo=profile_photo,
        email_verified=email_verified,
        referral_code=generate_referral_code(db),
        referred_by_id=referred_by.id if referred_by else None,
        backup_codes=[],
    )
    db.add(user)
    db.flush()  # flush to get the UUID assigned without committing

    db.add(Account(
        user_id=user.id,
        provider=provider,
        provider_id=provider_id,
        password_hash=password_hash,
    ))

    db.commit()
    db.refresh(user)
    logger.info(f"User created: {user.email} via {provider}")
    return user


def link_account(db: Session, user: User, provider: str, provider_id: str) -> Account:
    account = Account(user_id=user.id, provider=provider, provider_id=provider_id)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def set_password(db: Session, user: User, password_hash: str) -> Account:
    """
    Stores a new password hash on the user's credentials Account, creating
    that Account when the user so far only signed in through OAuth.
    Does not commit.
    """
    account = get_account(db, user.id, CREDENTIALS_PROVIDER)
    if account:
        account.password_hash = password_hash
    else:
        account = Account(
            user_id=user.id,
            provider=CREDENTIALS_PROVIDER,
            provider_id=None,
            password_hash=password_hash,
        )
        db.add(account)
        logger.info(f"Created credentials account for OAuth user: {user.email}")
    return account
