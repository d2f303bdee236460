"""
Referral bonus crediting.

The bonus is all-or-nothing: the Referral row, both balance increments and
both ledger entries go out in a single commit. Both user rows are locked
with SELECT FOR UPDATE while the balances change.

Locking order convention (to prevent deadlocks):
  ALWAYS lock the referrer BEFORE the referred user. Never reverse this order.

Callers in the auth flow treat a failure here as non-fatal: verification
or OAuth sign-up must still succeed without the bonus.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.referral import Referral, Transaction
from app.models.user import User

logger = logging.getLogger(__name__)

REFERRAL_BONUS = 10


def _lock_user(db: Session, user_id) -> Optional[User]:
    return db.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()


def credit_referral_bonus(db: Session, referred_user: User) -> Optional[Referral]:
    """
    Pays the referrer and the referred user REFERRAL_BONUS each.
    Returns None when the user wasn't referred or was already credited.
    Raises on database failure after rolling back.
    """
    if not referred_user.referred_by_id:
        return None

    already = db.query(Referral.id).filter(Referral.referred_user_id == referred_user.id).first()
    if already:
        return None

    try:
        referrer = _lock_user(db, referred_user.referred_by_id)
        referred = _lock_user(db, referred_user.id)
        if referrer is None or referred is None:
            db.rollback()
            logger.warning(f"Referral for {referred_user.email} skipped: referrer no longer exists")
            return None

        referral = Referral(
            referrer_id=referrer.id,
            referred_user_id=referred.id,
            status="completed",
            reward=REFERRAL_BONUS,
        )
        db.add(referral)

        referrer.balance += REFERRAL_BONUS
        db.add(Transaction(
            user_id=referrer.id,
            type="referral",
            amount=REFERRAL_BONUS,
            status="completed",
            description=f"Referral bonus for inviting {referred.display_name or referred.email}",
        ))

        referred.balance += REFERRAL_BONUS
        db.add(Transaction(
            user_id=referred.id,
            type="referral",
            amount=REFERRAL_BONUS,
            status="completed",
            description="Welcome bonus for joining via referral",
        ))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(referral)
    logger.info(f"Referral bonus credited: {REFERRAL_BONUS} to {referrer.email} and {referred.email}")
    return referral
