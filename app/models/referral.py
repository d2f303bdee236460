import uuid
from sqlalchemy import Column, Integer, TIMESTAMP, ForeignKey, String, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Referral(Base):
    """One row per referred user; a user can only ever be referred once."""
    __tablename__ = "referrals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    referrer_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    referred_user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    status = Column(
        SAEnum("pending", "completed", name="referral_status"),
        nullable=False,
        default="completed",
    )
    reward = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    referrer = relationship("User", foreign_keys=[referrer_id])
    referred_user = relationship("User", foreign_keys=[referred_user_id])


class Transaction(Base):
    """
    Ledger entry. Only referral bonuses are written from the auth flow;
    deposits, withdrawals and transfers live in the funds service.
    """
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(String(50), nullable=False)  # "referral", "deposit", ...
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False)
    status = Column(
        SAEnum("pending", "completed", "failed", name="txn_status"),
        nullable=False,
        default="pending",
    )
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User")
