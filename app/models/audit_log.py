import uuid
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    """
    Immutable audit trail for admin actions on user accounts.
    Records are INSERT-only; never updated or deleted.

    Actions recorded: DEACTIVATE_USER, ACTIVATE_USER
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    admin_id = Column(
        Uuid(as_uuid=True),
        # SET NULL: preserve log even if admin account is removed
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(100), nullable=True, index=True)
    # e.g. {"sessions_revoked": 2}
    details = Column(JSON, nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    admin = relationship("User", foreign_keys=[admin_id])
