import uuid
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, Uuid
from sqlalchemy.sql import func
from app.database import Base


class OAuthLoginTicket(Base):
    """
    One-time proof that a provider authenticated this user.

    Created by the OAuth callback and handed to the frontend in the redirect
    URL instead of real tokens. The frontend exchanges it for session cookies;
    it is deleted only once a session has actually been issued, so it can be
    re-submitted with a 2FA code or a force-login flag in between.
    """
    __tablename__ = "oauth_login_tickets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    token = Column(String(128), unique=True, nullable=False, index=True)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider = Column(String(32), nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
