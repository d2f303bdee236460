# models/__init__.py
# Import all models here so that:
# 1. Alembic's env.py can import this single module and detect all tables.
# 2. SQLAlchemy relationship() calls resolve correctly (all classes in same metadata).
# Order matters: models with no foreign keys first, then dependents.

from app.models.user import User, Account
from app.models.session import UserSession
from app.models.otp import OTPRecord, PasswordResetToken
from app.models.oauth_ticket import OAuthLoginTicket
from app.models.notification import Notification
from app.models.referral import Referral, Transaction
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Account",
    "UserSession",
    "OTPRecord",
    "PasswordResetToken",
    "OAuthLoginTicket",
    "Notification",
    "Referral",
    "Transaction",
    "AuditLog",
]
