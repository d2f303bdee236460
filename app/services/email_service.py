"""
Email service using fastapi-mail over SMTP.

Gmail setup steps (do this once):
  1. Enable 2-Factor Authentication on your Gmail account
  2. Go to: Google Account → Security → App Passwords
  3. Create an app password for "Mail"
  4. Use that 16-character password as MAIL_PASSWORD in your .env
     (NOT your real Gmail password)

Every sender is queued through FastAPI BackgroundTasks, so the HTTP response
never waits on SMTP, and every sender swallows its own failure: a mail
outage must never fail a registration or a login. Failures are logged and
not retried inline; users can ask for a new code.

MAIL_SUPPRESS_SEND=true builds the messages without delivering them.
"""
import logging

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from app.config import settings
from app.services.otp_service import OTP_EXPIRY_MINUTES

logger = logging.getLogger(__name__)

# Build connection config once at module level; don't rebuild on every request
mail_config = ConnectionConfig(
    MAIL_USERNAME=settings.mail_username,
    MAIL_PASSWORD=settings.mail_password,
    MAIL_FROM=settings.mail_from,
    MAIL_FROM_NAME=settings.app_name,
    MAIL_PORT=settings.mail_port,
    MAIL_SERVER=settings.mail_server,
    MAIL_STARTTLS=True,    # required for port 587 (STARTTLS)
    MAIL_SSL_TLS=False,    # don't use SSL on port 587
    USE_CREDENTIALS=bool(settings.mail_username),
    VALIDATE_CERTS=True,
    SUPPRESS_SEND=int(settings.mail_suppress_send),
)

fast_mail = FastMail(mail_config)


async def _send(email_to: str, subject: str, body: str, kind: str) -> None:
    message = MessageSchema(
        subject=subject,
        recipients=[email_to],
        body=body,
        subtype=MessageType.plain,
    )
    try:
        await fast_mail.send_message(message)
    except Exception as exc:
        logger.error(f"Failed to send {kind} email to {email_to}: {exc}")
        return
    logger.info(f"Sent {kind} email to {email_to}")


async def send_verification_code(email_to: str, code: str, first_name: str) -> None:
    await _send(
        email_to,
        f"Verify your {settings.app_name} account",
        (
            f"Hi {first_name or 'there'},\n\n"
            f"Your verification code is: {code}\n\n"
            f"This code is valid for {OTP_EXPIRY_MINUTES} minutes.\n"
            f"Do not share this with anyone.\n\n"
            f"If you did not create an account, please ignore this email."
        ),
        "verification",
    )


async def send_password_reset_link(email_to: str, first_name: str, reset_url: str) -> None:
    await _send(
        email_to,
        f"Reset your {settings.app_name} password",
        (
            f"Hi {first_name or 'there'},\n\n"
            f"We received a request to reset your password. Open the link below "
            f"to choose a new one:\n\n{reset_url}\n\n"
            f"This link is valid for 1 hour and can only be used once.\n"
            f"If you did not request a password reset, please ignore this email."
        ),
        "password reset",
    )


async def send_login_alert(
    email_to: str,
    first_name: str,
    device: str,
    browser: str,
    location: str,
    ip_address: str,
) -> None:
    await _send(
        email_to,
        f"New sign-in to your {settings.app_name} account",
        (
            f"Hi {first_name or 'there'},\n\n"
            f"Your account was just signed in to:\n\n"
            f"  Device:   {device}\n"
            f"  Browser:  {browser}\n"
            f"  Location: {location}\n"
            f"  IP:       {ip_address or 'unknown'}\n\n"
            f"If this was you, no action is needed. If not, reset your password "
            f"immediately and enable two-factor authentication."
        ),
        "login alert",
    )
