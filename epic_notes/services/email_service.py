"""
Email service using fastapi-mail over SMTP.

Unlike a fire-and-forget background task, the verification emails are sent
inline: if the send fails the calling flow reports it as a form error, because
the user cannot continue without the code.

fastapi-mail notes:
  - MAIL_STARTTLS=True, MAIL_SSL_TLS=False for port 587
  - MAIL_SSL_TLS=True, MAIL_STARTTLS=False for port 465
  - SUPPRESS_SEND=1 skips the SMTP connection entirely (local dev / tests)
"""
import logging

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

from epic_notes.config import settings
from epic_notes.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

# Build connection config once at module level, not per request
mail_config = ConnectionConfig(
    MAIL_USERNAME=settings.mail_username,
    MAIL_PASSWORD=settings.mail_password,
    MAIL_FROM=settings.mail_from,
    MAIL_FROM_NAME=settings.app_name,
    MAIL_PORT=settings.mail_port,
    MAIL_SERVER=settings.mail_server,
    MAIL_STARTTLS=settings.mail_port == 587,
    MAIL_SSL_TLS=settings.mail_port == 465,
    USE_CREDENTIALS=bool(settings.mail_username),
    VALIDATE_CERTS=True,
    SUPPRESS_SEND=1 if settings.mail_suppress_send else 0,
)

fast_mail = FastMail(mail_config)


async def send_email(*, to: str, subject: str, body: str) -> None:
    """
    Send one plain-text email.
    Raises EmailDeliveryError on any transport failure; the original exception
    is logged here and never shown to the user.
    """
    message = MessageSchema(
        subject=subject,
        recipients=[to],
        body=body,
        subtype=MessageType.plain,
    )
    try:
        await fast_mail.send_message(message)
    except Exception as exc:
        logger.error(f"Email delivery to {to} failed: {exc!r}")
        raise EmailDeliveryError(f"Could not send email to {to}") from exc
    logger.info(f"Sent email '{subject}' to {to}")


# ── Message bodies ────────────────────────────────────────────────────────────

async def send_onboarding_email(email_to: str, otp: str, verify_url: str) -> None:
    await send_email(
        to=email_to,
        subject=f"Welcome to {settings.app_name}!",
        body=(
            f"Welcome to {settings.app_name}!\n\n"
            f"Here's your verification code: {otp}\n\n"
            f"Or click the link to get started:\n{verify_url}\n\n"
            f"If you did not request this, please ignore this email."
        ),
    )


async def send_reset_password_email(email_to: str, otp: str, verify_url: str) -> None:
    await send_email(
        to=email_to,
        subject=f"{settings.app_name} Password Reset",
        body=(
            f"Here's your verification code: {otp}\n\n"
            f"Or click the link to reset your password:\n{verify_url}\n\n"
            f"If you did not request a password reset, please ignore this email."
        ),
    )


async def send_change_email_email(email_to: str, otp: str, verify_url: str) -> None:
    await send_email(
        to=email_to,
        subject=f"{settings.app_name} Email Change Verification",
        body=(
            f"Here's your verification code: {otp}\n\n"
            f"Or click the link to confirm the change:\n{verify_url}\n"
        ),
    )


async def send_email_changed_notice(email_to: str) -> None:
    await send_email(
        to=email_to,
        subject=f"Your {settings.app_name} email has been changed",
        body=(
            f"We're writing to let you know that your {settings.app_name} email "
            f"address has been changed.\n\n"
            f"If you changed your email address, then you can safely ignore this. "
            f"But if you did not change your email address, then please contact support immediately."
        ),
    )
