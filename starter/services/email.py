"""Email sending service with SMTP."""

import asyncio
from email.message import EmailMessage

import aiosmtplib
from aiosmtplib.errors import (
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPConnectTimeoutError,
    SMTPException,
    SMTPReadTimeoutError,
)

from starter.config import settings
from starter.core.logging import get_logger

logger = get_logger(__name__)


async def send_email(to: str, subject: str, body: str) -> bool:
    """
    Send a plain-text email via SMTP with retry logic.

    Returns:
        True if email sent successfully, False otherwise

    Note:
        This function logs errors but does NOT raise exceptions. The arq jobs
        in starter.tasks.email_jobs turn a False into a retry.
    """
    message = EmailMessage()
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    # Only retry connection failures where we know the email wasn't queued
    max_retries = 3
    for attempt in range(max_retries):
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USER or None,
                password=settings.SMTP_PASSWORD or None,
                use_tls=settings.SMTP_TLS,
                start_tls=settings.SMTP_STARTTLS,
                timeout=30,
            )
            logger.info("email_sent_success", to=to, subject=subject, attempt=attempt + 1)
            return True

        except SMTPReadTimeoutError as e:
            # Never retry: the server may already have queued the message
            logger.error(
                "email_send_timeout_after_data",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        except SMTPAuthenticationError as e:
            logger.error(
                "email_auth_failed",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        except (SMTPConnectError, SMTPConnectTimeoutError) as e:
            # Connection never established, no data sent
            logger.warning(
                "email_connection_failed",
                to=to,
                subject=subject,
                attempt=attempt + 1,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt < max_retries - 1:
                # Exponential backoff: 1s, 2s
                await asyncio.sleep(2**attempt)
            else:
                logger.error("email_connection_failed_all_retries", to=to, subject=subject)
                return False

        except SMTPException as e:
            logger.error(
                "email_smtp_error",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        except Exception as e:
            logger.error(
                "email_send_unexpected_error",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    return False


async def send_verification_email(email: str, first_name: str | None, token: str) -> bool:
    """
    Send email verification link.

    Args:
        email: Recipient address
        first_name: Used in the greeting when known
        token: Raw verification token (not hashed)
    """
    verification_url = f"{settings.CLIENT_URL}/auth/verify-email?token={token}"

    subject = "Verify your email address"
    body = f"""Welcome to {settings.PROJECT_NAME}, {first_name or email}!

Please verify your email address by opening the link below:

{verification_url}

If you didn't create an account, you can safely ignore this email.
"""

    return await send_email(to=email, subject=subject, body=body)


async def send_password_reset_email(email: str, first_name: str | None, token: str) -> bool:
    """
    Send password reset link.

    Args:
        email: Recipient address
        first_name: Used in the greeting when known
        token: Raw reset token (not hashed)
    """
    reset_url = f"{settings.CLIENT_URL}/auth/reset-password?token={token}"

    subject = "Reset your password"
    body = f"""Hi {first_name or email},

We received a request to reset your password. Open the link below:

{reset_url}

This link will expire in {settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes.

If you didn't request this, you can safely ignore this email. Your password will not change.
"""

    return await send_email(to=email, subject=subject, body=body)
