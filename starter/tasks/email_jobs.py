"""Email background jobs for the arq worker."""

from typing import Any

from arq import Retry

from starter.core.database import get_async_session
from starter.core.logging import bind_context, get_logger
from starter.models.user import Users
from starter.services.email import send_password_reset_email, send_verification_email

logger = get_logger(__name__)


async def send_verification_email_job(ctx: dict[str, Any], user_id: str, token: str) -> None:
    """
    Send the email verification link.

    Args:
        ctx: arq context dict
        user_id: ID of the user
        token: Raw verification token (not hashed)

    Raises:
        Retry: If the email could not be sent (retried up to max_tries)
    """
    bind_context(task="send_verification_email", user_id=user_id)

    async with get_async_session() as db:
        user = await db.get(Users, user_id)

    if user is None:
        logger.warning("verification_email_user_not_found")
        return

    # The user may have verified through an earlier link in the meantime
    if user.email_verified:
        logger.info("verification_email_skipped", reason="already_verified")
        return

    if not await send_verification_email(user.email, user.first_name, token):
        logger.error("verification_email_failed")
        raise Retry(defer=ctx["job_try"] * 5)

    logger.info("verification_email_sent")


async def send_password_reset_email_job(ctx: dict[str, Any], user_id: str, token: str) -> None:
    """
    Send the password reset link.

    Raises:
        Retry: If the email could not be sent (retried up to max_tries)
    """
    bind_context(task="send_password_reset_email", user_id=user_id)

    async with get_async_session() as db:
        user = await db.get(Users, user_id)

    if user is None:
        logger.warning("password_reset_email_user_not_found")
        return

    if not await send_password_reset_email(user.email, user.first_name, token):
        logger.error("password_reset_email_failed")
        raise Retry(defer=ctx["job_try"] * 5)

    logger.info("password_reset_email_sent")
