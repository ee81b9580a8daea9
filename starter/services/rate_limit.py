"""Rate limiting service using Redis."""

import redis.asyncio as redis

from starter.config import settings
from starter.core.errors import RateLimitError
from starter.core.logging import get_logger

logger = get_logger(__name__)


async def check_auth_rate_limit(
    action: str,
    ip_address: str,
    redis_client: redis.Redis,  # type: ignore[type-arg]
) -> None:
    """
    Enforce the per-IP limit on unauthenticated auth endpoints.

    Limit: AUTH_RATE_LIMIT attempts per action per IP within
    AUTH_RATE_WINDOW_SECONDS. Gracefully degrades if Redis is unavailable
    (allows the request).

    Args:
        action: Endpoint being limited ("login", "register", "refresh", ...)
        ip_address: Client IP address
        redis_client: Redis client instance

    Raises:
        RateLimitError: 429 if rate limit exceeded
    """
    window = settings.AUTH_RATE_WINDOW_SECONDS
    try:
        key = f"auth_rate:{action}:{ip_address}"

        count_raw = await redis_client.get(key)
        count = int(count_raw) if count_raw else 0

        if count >= settings.AUTH_RATE_LIMIT:
            logger.warning(
                "auth_rate_limit_exceeded",
                action=action,
                ip_address=ip_address,
                count=count,
                limit=settings.AUTH_RATE_LIMIT,
            )
            raise RateLimitError(
                "Too many requests. Please try again later.",
                headers={"Retry-After": str(window)},
            )

        # Increment counter with expiration
        pipe = redis_client.pipeline()
        pipe.incr(key)
        if count == 0:
            # First attempt from this IP in this window - set expiration
            pipe.expire(key, window)
        await pipe.execute()

        logger.debug(
            "auth_rate_check",
            action=action,
            ip_address=ip_address,
            count=count + 1,
            limit=settings.AUTH_RATE_LIMIT,
        )
    except RateLimitError:
        raise
    except Exception:
        logger.warning(
            "auth_rate_limit_redis_error",
            action=action,
            ip_address=ip_address,
            exc_info=True,
        )
