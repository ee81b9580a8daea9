"""
Queue client for enqueuing arq jobs from API endpoints.

Provides a simple interface for adding jobs to the arq queue.
"""

from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from starter.config import settings
from starter.core.logging import get_logger

logger = get_logger(__name__)

# Global pool instance (created on first use)
_pool: ArqRedis | None = None


async def get_queue() -> ArqRedis:
    """Get or create the arq Redis connection pool."""
    global _pool
    if _pool is None:
        _pool = await create_pool(RedisSettings.from_dsn(settings.ARQ_REDIS_URL))
        logger.info("arq_pool_created")
    return _pool


async def enqueue_job(function_name: str, **kwargs: Any) -> str | None:
    """
    Enqueue a job for the arq worker.

    Never raises: a failed enqueue is logged and reported as None, so an
    unavailable queue cannot fail the request that triggered the job.

    Example:
        await enqueue_job("send_password_reset_email_job", user_id=user.id, token=raw_token)
    """
    try:
        pool = await get_queue()
        job = await pool.enqueue_job(function_name, **kwargs)
    except Exception as e:
        logger.error(
            "job_enqueue_error",
            function=function_name,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if job is None:
        # arq returns None when a job with the same id is already queued
        logger.warning("job_enqueue_failed", function=function_name)
        return None

    logger.debug("job_enqueued", function=function_name, job_id=job.job_id)
    return job.job_id


async def close_queue() -> None:
    """Close the arq Redis connection pool (call on shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("arq_pool_closed")
