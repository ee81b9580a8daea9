"""
arq worker configuration.

Run worker with: arq starter.tasks.worker.WorkerSettings
"""

from typing import Any

from arq.connections import RedisSettings
from arq.worker import func

from starter.config import settings
from starter.core.logging import configure_logging, get_logger
from starter.tasks.email_jobs import send_password_reset_email_job, send_verification_email_job

logger = get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging()
    logger.info("arq_worker_starting")


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("arq_worker_shutdown")


class WorkerSettings:
    """arq worker configuration."""

    redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)

    max_jobs = 10
    job_timeout = 300  # 5 minutes max per job
    keep_result = settings.ARQ_KEEP_RESULT

    on_startup = startup
    on_shutdown = shutdown

    functions = [
        func(send_verification_email_job, max_tries=settings.ARQ_MAX_TRIES),
        func(send_password_reset_email_job, max_tries=settings.ARQ_MAX_TRIES),
    ]
