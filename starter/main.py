"""
FastAPI Application - Starter API
Token authentication backend: register/login, rotating refresh tokens, OAuth
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from starter.api.v1 import router as api_v1_router
from starter.config import settings
from starter.core.database import create_tables
from starter.core.errors import register_exception_handlers
from starter.core.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from starter.tasks.queue import close_queue

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    configure_logging()
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        database="configured" if "@" in settings.DATABASE_URL else settings.DATABASE_URL,
    )
    if settings.ENVIRONMENT == "development":
        await create_tables()
    yield
    await close_queue()
    logger.info("api_shutting_down")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Authentication API with short-lived access tokens and rotating refresh tokens",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

register_exception_handlers(app)


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with its ID and echo it back to the caller."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint"""
    return {"status": "healthy", "version": settings.VERSION}


app.include_router(api_v1_router, prefix=settings.API_PREFIX)
