"""
Workforce Tracker task API server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1 import router as api_v1_router
from app.core.config import get_settings
from app.core.database import engine, init_db
from app.core.errors import (
    WorkflowError,
    request_validation_handler,
    storage_error_handler,
    workflow_error_handler,
)
from app.core.events import NotificationOutbox
from app.core.logging_setup import configure_logging
from app.core.messaging import TelegramChannel
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.redis import close_redis, get_redis, ping_redis
from app.services.notifications import NotificationDispatcher
from app.services.verification import InMemoryChallengeStore, RedisChallengeStore

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Workforce Tracker",
        description="Task workflow, email verification and Telegram notifications.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added wraps outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
    app.add_exception_handler(RedisError, storage_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        if settings.verification_backend == "redis":
            await ping_redis()
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Workforce Tracker starting", environment=settings.environment)
        if settings.environment == "development":
            await init_db()

        channel = None
        if settings.telegram_enabled and settings.telegram_bot_token:
            channel = TelegramChannel(
                settings.telegram_bot_token,
                api_url=settings.telegram_api_url,
                request_timeout=settings.telegram_timeout_seconds,
            )
            await channel.open()
        else:
            log.info("telegram.disabled")
        app.state.channel = channel

        dispatcher = NotificationDispatcher(
            channel,
            ops_chat_id=settings.telegram_ops_chat_id,
            send_timeout=settings.telegram_timeout_seconds,
        )
        app.state.outbox = NotificationOutbox(dispatcher, max_size=settings.outbox_max_size)
        await app.state.outbox.start()

        if settings.verification_backend == "redis":
            app.state.challenge_store = RedisChallengeStore(
                await get_redis(), ttl_minutes=settings.verification_ttl_minutes
            )
        else:
            app.state.challenge_store = InMemoryChallengeStore(
                ttl_minutes=settings.verification_ttl_minutes
            )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Workforce Tracker shutting down")
        await app.state.outbox.stop()
        if app.state.channel is not None:
            await app.state.channel.close()
        await close_redis()

    return app


app = create_app()
