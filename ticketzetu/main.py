"""FastAPI application entry point, wires everything together.

Usage:
    python -m ticketzetu.main

Startup order: database, log pipeline, email queue, services. Shutdown
runs in reverse: the email queue stops before the log pipeline flushes,
and both finish before the engine goes.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ticketzetu.api import auth as auth_routes
from ticketzetu.api import logs as log_routes
from ticketzetu.api import responses
from ticketzetu.api import users as user_routes
from ticketzetu.auth.geolocation import GeolocationService
from ticketzetu.auth.service import AuthService
from ticketzetu.auth.session_cache import SessionCache
from ticketzetu.auth.username_check import UsernameChecker
from ticketzetu.config import settings
from ticketzetu.db.engine import async_session_factory, db_lifespan, redis_client
from ticketzetu.errors import AppError
from ticketzetu.logs.handler import LogHandler
from ticketzetu.logs.pipeline import LogPipeline
from ticketzetu.mail.queue import EmailQueue
from ticketzetu.mail.service import EmailService
from ticketzetu.models.enums import LogLevel

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting %s (env=%s)", settings.app_name, settings.environment)

    # 1. Database + Redis
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Log pipeline
        pipeline = LogPipeline(
            async_session_factory,
            buffer_size=settings.logs.log_buffer_size,
            flush_period=settings.logs.log_flush_period,
            dedup_window=timedelta(seconds=settings.logs.log_dedup_window),
            environment=settings.environment,
        )
        await pipeline.start()

        # 3. Email queue
        email_queue = EmailQueue(
            capacity=settings.email_queue.email_queue_capacity,
            workers=settings.email_queue.email_workers,
            submit_timeout=settings.email_queue.email_submit_timeout,
            log_pipeline=pipeline,
        )
        await email_queue.start()

        # 4. Services
        app.state.log_pipeline = pipeline
        app.state.log_handler = LogHandler(pipeline)
        app.state.email_queue = email_queue
        app.state.auth_service = AuthService(
            async_session_factory,
            EmailService(email_queue),
            SessionCache(redis_client),
        )
        app.state.username_checker = UsernameChecker(async_session_factory)
        app.state.geolocation = GeolocationService()

        try:
            yield
        finally:
            # Shutdown in reverse order
            logger.info("Shutting down %s...", settings.app_name)

            await email_queue.shutdown()
            logger.info("Email queue stopped")

            # Failed email jobs report into the pipeline
            await pipeline.shutdown()
            logger.info("Log pipeline flushed")

    logger.info("%s shutdown complete", settings.app_name)


# ── Exception handlers ───────────────────────────────────────────────


async def app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = exc.status_code if isinstance(exc, AppError) else 500
    return request.app.state.log_handler.log_error(request, exc, status_code)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in errors
    )
    return request.app.state.log_handler.log_error(request, f"invalid request: {details}", 400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    handler: LogHandler = request.app.state.log_handler
    handler.record(request, LogLevel.ERROR, str(exc) or type(exc).__name__, 500, exc)
    return responses.failed("internal server error", 500)


# ── FastAPI app ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ticketzetu API",
        description="Event ticketing backend: auth, email delivery and application logs",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_routes.router, prefix=API_PREFIX)
    app.include_router(user_routes.router, prefix=API_PREFIX)
    app.include_router(log_routes.router, prefix=API_PREFIX)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "environment": settings.environment,
            "app": settings.app_name,
        }

    return app


app = create_app()


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "ticketzetu.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
