"""
Slotbook API

FastAPI application entry point: inbound message webhook, health checks
and the background deferred action scheduler.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from slotbook.config import settings
from slotbook.api.routes import health, webhook
from slotbook.core.conversation import get_conversation_engine
from slotbook.core.scheduling.calendar_client import get_calendar_client
from slotbook.core.scheduling.catalog import get_catalog
from slotbook.core.scheduling.deferred import get_deferred_scheduler
from slotbook.infra.database import close_db, init_db
from slotbook.infra.notifications import get_notification_service


def setup_logging() -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    # Set health check start time
    health.set_start_time()

    # Create tables and apply additive column migrations
    await init_db()
    logger.info("Database tables initialized")

    catalog = get_catalog()
    logger.info(
        f"Catalog: {len(catalog.providers)} providers, {len(catalog.services)} services, "
        f"{len(catalog.time_slots)} daily slots ({settings.timezone})"
    )

    if not settings.calendar_configured:
        logger.warning("External calendar not configured - bookings will carry no calendar event")
    if not get_notification_service().is_configured:
        logger.warning("Messaging transport not configured - outbound messages are only logged")

    # Feedback requests move the user into the feedback step
    scheduler = get_deferred_scheduler()
    scheduler.set_feedback_hook(get_conversation_engine().on_feedback_requested)
    scheduler.start()

    logger.info(f"Application ready at http://{settings.host}:{settings.port}")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down application...")

    await scheduler.stop()

    await get_calendar_client().close()
    await get_notification_service().close()
    logger.info("HTTP clients closed")

    # Close database connections
    await close_db()
    logger.info("Database connections closed")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Slotbook API",
    description="""
    Appointment booking over a chat channel for a multi-provider business.

    ## Features
    - Per-user conversation: provider, services, date, slot, name
    - Local booking ledger reconciled with each provider's external calendar
    - Reminders and feedback requests delivered by a background scheduler
    - Admin commands: weekly schedule report, calendar day clearing

    ## Authentication
    The inbound webhook requires the shared secret in the `X-Webhook-Token` header.
    """,
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": exc.errors(),
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    detail = str(exc) if settings.is_development else "Internal server error"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": detail,
        },
    )


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Log request duration in debug mode."""
    start_time = time.time()
    try:
        return await call_next(request)
    finally:
        if settings.debug:
            duration = time.time() - start_time
            logger.debug(
                f"{request.method} {request.url.path} "
                f"completed in {duration:.3f}s"
            )


# Health check routes (no auth required)
app.include_router(health.router)

# Inbound messages (webhook token required)
app.include_router(webhook.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.app_env,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "slotbook.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
