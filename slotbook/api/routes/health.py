"""Liveness and readiness endpoints."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from slotbook.config import get_settings
from slotbook.core.scheduling.deferred import get_deferred_scheduler
from slotbook.core.session import get_session_manager
from slotbook.infra.database import check_db_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

_started_at: Optional[datetime] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def set_start_time() -> None:
    global _started_at
    _started_at = _now()


def get_uptime_seconds() -> Optional[float]:
    if _started_at is None:
        return None
    return (_now() - _started_at).total_seconds()


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str


class LiveResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None
    active_sessions: int = 0


class ReadyResponse(BaseModel):
    status: str
    timestamp: datetime
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health() -> HealthResponse:
    """The process answers; dependencies are not checked."""
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        version="1.0.0",
        environment=get_settings().app_env,
    )


@router.get("/live", response_model=LiveResponse)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=_now(),
        uptime_seconds=get_uptime_seconds(),
        active_sessions=get_session_manager().active_count,
    )


@router.get("/ready", response_model=ReadyResponse)
async def ready(response: Response) -> ReadyResponse:
    """Ready while the ledger database answers.

    Calendar and scheduler states are reported but never fail the check.
    """
    try:
        db_ok = await check_db_health()
    except Exception as e:
        logger.error(f"Readiness: database check raised: {e}")
        db_ok = False

    checks = {
        "database": "ok" if db_ok else "failed",
        "calendar": "configured" if get_settings().calendar_configured else "not_configured",
        "scheduler": "running" if get_deferred_scheduler().is_running else "stopped",
    }
    if not db_ok:
        logger.warning("Readiness: database unavailable")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadyResponse(
        status="ready" if db_ok else "not_ready",
        timestamp=_now(),
        checks=checks,
    )
