from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.services.store_guard import guarded
from app.services.workflow_errors import TransientStoreError
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

Check = dict[str, str]


async def _ping_db() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def _check_db() -> Check:
    try:
        await guarded(_ping_db(), operation="health.database")
    except TransientStoreError as exc:
        logger.warning("Readiness: database unavailable (%s)", exc.message)
        return {"status": "error", "error": exc.message}
    return {"status": "ok"}


async def _check_unified_view() -> Check:
    """Report which listing strategy the applications endpoint will use."""
    try:
        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT to_regclass(:name)"), {"name": settings.unified_view_name}
            )
            present = result.scalar_one_or_none() is not None
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    return {"status": "ok", "strategy": "unified_view" if present else "legacy"}


async def _check_redis() -> Check:
    try:
        await asyncio.wait_for(get_redis_client().ping(), timeout=settings.store_timeout_seconds)
    except Exception as exc:
        logger.warning("Readiness: redis unavailable (%s)", exc)
        return {"status": "error", "error": str(exc) or type(exc).__name__}
    return {"status": "ok"}


def _overall_status(checks: dict[str, Check]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION, "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    database, redis = await asyncio.gather(_check_db(), _check_redis())
    checks = {"database": database, "redis": redis}
    overall, ready = _overall_status(checks)
    # The view probe needs a working connection and never affects readiness.
    source = await _check_unified_view() if database["status"] == "ok" else None
    return {
        "status": overall,
        "ready": ready,
        "version": APP_VERSION,
        "environment": settings.environment,
        "timestamp": _now(),
        "checks": checks,
        "applications_source": source,
    }
