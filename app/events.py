import logging

from fastapi import FastAPI
from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)

_INSECURE_SECRETS = {"", "change-me"}


async def _log_application_source() -> None:
    try:
        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT to_regclass(:name)"), {"name": settings.unified_view_name}
            )
            present = result.scalar_one_or_none() is not None
    except Exception as exc:
        logger.warning("Could not probe application view at startup: %s", exc)
        return
    if present:
        logger.info("Application listings will read view %s", settings.unified_view_name)
    else:
        logger.warning(
            "View %s not found, application listings will merge requests and loans",
            settings.unified_view_name,
        )


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup environment=%s", settings.environment)
        if settings.jwt_secret in _INSECURE_SECRETS and settings.environment not in {"development", "test"}:
            logger.error("JWT_SECRET is unset or left at its default")
        if settings.environment != "test":
            await _log_application_source()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        await close_redis_client()
        await engine.dispose()
