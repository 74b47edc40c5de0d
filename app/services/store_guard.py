from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from app.core.settings import settings
from app.services.workflow_errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def guarded(
    awaitable: Awaitable[T],
    *,
    operation: str,
    timeout_seconds: float | None = None,
) -> T:
    """Await a store-bound operation under the application timeout.

    Timeouts, operational errors and invalidated connections surface as
    ``TransientStoreError``; everything else propagates unchanged.
    """
    timeout = timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds
    try:
        if timeout and timeout > 0:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        return await awaitable
    except asyncio.TimeoutError as exc:
        logger.warning("Store operation timed out", extra={"operation": operation, "timeout": timeout})
        raise TransientStoreError(
            "The data store did not respond in time",
            details={"operation": operation, "timeout_seconds": timeout},
        ) from exc
    except OperationalError as exc:
        logger.warning("Store unavailable", extra={"operation": operation}, exc_info=exc)
        raise TransientStoreError(
            "The data store is unavailable",
            details={"operation": operation},
        ) from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        logger.warning("Store connection invalidated", extra={"operation": operation}, exc_info=exc)
        raise TransientStoreError(
            "The data store connection was lost",
            details={"operation": operation},
        ) from exc
