import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.context import get_actor_id, get_request_id
from app.core.settings import settings

AUDIT_LOGGER_NAME = "app.audit"


class RequestContextFilter(logging.Filter):
    """Stamp every record with the current request and actor."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = get_actor_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the stream it belongs to.

    Anything handed to the logger through ``extra=`` is merged into the payload,
    which is how audit entries and decision outcomes carry their fields.
    """

    _reserved = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in self._reserved and key not in payload
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s actor=%(actor_id)s] %(name)s: %(message)s"


def _formatters(log_format: str) -> dict[str, dict[str, Any]]:
    if log_format == "text":
        return {
            "app": {"format": TEXT_FORMAT},
            "audit": {"format": "AUDIT " + TEXT_FORMAT},
        }
    return {
        "app": {"()": JsonFormatter, "stream_label": "transactional"},
        "audit": {"()": JsonFormatter, "stream_label": "audit"},
    }


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    fmt = (log_format or settings.log_format).lower()

    def _handler(formatter: str) -> dict[str, Any]:
        return {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter,
            "filters": ["request_context"],
            "stream": "ext://sys.stdout",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": _formatters(fmt),
            "handlers": {"app": _handler("app"), "audit": _handler("audit")},
            "root": {"handlers": ["app"], "level": log_level},
            "loggers": {
                AUDIT_LOGGER_NAME: {"handlers": ["audit"], "level": "INFO", "propagate": False},
                "uvicorn.access": {"handlers": ["app"], "level": "WARNING", "propagate": False},
                "sqlalchemy.engine": {"level": "WARNING"},
                "alembic": {"level": "INFO"},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured environment=%s format=%s", settings.environment, fmt
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
