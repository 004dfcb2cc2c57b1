from __future__ import annotations

import json
import logging
import logging.config
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from storefront.core.config import settings

RECONCILIATION_LOGGER = "storefront.reconciliation"

# Set by the observability middleware for the duration of a request.
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    The current request id is attached when there is one, and anything
    passed through ``extra=`` lands under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        context = {key: value for key, value in vars(record).items() if key not in _RESERVED}
        if context:
            entry["extra"] = context
        return json.dumps(entry, default=str)


def setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JsonFormatter}},
            "handlers": {"stdout": {"class": "logging.StreamHandler", "formatter": "json"}},
            "root": {"handlers": ["stdout"], "level": level},
            "loggers": {
                # Reconciliation warnings still go out when LOG_LEVEL is ERROR.
                RECONCILIATION_LOGGER: {"level": min(level, logging.WARNING)},
                "uvicorn.access": {"handlers": ["stdout"], "level": level, "propagate": False},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def reconciliation_alert(message: str, **context: Any) -> None:
    """Flag a payment whose real outcome is unknown so it can be reconciled by hand."""
    get_logger(RECONCILIATION_LOGGER).warning(message, extra={"alert": True, **context})
