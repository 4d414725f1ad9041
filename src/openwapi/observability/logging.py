"""Structured JSON logging with correlation ID support.

The correlation ID of the HTTP request being served lives in a ContextVar,
so everything logged while handling it, including tasks it spawns, carries
the same ID.
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

_ROOT_LOGGER = "openwapi"

CORRELATION_ID_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return _correlation_id.get()


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block.

    A fresh UUID is used when cid is empty. The previous value is restored
    on exit.
    """
    cid = cid or str(uuid.uuid4())
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class JsonFormatter(logging.Formatter):
    """JSON formatter that includes correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_obj.update(record.extra_fields)

        return json.dumps(log_obj, default=str)


def configure_logging(*, production: bool) -> None:
    """Attach the JSON handler to the package root logger.

    Production runs at INFO, everything else at DEBUG. Loggers returned by
    get_logger() propagate here, so this only needs to run once at startup.
    """
    root = logging.getLogger(_ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(logging.INFO if production else logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package root.

    Module loggers named "openwapi.*" inherit the root handler. Anything
    else gets its own JSON handler.
    """
    logger = logging.getLogger(name)

    if not name.startswith(_ROOT_LOGGER) and not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False

    return logger
