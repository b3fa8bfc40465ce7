"""
Structured logging for AMP Tracker.

stdlib loggers (``logging.getLogger(__name__)``) are routed through
structlog's ProcessorFormatter, so every record carries the same fields:
ISO timestamp (UTC), level, logger name and any request-scoped context
bound with ``bind_request_context``.

Usage:
    from src.lib.logging import setup_logging

    setup_logging()  # once, before the app is created
"""

from __future__ import annotations

import logging
import os
import sys
import uuid

import structlog

# Libraries whose INFO output drowns the application's own records
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")

REQUEST_ID_MAX_LENGTH = 64


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(dev_mode: bool | None = None, level: str | None = None) -> None:
    """
    Configure structlog and the root logger.

    Args:
        dev_mode: Console output instead of JSON (default: AMP_DEV_MODE=1)
        level: Root level name (default: LOG_LEVEL, falling back to INFO)
    """
    if dev_mode is None:
        dev_mode = os.environ.get("AMP_DEV_MODE") == "1"
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    shared = _shared_processors()
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if dev_mode else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(request_id: str | None = None, **fields: object) -> str:
    """
    Start a fresh logging context for one request.

    A missing or oversized ``request_id`` is replaced with a new uuid4 hex.

    Returns:
        The request id bound to the context
    """
    if not request_id or len(request_id) > REQUEST_ID_MAX_LENGTH:
        request_id = uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)
    return request_id


__all__ = ["QUIET_LOGGERS", "setup_logging", "bind_request_context"]
