"""Structured logging setup.

Routes structlog through the stdlib logging module so that library logs
(httpx, uvicorn) and application logs share one handler and format.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(level: str | int | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog to route through Python logging.

    Args:
        level: Root log level (default: RMQ_ADMIN_LOG_LEVEL or INFO)
        json_logs: Render JSON instead of console output
            (default: RMQ_ADMIN_LOG_JSON)
    """
    if level is None:
        level = os.getenv("RMQ_ADMIN_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if json_logs is None:
        json_logs = _env_flag("RMQ_ADMIN_LOG_JSON")

    # format_exc_info is left out: ConsoleRenderer formats exceptions itself
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        pre_chain = shared_processors + [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        pre_chain = shared_processors

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
