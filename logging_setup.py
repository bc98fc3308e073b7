"""structlog configuration for the desktop app.

Usage::

    from logging_setup import setup_logging
    setup_logging(level="INFO")
    log = structlog.get_logger(__name__)
    log.info("capture.result", kind="success", chars=12)
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog

_NOISY_LOGGERS = ["websocket", "httpx", "httpcore", "dashscope"]


def setup_logging(level: str = "INFO", json_format: Optional[bool] = None) -> None:
    """Configure structlog on top of stdlib logging. Call once at startup.

    ``json_format`` of None picks a readable console format on a TTY and JSON
    lines otherwise.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=False)
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
