"""Structured logging for the gateway.

``LOG_LEVEL`` (DEBUG | INFO | WARNING | ERROR) and ``LOG_FORMAT``
(json | console) are read from the environment at startup.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

_configured = False


def configure_logging(level: Optional[str] = None, format: Optional[str] = None, force: bool = False) -> None:
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.getenv("LOG_FORMAT", "console")).lower()

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level, logging.INFO),
        force=True,
    )
    _configured = True


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
