"""Structured logging configuration with structlog.

Environment variables:
- LOG_FORMAT: "json" for production log aggregation, "console" or unset for
  human-readable colored output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".

structlog events and plain stdlib records (uvicorn, the Steam libraries)
go through the same ProcessorFormatter, so both render with the same keys.
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_NAME = "dota-lobby.log"

_VALID_LOG_FORMATS = {"json", "console", ""}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# The Steam client libraries log every CM message and httpx logs every request.
_QUIET_LOGGERS = ("CMClient", "SteamClient", "Dota2Client", "httpx", "httpcore")

_COMMON_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Replace Enum instances (bot states, failure kinds) with their value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _read_env() -> tuple[bool, int]:
    """Return (json_mode, level) from LOG_FORMAT and LOG_LEVEL."""
    log_format = os.environ.get("LOG_FORMAT", "").lower()
    if log_format not in _VALID_LOG_FORMATS:
        msg = f"Invalid LOG_FORMAT={log_format!r}. Must be 'json', 'console', or unset."
        raise ValueError(msg)
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if level not in _VALID_LOG_LEVELS:
        msg = f"Invalid LOG_LEVEL={level!r}. Must be one of {', '.join(sorted(_VALID_LOG_LEVELS))}."
        raise ValueError(msg)
    return log_format == "json", getattr(logging, level)


def _handler(handler: logging.Handler, *, json_mode: bool, colors: bool) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_COMMON_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    return handler


def setup_logging(log_dir: Path | str | None = None) -> Path | None:
    """Configure structlog and the root logger.

    Output goes to stdout, and additionally to LOG_FILE_NAME inside log_dir
    (appended across restarts) when a directory is given. Returns the log
    file path, or None without log_dir.
    """
    json_mode, level = _read_env()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            *_COMMON_PROCESSORS,
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.addHandler(
        _handler(logging.StreamHandler(sys.stdout), json_mode=json_mode, colors=sys.stdout.isatty()),
    )

    if log_dir is None:
        return None
    file_path = Path(log_dir) / LOG_FILE_NAME
    file_path.parent.mkdir(parents=True, exist_ok=True)
    root_logger.addHandler(_handler(logging.FileHandler(file_path), json_mode=json_mode, colors=False))
    return file_path
