"""
Logging infrastructure for connmetrics.

Library modules log through ``get_logger("<Component>")``, which returns a
logger under the ``connmetrics`` namespace tagged with that component name.
Nothing attaches handlers on import. Host processes call ``setup_logging``
once to get:
- Plain console lines for human monitoring
- Optional rotating JSONL file output (one JSON object per line) for log shippers
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Any

from .config import get_config

ROOT_LOGGER_NAME = "connmetrics"
DEFAULT_COMPONENT = "Metrics"


def _component_of(record: logging.LogRecord) -> str:
    return getattr(record, "component", DEFAULT_COMPONENT)


# =============================================================================
# Formatters
# =============================================================================


class JSONLFormatter(logging.Formatter):
    """
    Formats log records as JSON Lines.

    Each entry carries ``timestamp`` (UTC, ISO 8601), ``level``, ``component``
    and ``message``. Structured ``context`` is added when present, ``source``
    (file, line, function) for warnings and above, and ``exception`` (type and
    message) when the record carries one.

    Example output:
    {"timestamp":"2024-01-15T10:30:45.123000Z","level":"WARNING","component":"Metrics","message":"Skipping server in get_connected_clients","context":{"server":"native"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        entry: dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "component": _component_of(record),
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.levelno >= logging.WARNING:
            entry["source"] = self._source(record)
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {"type": exc_type.__name__, "message": str(exc)}

        return json.dumps(entry, default=str)

    @staticmethod
    def _source(record: logging.LogRecord) -> dict[str, Any]:
        source: dict[str, Any] = {"file": record.pathname, "line": record.lineno}
        if record.funcName and record.funcName != "<module>":
            source["function"] = record.funcName
        return source


class ConsoleFormatter(logging.Formatter):
    """One plain line per record: ``[HH:MM:SS] [Component] LEVEL: message``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="[%(asctime)s] [%(component)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.component = _component_of(record)
        return super().format(record)


# =============================================================================
# Logger Setup
# =============================================================================


class _ComponentFilter(logging.Filter):
    def __init__(self, component: str) -> None:
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "component"):
            record.component = self.component
        return True


_loggers: dict[str, logging.Logger] = {}


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = get_config().log_level
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: int | str | None = None,
    stream: IO[str] | None = None,
    log_file: Path | str | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the ``connmetrics`` logger hierarchy.

    Replaces any handlers installed by an earlier call.

    Args:
        level: Minimum log level (defaults to CONNMETRICS_LOG_LEVEL)
        stream: Console stream (defaults to stderr)
        log_file: Optional path for a rotating JSONL log file
        max_bytes: Max size per log file before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured ``connmetrics`` logger
    """
    resolved = _resolve_level(level)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(resolved)
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(ConsoleFormatter())
    handlers.append(console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        jsonl = RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        jsonl.setFormatter(JSONLFormatter())
        handlers.append(jsonl)

    for handler in handlers:
        handler.setLevel(resolved)
        root_logger.addHandler(handler)

    return root_logger


def get_logger(component: str) -> logging.Logger:
    """
    Get the logger for a component, e.g. ``get_logger("Tracker")``.

    The logger is named ``connmetrics.<component>`` (lowercased) and stamps
    each record with the component name for the formatters.
    """
    logger = _loggers.get(component)
    if logger is None:
        suffix = component.lower().replace(" ", "_")
        logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{suffix}")
        logger.addFilter(_ComponentFilter(component))
        _loggers[component] = logger
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    exc_info: bool = False,
    **kwargs: Any,
) -> None:
    """
    Log a message with structured context data.

    ``context`` and any keyword arguments are merged into the record's
    ``context`` attribute, which the JSONL formatter emits.
    """
    merged = {**(context or {}), **kwargs}
    extra = {"context": merged} if merged else None
    logger.log(level, message, extra=extra, exc_info=exc_info)
