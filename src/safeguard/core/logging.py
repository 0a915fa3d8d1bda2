"""
Logging utilities for the safeguard process.

Provides human-readable and JSON-structured formatters with context
fields (reconciler, table, path) so every cycle failure can be traced
back to the resource it touched.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("reconciler", "table", "path", "key", "cycle")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Context fields if present (reconciler, table, path, key, cycle)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with context.

    Format: TIMESTAMP [LEVEL] LOGGER - MESSAGE [reconciler=X table=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        else:
            fmt = "[%(levelname)s] %(name)s - %(message)s"
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class _ContextFilter(logging.Filter):
    """Copies the calling thread's reconciler context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in reconciler_context.get_current().items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


class reconciler_context:
    """
    Context manager attaching context fields to log records emitted by
    the current thread.

    Example:
        >>> with reconciler_context(reconciler="restore:acg_pay", table="acg_pay"):
        ...     logger.info("Cycle complete")
    """

    _local = threading.local()

    def __init__(self, **fields: Any):
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._previous: Optional[Dict[str, Any]] = None

    def __enter__(self) -> "reconciler_context":
        self._previous = getattr(self._local, "context", None)
        merged = dict(self._previous or {})
        merged.update(self.context)
        self._local.context = merged
        return self

    def __exit__(self, *args) -> None:
        self._local.context = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current thread's context."""
        return dict(getattr(cls._local, "context", None) or {})


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
    stream=None,
) -> None:
    """
    Configure the root logger for the safeguard process.

    Args:
        level: Logging level (default: INFO)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable
        stream: Output stream (default: stderr, keeping stdout for command output)
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Replace handlers installed by a previous call
    for handler in list(root.handlers):
        if getattr(handler, "_safeguard", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler._safeguard = True

    if structured:
        handler.setFormatter(StructuredFormatter(include_timestamp=include_timestamp))
    else:
        handler.setFormatter(HumanReadableFormatter(include_timestamp=include_timestamp))

    handler.addFilter(_ContextFilter())
    root.addHandler(handler)
