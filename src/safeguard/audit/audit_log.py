"""
Append-only audit log for corrective actions.

Each reconciler writes to its own file. Every deletion, insertion,
update, copy and file removal is recorded with a timestamp and the full
row payload, so the trail is never lossy relative to what was changed.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..snapshot.canonical import serialize_row


AUDIT_FORMAT = "%(asctime)s %(filename)s:%(lineno)d: %(message)s"


class AuditLog:
    """
    Audit sink for one reconciler.

    Lines look like:
        2024-05-01 10:00:00,123 restore.py:141: deleted acg_pay key=4 row={"id":4,...}
    """

    _lock = threading.Lock()

    def __init__(self, path: Optional[Union[str, Path]], name: str):
        """
        Initialize the audit log.

        Args:
            path: File to append to; None discards every entry
            name: Reconciler name, used for the logger name
        """
        self.path = Path(path) if path is not None else None
        self.name = name
        self._logger = logging.getLogger(f"safeguard.audit.{name}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None

        with self._lock:
            for handler in list(self._logger.handlers):
                self._logger.removeHandler(handler)
                handler.close()

            if self.path is None:
                self._handler = logging.NullHandler()
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
                self._handler.setFormatter(logging.Formatter(AUDIT_FORMAT))
            self._logger.addHandler(self._handler)

    @classmethod
    def null(cls, name: str = "null") -> "AuditLog":
        """An audit log that records nothing."""
        return cls(None, name)

    def record(
        self,
        action: str,
        subject: str,
        row: Optional[Mapping[str, Any]] = None,
        **details: Any,
    ) -> None:
        """
        Record one corrective action.

        Args:
            action: What was done (deleted, restored, reverted, pruned, copied, removed-file)
            subject: Table or path acted upon
            row: Full row payload, serialized as canonical JSON
            **details: Extra key=value fields (key, changed, ...)
        """
        parts = [action, subject]
        for name, value in details.items():
            if value is not None:
                parts.append(f"{name}={value}")
        if row is not None:
            parts.append(f"row={serialize_row(row)}")
        self._logger.info(" ".join(parts), stacklevel=2)

    def heartbeat(self, message: str) -> None:
        """Record a no-op cycle."""
        self._logger.info(message, stacklevel=2)

    def error(self, message: str) -> None:
        """Record a failed cycle or action."""
        self._logger.error(f"ERROR {message}", stacklevel=2)

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def __repr__(self) -> str:
        return f"AuditLog(name={self.name!r}, path={str(self.path) if self.path else None!r})"
