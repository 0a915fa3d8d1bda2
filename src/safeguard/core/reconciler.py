"""
Reconciler interface for the snapshot-diff-correct loop.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class CycleReport:
    """
    Outcome of one reconciliation cycle.

    Attributes:
        reconciler: Name of the reconciler that ran the cycle
        started_at: When the cycle started
        completed_at: When the cycle finished
        dry_run: Whether corrective writes were suppressed
        errors: Non-fatal problems encountered (e.g. fail-open decisions)
    """
    reconciler: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    dry_run: bool = False
    errors: List[str] = field(default_factory=list)

    def finish(self) -> None:
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def changed(self) -> bool:
        """Whether the cycle found anything to correct."""
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reconciler": self.reconciler,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "dry_run": self.dry_run,
            "errors": self.errors,
        }

    def summary(self) -> str:
        return f"{self.reconciler}: cycle complete"


class Reconciler(ABC):
    """
    Abstract base class for all reconcilers.

    A reconciler owns its reference state and its storage handle. The
    scheduler calls initialize() once, then run_cycle() on every tick,
    then close() on shutdown.
    """

    @abstractmethod
    def get_name(self) -> str:
        """Return the reconciler name/identifier."""
        pass

    def initialize(self) -> None:
        """
        Establish reference state before the first cycle.

        Raises:
            FatalInitError if required state cannot be established
        """

    @abstractmethod
    def run_cycle(self) -> CycleReport:
        """
        Run one capture-diff-correct pass.

        Returns:
            CycleReport describing what was corrected

        Raises:
            CycleError (or any Exception) if the cycle fails
        """
        pass

    def close(self) -> None:
        """Release resources held by the reconciler."""
