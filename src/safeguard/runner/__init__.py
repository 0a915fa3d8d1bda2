from .scheduler import (
    ReconciliationScheduler,
    SchedulerConfig,
    CycleOutcome,
    ReconcilerStats,
    RunSummary,
)

__all__ = [
    "ReconciliationScheduler",
    "SchedulerConfig",
    "CycleOutcome",
    "ReconcilerStats",
    "RunSummary",
]
