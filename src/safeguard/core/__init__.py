"""
Core models, errors and interfaces for the reconciliation engine.
"""

from .exceptions import (
    SafeguardError,
    ConfigurationError,
    FatalInitError,
    CycleError,
    DirectorySyncError,
    SnapshotError,
    UnsupportedValueError,
    SchemaDriftError,
    TransactionError,
)
from .models import (
    Scalar,
    ScalarKind,
    RowSnapshot,
    DriftKind,
    DriftRecord,
    SentinelRule,
    FileEntry,
)
from .reconciler import Reconciler, CycleReport

__all__ = [
    "SafeguardError",
    "ConfigurationError",
    "FatalInitError",
    "CycleError",
    "DirectorySyncError",
    "SnapshotError",
    "UnsupportedValueError",
    "SchemaDriftError",
    "TransactionError",
    "Scalar",
    "ScalarKind",
    "RowSnapshot",
    "DriftKind",
    "DriftRecord",
    "SentinelRule",
    "FileEntry",
    "Reconciler",
    "CycleReport",
]
