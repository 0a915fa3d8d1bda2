"""
Reconcilers for protected directories and tables.

- DirectoryReconciler: mirrors a trusted source tree onto a target tree
- PruneReconciler: deletes every row but the sentinel row
- RestoreReconciler: holds a table at its start-up baseline
"""

from .diff import DriftSummary, compute_drift
from .directory import DirectoryReconciler, DirectorySyncReport
from .prune import PruneReconciler, PruneReport
from .restore import RestoreReconciler, RestoreReport

__all__ = [
    "DriftSummary",
    "compute_drift",
    "DirectoryReconciler",
    "DirectorySyncReport",
    "PruneReconciler",
    "PruneReport",
    "RestoreReconciler",
    "RestoreReport",
]
