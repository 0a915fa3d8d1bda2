"""
Snapshot module for capturing and fingerprinting protected state.

This module provides:
- ContentFingerprinter: Stable content digests for files and payloads
- Canonical serialization: Reproducible JSON for audited rows
- RowSnapshotStore: Full-table snapshots keyed by primary key
"""

from .fingerprint import ContentFingerprinter
from .canonical import canonicalize, serialize_row
from .table_snapshot import RowSnapshotStore

__all__ = [
    "ContentFingerprinter",
    "canonicalize",
    "serialize_row",
    "RowSnapshotStore",
]
