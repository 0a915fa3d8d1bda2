"""
Core data models for the reconciliation engine.

Defines the tagged scalar used for table cells, row snapshots, drift
records, sentinel rules and file entries.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .exceptions import UnsupportedValueError


class ScalarKind(str, Enum):
    """Kind tag of a decoded column value."""
    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"


_KIND_ORDER = {kind: i for i, kind in enumerate(ScalarKind)}


@dataclass(frozen=True)
class Scalar:
    """
    A single column value tagged with its kind.

    Equality is structural over (kind, value), so a NULL never equals an
    empty string and an INTEGER never equals a FLOAT of the same
    magnitude. Baseline and live snapshots go through the same decoder,
    so identical stored values always compare equal.

    Attributes:
        kind: The scalar kind
        value: The decoded Python value, bound back to the driver unchanged
    """
    kind: ScalarKind
    value: Any = None

    @classmethod
    def from_db(cls, value: Any) -> "Scalar":
        """
        Decode a value returned by a DB-API driver.

        Raises:
            UnsupportedValueError: If the value's type is not supported
        """
        if value is None:
            return cls(ScalarKind.NULL)
        if isinstance(value, bool):
            # bool before int (bool is subclass of int)
            return cls(ScalarKind.INTEGER, int(value))
        if isinstance(value, int):
            return cls(ScalarKind.INTEGER, value)
        if isinstance(value, (float, Decimal)):
            return cls(ScalarKind.FLOAT, value)
        if isinstance(value, str):
            return cls(ScalarKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(ScalarKind.BYTES, bytes(value))
        if isinstance(value, (datetime, date, time)):
            return cls(ScalarKind.TIMESTAMP, value)
        raise UnsupportedValueError(
            f"Unsupported column value type: {type(value).__name__}"
        )

    @property
    def is_null(self) -> bool:
        return self.kind is ScalarKind.NULL

    def to_param(self) -> Any:
        """Value to bind as a statement parameter."""
        return self.value

    def sort_key(self) -> Tuple[int, Any]:
        """Key giving a total, deterministic order across kinds."""
        if self.kind is ScalarKind.NULL:
            return (_KIND_ORDER[self.kind], "")
        if self.kind is ScalarKind.TIMESTAMP:
            return (_KIND_ORDER[self.kind], self.value.isoformat())
        return (_KIND_ORDER[self.kind], self.value)

    def __str__(self) -> str:
        return "NULL" if self.is_null else str(self.value)


Row = Mapping[str, Scalar]


class RowSnapshot:
    """
    Full state of one table, keyed by primary key.

    Immutable once built. The column tuple is taken from the result set,
    so every row of a snapshot carries the same columns.
    """

    def __init__(
        self,
        table: str,
        key_column: str,
        columns: Tuple[str, ...],
        rows: Dict[Scalar, Dict[str, Scalar]],
        captured_at: Optional[datetime] = None,
    ):
        self.table = table
        self.key_column = key_column
        self.columns = tuple(columns)
        self.captured_at = captured_at
        self._rows = MappingProxyType(
            {key: MappingProxyType(dict(row)) for key, row in rows.items()}
        )

    @property
    def rows(self) -> Mapping[Scalar, Row]:
        return self._rows

    def keys(self) -> List[Scalar]:
        """Keys in deterministic order."""
        return sorted(self._rows, key=Scalar.sort_key)

    def get(self, key: Scalar) -> Optional[Row]:
        return self._rows.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def __iter__(self) -> Iterator[Scalar]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._rows)

    def to_plain(self) -> List[Dict[str, Any]]:
        """Rows as plain dictionaries of decoded values, ordered by key."""
        return [
            {column: cell.value for column, cell in self._rows[key].items()}
            for key in self.keys()
        ]

    def __repr__(self) -> str:
        return f"RowSnapshot(table={self.table!r}, rows={len(self)})"


class DriftKind(str, Enum):
    """Classification of one key's drift against the baseline."""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class DriftRecord:
    """
    One observed difference between the baseline and the live table.

    Attributes:
        kind: ADDED, REMOVED or MODIFIED
        key: Primary key value of the affected row
        row: Current row for ADDED, baseline row otherwise
        changed_columns: Columns whose values differ (MODIFIED only)
        current_row: Live row for MODIFIED, kept for the audit trail
    """
    kind: DriftKind
    key: Scalar
    row: Row
    changed_columns: Tuple[str, ...] = ()
    current_row: Optional[Row] = None


@dataclass(frozen=True)
class SentinelRule:
    """The single row a prune policy always preserves."""
    key_column: str = "id"
    sentinel_key: Any = 1

    @property
    def sentinel(self) -> Scalar:
        return Scalar.from_db(self.sentinel_key)

    def is_sentinel(self, key: Scalar) -> bool:
        return key == self.sentinel


@dataclass
class FileEntry:
    """
    A regular file seen during a directory walk.

    The digest is computed on first request and cached for the cycle.
    """
    path: Path
    relative_path: str
    size: int
    _digest: Optional[str] = field(default=None, repr=False)

    def digest(self, fingerprinter) -> str:
        if self._digest is None:
            self._digest = fingerprinter.digest_file(self.path)
        return self._digest
