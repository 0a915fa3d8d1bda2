"""
Drift computation between a baseline snapshot and the live table.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..core.exceptions import SchemaDriftError
from ..core.models import DriftKind, DriftRecord, RowSnapshot


@dataclass
class DriftSummary:
    """Drift records of one cycle, grouped by kind in replay order."""
    added: List[DriftRecord] = field(default_factory=list)
    removed: List[DriftRecord] = field(default_factory=list)
    modified: List[DriftRecord] = field(default_factory=list)

    @property
    def records(self) -> List[DriftRecord]:
        return self.added + self.removed + self.modified

    def counts(self) -> Dict[str, int]:
        return {
            DriftKind.ADDED.value: len(self.added),
            DriftKind.REMOVED.value: len(self.removed),
            DriftKind.MODIFIED.value: len(self.modified),
        }

    def __len__(self) -> int:
        return len(self.added) + len(self.removed) + len(self.modified)

    def __bool__(self) -> bool:
        return len(self) > 0


def check_columns(baseline: RowSnapshot, current: RowSnapshot) -> None:
    """
    Refuse to compare snapshots whose column sets differ.

    Raises:
        SchemaDriftError: Naming the missing and unexpected columns
    """
    baseline_cols = set(baseline.columns)
    current_cols = set(current.columns)
    if baseline_cols == current_cols:
        return

    missing = tuple(sorted(baseline_cols - current_cols))
    extra = tuple(sorted(current_cols - baseline_cols))
    raise SchemaDriftError(
        f"Column set of {current.table} changed since baseline "
        f"(missing: {', '.join(missing) or '-'}; unexpected: {', '.join(extra) or '-'})",
        missing=missing,
        extra=extra,
    )


def changed_columns(baseline_row, current_row) -> Tuple[str, ...]:
    """Columns whose Scalar values differ, in sorted order."""
    return tuple(
        sorted(column for column, cell in baseline_row.items() if current_row.get(column) != cell)
    )


def compute_drift(baseline: RowSnapshot, current: RowSnapshot) -> DriftSummary:
    """
    Classify every key that differs between baseline and current.

    - ADDED: key only in current (corrected by deleting it)
    - REMOVED: key only in baseline (corrected by re-inserting the baseline row)
    - MODIFIED: key in both with any differing column (corrected by
      overwriting every column with baseline values)

    Each group is ordered by key.

    Raises:
        SchemaDriftError: If the column sets differ
    """
    check_columns(baseline, current)
    summary = DriftSummary()

    for key in current.keys():
        if key not in baseline:
            summary.added.append(
                DriftRecord(kind=DriftKind.ADDED, key=key, row=current.get(key))
            )

    for key in baseline.keys():
        baseline_row = baseline.get(key)
        current_row = current.get(key)

        if current_row is None:
            summary.removed.append(
                DriftRecord(kind=DriftKind.REMOVED, key=key, row=baseline_row)
            )
            continue

        changed = changed_columns(baseline_row, current_row)
        if changed:
            summary.modified.append(
                DriftRecord(
                    kind=DriftKind.MODIFIED,
                    key=key,
                    row=baseline_row,
                    changed_columns=changed,
                    current_row=current_row,
                )
            )

    return summary
