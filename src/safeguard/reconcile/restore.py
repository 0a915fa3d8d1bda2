"""
Restore policy: hold a table at the state captured at start-up.

The baseline is captured once by initialize() and never changes. Each
cycle diffs the live table against it and replays the inverse
operations inside a single transaction, so readers never see a
half-restored table.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..audit import AuditLog
from ..core.exceptions import FatalInitError, TransactionError
from ..core.models import DriftKind, DriftRecord, RowSnapshot
from ..core.reconciler import CycleReport, Reconciler
from ..snapshot.table_snapshot import RowSnapshotStore
from ..storage.sql import (
    Statement,
    build_delete,
    build_identity_insert,
    build_insert,
    build_update,
    execute,
)
from .diff import DriftSummary, compute_drift

logger = logging.getLogger(__name__)


@dataclass
class RestoreReport(CycleReport):
    """Report of one restore cycle."""
    table: str = ""
    baseline_rows: int = 0
    current_rows: int = 0
    deleted: int = 0
    reinserted: int = 0
    reverted: int = 0
    drift: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deleted or self.reinserted or self.reverted)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "table": self.table,
            "baseline_rows": self.baseline_rows,
            "current_rows": self.current_rows,
            "deleted": self.deleted,
            "reinserted": self.reinserted,
            "reverted": self.reverted,
            "drift": self.drift,
        })
        return data

    def summary(self) -> str:
        if not self.changed:
            return f"{self.table} matches baseline ({self.baseline_rows} rows)"
        prefix = "Dry run: would restore" if self.dry_run else "Restored"
        return (
            f"{prefix} {self.table}: deleted {self.deleted} added rows, "
            f"re-inserted {self.reinserted} removed rows, "
            f"reverted {self.reverted} modified rows"
        )


class RestoreReconciler(Reconciler):
    """
    Undoes inserts, deletes and updates against a baseline snapshot.

    The baseline belongs to this instance alone. Corrective statements
    for one cycle are applied all-or-nothing; each drift is audited
    before its statement executes.
    """

    def __init__(
        self,
        store: RowSnapshotStore,
        audit: Optional[AuditLog] = None,
        dry_run: bool = False,
        name: Optional[str] = None,
    ):
        self.store = store
        self.audit = audit or AuditLog.null(f"restore-{store.table}")
        self.dry_run = dry_run
        self.name = name or f"restore:{store.table}"
        self._baseline: Optional[RowSnapshot] = None

    @property
    def baseline(self) -> RowSnapshot:
        if self._baseline is None:
            raise RuntimeError(f"{self.name} has not been initialized")
        return self._baseline

    def get_name(self) -> str:
        return self.name

    def initialize(self) -> None:
        """
        Capture the baseline snapshot.

        Raises:
            FatalInitError: If the table cannot be read; without a baseline
                no restoration is possible
        """
        if self._baseline is not None:
            return
        try:
            self._baseline = self.store.capture()
        except Exception as e:
            self.audit.error(f"failed to capture baseline of {self.store.table}: {e}")
            raise FatalInitError(
                f"Failed to capture baseline of {self.store.table}: {e}"
            ) from e

        message = f"loaded baseline of {self.store.table} ({len(self._baseline)} rows)"
        logger.info(message)
        self.audit.heartbeat(message)

    def run_cycle(self) -> RestoreReport:
        return self.restore_cycle()

    def close(self) -> None:
        self.store.close()
        self.audit.close()

    def restore_cycle(self) -> RestoreReport:
        """
        Capture the live table, diff it against the baseline and replay
        the inverse operations.

        Returns:
            RestoreReport with per-kind counts

        Raises:
            SnapshotError: If the live table cannot be read
            SchemaDriftError: If the column set changed since the baseline
            TransactionError: If any corrective statement failed (batch rolled back)
        """
        baseline = self.baseline
        table = self.store.table
        report = RestoreReport(
            reconciler=self.name,
            dry_run=self.dry_run,
            table=table,
            baseline_rows=len(baseline),
        )

        current = self.store.capture()
        report.current_rows = len(current)

        drift = compute_drift(baseline, current)
        report.drift = [
            {
                "kind": record.kind.value,
                "key": str(record.key),
                "changed_columns": list(record.changed_columns),
            }
            for record in drift.records
        ]

        if not drift:
            logger.debug(report.summary())
            report.finish()
            return report

        if self.dry_run:
            for record in drift.records:
                self._audit_drift(record)
            self._count(report, drift)
            report.finish()
            logger.info(report.summary())
            return report

        self._apply(drift)
        self._count(report, drift)
        report.finish()
        logger.info(report.summary())
        return report

    def corrective_statement(self, record: DriftRecord) -> Statement:
        """Build the statement that undoes one drift record."""
        dialect = self.store.dialect
        table = self.store.table
        key_column = self.store.key_column

        if record.kind is DriftKind.ADDED:
            return build_delete(dialect, table, key_column, record.key)
        if record.kind is DriftKind.REMOVED:
            return build_insert(dialect, table, record.row)
        return build_update(dialect, table, key_column, record.row)

    def _apply(self, drift: DriftSummary) -> None:
        table = self.store.table
        current_record = None
        # Re-inserted rows carry their original key
        identity_on = build_identity_insert(self.store.dialect, table, True) if drift.removed else None
        try:
            with self.store.transaction() as cursor:
                if identity_on is not None:
                    execute(cursor, identity_on)
                for record in drift.records:
                    current_record = record
                    self._audit_drift(record)
                    execute(cursor, self.corrective_statement(record))
                if identity_on is not None:
                    current_record = None
                    execute(cursor, build_identity_insert(self.store.dialect, table, False))
        except Exception as e:
            key = current_record.key if current_record is not None else None
            action = current_record.kind.value if current_record is not None else "batch"
            message = (
                f"restore of {table} rolled back while correcting {action} row "
                f"key={key}: {e}"
            )
            self.audit.error(message)
            raise TransactionError(message, table=table, key=key) from e

        self.audit.heartbeat(
            f"committed {len(drift)} corrections to {table} "
            f"(added {len(drift.added)}, removed {len(drift.removed)}, "
            f"modified {len(drift.modified)})"
        )

    def _audit_drift(self, record: DriftRecord) -> None:
        table = self.store.table
        if record.kind is DriftKind.ADDED:
            self.audit.record("deleted", table, row=record.row, key=record.key)
        elif record.kind is DriftKind.REMOVED:
            self.audit.record("restored", table, row=record.row, key=record.key)
        else:
            self.audit.record(
                "reverted",
                table,
                row=record.current_row,
                key=record.key,
                changed=",".join(record.changed_columns),
            )

    @staticmethod
    def _count(report: RestoreReport, drift: DriftSummary) -> None:
        report.deleted = len(drift.added)
        report.reinserted = len(drift.removed)
        report.reverted = len(drift.modified)

