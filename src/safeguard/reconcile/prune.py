"""
Prune policy: delete every row of a table except the sentinel row.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..audit import AuditLog
from ..core.exceptions import CycleError
from ..core.models import SentinelRule
from ..core.reconciler import CycleReport, Reconciler
from ..snapshot.table_snapshot import RowSnapshotStore
from ..storage.sql import build_delete_except, execute

logger = logging.getLogger(__name__)


@dataclass
class PruneReport(CycleReport):
    """Report of one prune cycle."""
    table: str = ""
    rows_seen: int = 0
    pruned: int = 0
    pruned_keys: List[Any] = field(default_factory=list)
    sentinel_present: bool = False

    @property
    def changed(self) -> bool:
        return self.pruned > 0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "table": self.table,
            "rows_seen": self.rows_seen,
            "pruned": self.pruned,
            "pruned_keys": [str(k) for k in self.pruned_keys],
            "sentinel_present": self.sentinel_present,
        })
        return data

    def summary(self) -> str:
        if not self.pruned:
            return f"No rows to prune in {self.table}"
        prefix = "Dry run: would delete" if self.dry_run else "Deleted"
        return f"{prefix} {self.pruned} rows from {self.table}"


class PruneReconciler(Reconciler):
    """
    Keeps only the sentinel row of a table.

    Every row about to be removed is written to the audit log before the
    bulk delete runs. The delete is idempotent, so a crash between the two
    steps at worst logs the same rows again next cycle.
    """

    def __init__(
        self,
        store: RowSnapshotStore,
        rule: Optional[SentinelRule] = None,
        audit: Optional[AuditLog] = None,
        dry_run: bool = False,
        name: Optional[str] = None,
    ):
        self.store = store
        self.rule = rule or SentinelRule(key_column=store.key_column)
        if self.rule.key_column != store.key_column:
            raise ValueError(
                f"Sentinel key column {self.rule.key_column!r} does not match "
                f"store key column {store.key_column!r}"
            )
        self.audit = audit or AuditLog.null(f"prune-{store.table}")
        self.dry_run = dry_run
        self.name = name or f"prune:{store.table}"

    def get_name(self) -> str:
        return self.name

    def run_cycle(self) -> PruneReport:
        return self.prune_cycle()

    def close(self) -> None:
        self.store.close()
        self.audit.close()

    def prune_cycle(self) -> PruneReport:
        """
        Delete all non-sentinel rows.

        Returns:
            PruneReport with the pruned keys

        Raises:
            SnapshotError: If the table cannot be read
            CycleError: If the delete fails (rolled back)
        """
        table = self.store.table
        report = PruneReport(reconciler=self.name, dry_run=self.dry_run, table=table)

        snapshot = self.store.capture()
        report.rows_seen = len(snapshot)

        transient = []
        for key in snapshot.keys():
            if self.rule.is_sentinel(key):
                report.sentinel_present = True
            else:
                transient.append(key)

        if not transient:
            logger.debug(f"No new rows found in {table}")
            self.audit.heartbeat(f"no new rows in {table}")
            report.finish()
            return report

        # Audit before deleting
        for key in transient:
            self.audit.record("pruned", table, row=snapshot.get(key), key=key)
        report.pruned = len(transient)
        report.pruned_keys = [key.value for key in transient]

        if self.dry_run:
            report.finish()
            logger.info(report.summary())
            return report

        statement = build_delete_except(
            self.store.dialect, table, self.rule.key_column, self.rule.sentinel
        )
        try:
            with self.store.transaction() as cursor:
                deleted = execute(cursor, statement)
        except Exception as e:
            self.audit.error(f"delete from {table} failed: {e}")
            raise CycleError(f"Failed to prune {table}: {e}", reconciler=self.name) from e

        if deleted is not None and deleted > len(transient):
            # Rows inserted between the read and the delete were not audited
            message = (
                f"deleted {deleted} rows from {table} but only {len(transient)} "
                f"were captured beforehand"
            )
            logger.warning(message)
            self.audit.error(message)
        self.audit.heartbeat(f"deleted {len(transient)} rows from {table}")
        report.finish()
        logger.info(report.summary())
        return report
