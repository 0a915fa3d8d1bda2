"""
Unit tests for the prune policy.
"""

from unittest.mock import patch

import pytest

from safeguard.audit import AuditLog
from safeguard.core.exceptions import CycleError, SnapshotError
from safeguard.core.models import SentinelRule
from safeguard.reconcile import PruneReconciler


MANAGE_COLUMNS = "id INTEGER PRIMARY KEY, username TEXT, password TEXT"


@pytest.fixture
def manage_table(db):
    db.create_table("acg_manage", MANAGE_COLUMNS, [
        {"id": 1, "username": "admin", "password": "hash1"},
        {"id": 7, "username": "intruder", "password": "x"},
        {"id": 8, "username": "intruder2", "password": "y"},
    ])
    return db


@pytest.mark.unit
class TestPruneReconciler:
    """Tests for PruneReconciler."""

    def test_deletes_everything_but_sentinel(self, manage_table, open_store):
        reconciler = PruneReconciler(open_store("acg_manage"))

        report = reconciler.prune_cycle()

        assert manage_table.rows("acg_manage") == [
            {"id": 1, "username": "admin", "password": "hash1"}
        ]
        assert report.rows_seen == 3
        assert report.pruned == 2
        assert report.pruned_keys == [7, 8]
        assert report.sentinel_present
        assert report.changed

    def test_audits_each_row_before_delete(self, manage_table, open_store, tmp_path):
        audit_path = tmp_path / "acg_manage_cleanup.log"
        audit = AuditLog(audit_path, "prune-test")
        reconciler = PruneReconciler(open_store("acg_manage"), audit=audit)

        reconciler.prune_cycle()
        audit.close()

        lines = audit_path.read_text().splitlines()
        pruned = [line for line in lines if " pruned acg_manage " in line]
        assert len(pruned) == 2
        assert "key=7" in pruned[0]
        assert '"username":"intruder"' in pruned[0]
        assert "key=8" in pruned[1]
        assert not any("key=1 " in line for line in pruned)

    def test_second_cycle_is_heartbeat(self, manage_table, open_store, tmp_path):
        audit_path = tmp_path / "audit.log"
        audit = AuditLog(audit_path, "prune-heartbeat")
        reconciler = PruneReconciler(open_store("acg_manage"), audit=audit)

        reconciler.prune_cycle()
        second = reconciler.prune_cycle()
        audit.close()

        assert second.pruned == 0
        assert not second.changed
        assert "no new rows in acg_manage" in audit_path.read_text()

    def test_missing_sentinel_is_not_created(self, db, open_store):
        db.create_table("acg_manage", MANAGE_COLUMNS, [{"id": 5, "username": "x", "password": "y"}])

        report = PruneReconciler(open_store("acg_manage")).prune_cycle()

        assert db.rows("acg_manage") == []
        assert not report.sentinel_present
        assert report.pruned == 1

    def test_custom_sentinel(self, manage_table, open_store):
        reconciler = PruneReconciler(
            open_store("acg_manage"), rule=SentinelRule(key_column="id", sentinel_key=7)
        )

        reconciler.prune_cycle()

        assert [r["id"] for r in manage_table.rows("acg_manage")] == [7]

    def test_rule_key_column_must_match_store(self, manage_table, open_store):
        with pytest.raises(ValueError):
            PruneReconciler(open_store("acg_manage"), rule=SentinelRule(key_column="uid"))

    def test_dry_run_deletes_nothing(self, manage_table, open_store):
        report = PruneReconciler(open_store("acg_manage"), dry_run=True).prune_cycle()

        assert len(manage_table.rows("acg_manage")) == 3
        assert report.pruned == 2
        assert report.summary().startswith("Dry run")

    def test_unreadable_table_fails_cycle(self, db, open_store):
        with pytest.raises(SnapshotError):
            PruneReconciler(open_store("acg_manage")).prune_cycle()

    def test_delete_failure_raises_cycle_error(self, manage_table, open_store):
        reconciler = PruneReconciler(open_store("acg_manage"))

        with patch("safeguard.reconcile.prune.execute", side_effect=RuntimeError("locked")):
            with pytest.raises(CycleError) as exc_info:
                reconciler.prune_cycle()

        assert exc_info.value.reconciler == "prune:acg_manage"
        assert len(manage_table.rows("acg_manage")) == 3

    def test_run_cycle_delegates(self, manage_table, open_store):
        reconciler = PruneReconciler(open_store("acg_manage"))
        assert reconciler.get_name() == "prune:acg_manage"
        assert reconciler.run_cycle().pruned == 2
