#!/usr/bin/env python3
"""
CLI for the safeguard reconciliation process.

Usage:
    safeguard run         --config config.yaml [--once] [--dry-run]
    safeguard init-config --out config.yaml
    safeguard sync-dir    --source trusted/ --target live/ [--dry-run] [--json]
    safeguard snapshot    --config config.yaml --table acg_pay [--key id]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .audit import AuditLog
from .config import DIGEST_ALGORITHMS, SafeguardConfig, TableProtection, save_default_config
from .core.exceptions import FatalInitError, SafeguardError
from .core.logging import configure_logging
from .core.models import SentinelRule
from .reconcile import DirectoryReconciler, PruneReconciler, RestoreReconciler
from .runner import ReconciliationScheduler, SchedulerConfig
from .snapshot import ContentFingerprinter, RowSnapshotStore, canonicalize
from .storage import DatabaseSettings, create_connection


logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, config: Optional[SafeguardConfig] = None) -> None:
    """Configure logging from the config file, forcing DEBUG when verbose."""
    settings = config.get_logging_config() if config is not None else {}
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(str(settings.get("level", "INFO")).upper())
        if not isinstance(level, int):
            level = logging.INFO

    configure_logging(level=level, structured=bool(settings.get("structured", False)))


def open_store(settings: DatabaseSettings, protection: TableProtection) -> RowSnapshotStore:
    """
    Open a dedicated connection for one protected table.

    Raises:
        FatalInitError: If the database cannot be reached
    """
    try:
        conn = create_connection(settings)
    except SafeguardError:
        raise
    except Exception as e:
        raise FatalInitError(
            f"Cannot connect to {settings.backend} at {settings.address} "
            f"for table {protection.table}: {e}"
        ) from e
    return RowSnapshotStore(
        conn,
        protection.table,
        key_column=protection.key_column,
        dialect=settings.dialect,
    )


def build_scheduler(
    config: SafeguardConfig,
    dry_run: bool = False,
    scheduler_config: Optional[SchedulerConfig] = None,
) -> ReconciliationScheduler:
    """
    Build a scheduler holding every enabled reconciler from config.

    Each table reconciler gets its own connection and audit file.

    Raises:
        FatalInitError: If a protected table's database cannot be reached
        ConfigurationError: If the config is invalid
    """
    scheduler = ReconciliationScheduler(scheduler_config or SchedulerConfig())
    try:
        _add_reconcilers(scheduler, config, dry_run)
    except Exception:
        scheduler.close()
        raise
    return scheduler


def _add_reconcilers(scheduler: ReconciliationScheduler, config: SafeguardConfig, dry_run: bool) -> None:
    audit_dir = config.get_audit_dir()

    fingerprinter = ContentFingerprinter(config.get_digest_algorithm())
    dir_interval = config.get_directory_interval()
    for pair in config.get_directory_pairs():
        if not pair.enabled:
            logger.info(f"Directory pair {pair.name} has no source or target, skipping")
            continue
        reconciler = DirectoryReconciler(
            pair.source,
            pair.target,
            fingerprinter=fingerprinter,
            audit=AuditLog(audit_dir / f"dir_{pair.name}_sync.log", f"dir-{pair.name}"),
            dry_run=dry_run,
            name=f"dir:{pair.name}",
        )
        scheduler.add(reconciler, interval=dir_interval)

    db_settings = config.get_database_config()

    prune = config.get_prune_config()
    if prune.enabled:
        store = open_store(db_settings, prune)
        scheduler.add(
            PruneReconciler(
                store,
                rule=SentinelRule(key_column=prune.key_column, sentinel_key=prune.sentinel_key),
                audit=AuditLog(audit_dir / prune.audit_log, f"prune-{prune.table}"),
                dry_run=dry_run,
            ),
            interval=prune.interval_seconds,
        )

    restore = config.get_restore_config()
    if restore.enabled:
        store = open_store(db_settings, restore)
        scheduler.add(
            RestoreReconciler(
                store,
                audit=AuditLog(audit_dir / restore.audit_log, f"restore-{restore.table}"),
                dry_run=dry_run,
            ),
            interval=restore.interval_seconds,
        )


def cmd_run(args) -> int:
    """Run every configured reconciler until interrupted."""
    try:
        config = SafeguardConfig.load_or_create(args.config)
    except (SafeguardError, OSError) as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    setup_logging(verbose=args.verbose, config=config)

    try:
        scheduler = build_scheduler(config, dry_run=args.dry_run)
    except (SafeguardError, ValueError) as e:
        logger.error(f"Startup failed: {e}")
        return 1

    try:
        if args.once:
            outcomes = scheduler.run_once()
            for outcome in outcomes:
                if outcome.ok:
                    print(f"{outcome.reconciler}: {outcome.report.summary()}")
                else:
                    print(f"{outcome.reconciler}: FAILED {outcome.error_type}: {outcome.error}")
            return 0 if all(o.ok for o in outcomes) else 1

        summary = scheduler.run()
        for stats in summary.reconcilers.values():
            logger.info(
                f"{stats.name}: {stats.cycles} cycles, {stats.corrections} with corrections, "
                f"{stats.failures} failed"
            )
        return 0
    except FatalInitError as e:
        logger.error(f"Startup failed: {e}")
        return 1
    finally:
        scheduler.close()


def cmd_init_config(args) -> int:
    """Write the default configuration file."""
    out = Path(args.out)
    if out.exists() and not args.force:
        logger.error(f"Config file already exists: {out} (use --force to overwrite)")
        return 1

    save_default_config(out)
    print(f"Wrote default config to {out}")
    return 0


def cmd_sync_dir(args) -> int:
    """Run one mirroring pass between two directories."""
    try:
        reconciler = DirectoryReconciler(
            args.source,
            args.target,
            fingerprinter=ContentFingerprinter(args.algorithm),
            dry_run=args.dry_run,
        )
        report = reconciler.sync()
    except (SafeguardError, ValueError) as e:
        logger.error(f"Sync failed: {e}")
        return 1

    print(report.summary())

    if args.json:
        print("\n" + json.dumps(report.to_dict(), indent=2))

    return 0 if not report.errors else 1


def cmd_snapshot(args) -> int:
    """Print the current rows of one table as JSON."""
    try:
        config = SafeguardConfig(args.config)
        settings = config.get_database_config()
        protection = TableProtection(
            enabled=True,
            table=args.table,
            key_column=args.key,
            audit_log="",
            interval_seconds=0,
        )
        store = open_store(settings, protection)
    except (SafeguardError, OSError, ValueError) as e:
        logger.error(f"Failed to open table {args.table}: {e}")
        return 1

    try:
        snapshot = store.capture()
    except SafeguardError as e:
        logger.error(f"Failed to capture {args.table}: {e}")
        return 1
    finally:
        store.close()

    print(json.dumps(json.loads(canonicalize(snapshot.to_plain())), indent=2, ensure_ascii=False))
    return 0


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="safeguard",
        description="Keeps protected directories and tables in their trusted state",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run all reconcilers")
    run_parser.add_argument("--config", default="config.yaml", help="Path to config YAML (created if missing)")
    run_parser.add_argument("--once", action="store_true", help="Run a single cycle of each reconciler and exit")
    run_parser.add_argument("--dry-run", action="store_true", help="Report without making changes")

    # Init-config command
    init_parser = subparsers.add_parser("init-config", help="Write the default config file")
    init_parser.add_argument("--out", default="config.yaml", help="Output path")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    # Sync-dir command
    sync_parser = subparsers.add_parser("sync-dir", help="Mirror one directory onto another once")
    sync_parser.add_argument("--source", required=True, help="Trusted source directory")
    sync_parser.add_argument("--target", required=True, help="Target directory to repair")
    sync_parser.add_argument(
        "--algorithm", default="sha256", choices=DIGEST_ALGORITHMS, help="Digest algorithm (default: sha256)"
    )
    sync_parser.add_argument("--dry-run", action="store_true", help="Report without making changes")
    sync_parser.add_argument("--json", action="store_true", help="Output report as JSON")

    # Snapshot command
    snapshot_parser = subparsers.add_parser("snapshot", help="Print a table's current rows")
    snapshot_parser.add_argument("--config", required=True, help="Path to config YAML")
    snapshot_parser.add_argument("--table", required=True, help="Table name")
    snapshot_parser.add_argument("--key", default="id", help="Primary key column (default: id)")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    setup_logging(verbose=args.verbose)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "init-config":
        return cmd_init_config(args)
    elif args.command == "sync-dir":
        return cmd_sync_dir(args)
    elif args.command == "snapshot":
        return cmd_snapshot(args)
    else:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
