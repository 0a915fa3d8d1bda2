"""
Fixed-interval scheduler for reconcilers.

This module provides a ThreadPoolExecutor-based supervisor that:
- Runs each reconciler on its own worker thread and its own interval
- Isolates failures per cycle and per reconciler
- Provides a graceful shutdown path (signal or shutdown()) that lets an
  in-flight cycle commit or roll back before its worker exits
"""

import logging
import signal
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..core.exceptions import FatalInitError
from ..core.logging import reconciler_context
from ..core.reconciler import CycleReport, Reconciler


logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 5.0


@dataclass
class SchedulerConfig:
    """
    Configuration for the scheduler.

    Attributes:
        default_interval: Seconds between cycles when a reconciler has no own interval
        max_cycles: Stop each reconciler after this many cycles (None = run until shutdown)
        install_signal_handlers: Handle SIGINT/SIGTERM while run() is active
        poll_interval: Seconds between supervisor checks on worker state
    """
    default_interval: float = DEFAULT_INTERVAL_SECONDS
    max_cycles: Optional[int] = None
    install_signal_handlers: bool = True
    poll_interval: float = 0.5


@dataclass
class CycleOutcome:
    """Result of one cycle of one reconciler."""
    reconciler: str
    cycle: int
    ok: bool
    report: Optional[CycleReport] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class ReconcilerStats:
    """Running counters for one reconciler."""
    name: str
    interval: float
    cycles: int = 0
    failures: int = 0
    corrections: int = 0
    last_error: Optional[str] = None
    last_run_at: Optional[datetime] = None


@dataclass
class _Entry:
    reconciler: Reconciler
    interval: float
    stats: ReconcilerStats


@dataclass
class RunSummary:
    """Aggregate outcome of a scheduler run."""
    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    reconcilers: Dict[str, ReconcilerStats] = field(default_factory=dict)


class ReconciliationScheduler:
    """
    Supervisor that runs every registered reconciler independently.

    Reconcilers share nothing: each has its own thread, interval and
    storage handle. A failed cycle is logged and retried at the next
    tick with fresh state.
    """

    def __init__(self, config: Optional[SchedulerConfig] = None):
        self.config = config or SchedulerConfig()
        self._entries: List[_Entry] = []
        self._shutdown_event = threading.Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._workers: Dict[str, Future] = {}
        self._initialized = False

    def add(self, reconciler: Reconciler, interval: Optional[float] = None) -> None:
        """
        Register a reconciler.

        Args:
            reconciler: The reconciler to run
            interval: Seconds between cycles (default from config)

        Raises:
            ValueError: If the name is already registered or the interval is not positive
        """
        name = reconciler.get_name()
        if any(e.reconciler.get_name() == name for e in self._entries):
            raise ValueError(f"Reconciler already registered: {name}")
        interval = self.config.default_interval if interval is None else float(interval)
        if interval <= 0:
            raise ValueError(f"Interval must be positive for {name}, got {interval}")

        self._entries.append(
            _Entry(
                reconciler=reconciler,
                interval=interval,
                stats=ReconcilerStats(name=name, interval=interval),
            )
        )
        logger.info(f"Registered reconciler {name} (every {interval:g}s)")

    @property
    def reconcilers(self) -> List[Reconciler]:
        return [e.reconciler for e in self._entries]

    def stats(self) -> Dict[str, ReconcilerStats]:
        return {e.stats.name: e.stats for e in self._entries}

    def initialize(self) -> None:
        """
        Establish every reconciler's reference state.

        Raises:
            FatalInitError: Propagated from the first reconciler that fails
        """
        if self._initialized:
            return
        for entry in self._entries:
            name = entry.reconciler.get_name()
            with reconciler_context(reconciler=name):
                try:
                    entry.reconciler.initialize()
                except FatalInitError:
                    logger.error(f"Initialization failed for {name}")
                    raise
        self._initialized = True

    def run_cycle(self, reconciler: Reconciler, cycle: int = 1) -> CycleOutcome:
        """
        Run one cycle, converting any failure into a logged outcome.

        Never raises for a cycle failure.
        """
        name = reconciler.get_name()
        entry = next((e for e in self._entries if e.reconciler is reconciler), None)

        with reconciler_context(reconciler=name, cycle=cycle):
            try:
                report = reconciler.run_cycle()
            except Exception as e:
                logger.error(f"Cycle failed for {name}: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
                outcome = CycleOutcome(
                    reconciler=name,
                    cycle=cycle,
                    ok=False,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                outcome = CycleOutcome(reconciler=name, cycle=cycle, ok=True, report=report)

        if entry is not None:
            stats = entry.stats
            stats.cycles += 1
            stats.last_run_at = datetime.now(timezone.utc)
            if outcome.ok:
                if outcome.report is not None and outcome.report.changed:
                    stats.corrections += 1
            else:
                stats.failures += 1
                stats.last_error = outcome.error
        return outcome

    def run_once(self) -> List[CycleOutcome]:
        """Initialize, then run one cycle of every reconciler serially."""
        self.initialize()
        return [self.run_cycle(e.reconciler) for e in self._entries]

    def run(self, run_id: Optional[str] = None) -> RunSummary:
        """
        Run all reconcilers until shutdown (or max_cycles each).

        Raises:
            FatalInitError: If initialization fails; nothing is started
        """
        if run_id is None:
            run_id = str(uuid.uuid4())

        summary = RunSummary(run_id=run_id, started_at=datetime.now(timezone.utc))

        self.initialize()

        if not self._entries:
            logger.warning("No reconcilers configured; nothing to run")
            summary.ended_at = datetime.now(timezone.utc)
            return summary

        logger.info(f"Starting scheduler run {run_id} with {len(self._entries)} reconcilers")
        self._shutdown_event.clear()

        restore_signals = self._install_signal_handlers()

        try:
            self._executor = ThreadPoolExecutor(
                max_workers=len(self._entries),
                thread_name_prefix="reconciler",
            )
            for entry in self._entries:
                name = entry.reconciler.get_name()
                self._workers[name] = self._executor.submit(self._worker_loop, entry)
                logger.info(f"Started worker for {name}")

            # Wait for all workers to complete (poll to allow Ctrl+C)
            while True:
                all_done = True
                for name, future in list(self._workers.items()):
                    if not future.done():
                        all_done = False
                    elif future.exception():
                        logger.error(f"Worker {name} crashed: {future.exception()}")
                if all_done:
                    break
                time.sleep(self.config.poll_interval)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, initiating shutdown...")
            self.shutdown()
        finally:
            restore_signals()
            self._cleanup()

        summary.ended_at = datetime.now(timezone.utc)
        summary.reconcilers = self.stats()
        logger.info(f"Scheduler run {run_id} stopped")
        return summary

    def shutdown(self) -> None:
        """Ask every worker to stop after its current cycle."""
        if not self._shutdown_event.is_set():
            logger.info("Shutdown requested; waiting for in-flight cycles")
        self._shutdown_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    def close(self) -> None:
        """Release every reconciler's resources."""
        for entry in self._entries:
            name = entry.reconciler.get_name()
            try:
                entry.reconciler.close()
            except Exception as e:
                logger.warning(f"Failed to close {name}: {e}")

    def _worker_loop(self, entry: _Entry) -> None:
        name = entry.reconciler.get_name()
        cycle = 0
        while not self._shutdown_event.is_set():
            cycle += 1
            self.run_cycle(entry.reconciler, cycle)

            if self.config.max_cycles is not None and cycle >= self.config.max_cycles:
                break
            if self._shutdown_event.wait(entry.interval):
                break
        logger.info(f"Worker for {name} stopped after {cycle} cycles")

    def _install_signal_handlers(self):
        if (
            not self.config.install_signal_handlers
            or threading.current_thread() is not threading.main_thread()
        ):
            return lambda: None

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handle_shutdown_signal(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown...")
            self.shutdown()

        signal.signal(signal.SIGINT, _handle_shutdown_signal)
        signal.signal(signal.SIGTERM, _handle_shutdown_signal)

        def _restore():
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

        return _restore

    def _cleanup(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._workers.clear()
