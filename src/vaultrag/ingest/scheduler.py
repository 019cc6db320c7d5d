"""Periodic background reconcile."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from vaultrag.ingest.indexer import Indexer, ReconcileReport

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    """Run ``Indexer.reconcile`` every *interval* seconds on a daemon thread.

    A tick that fires while a pass (manual or scheduled) is still running is
    suppressed by the indexer's lock and logged; it is not queued.

    Args:
        indexer:   Indexer to drive.
        interval:  Seconds between passes.
        on_update: Called with the report after a pass that changed the index.
    """

    def __init__(
        self,
        indexer: Indexer,
        interval: float = 45.0,
        on_update: Callable[[ReconcileReport], None] | None = None,
    ) -> None:
        self._indexer = indexer
        self._interval = interval
        self._on_update = on_update
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, run_immediately: bool = True) -> None:
        """Start the background thread (no-op if already running)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(run_immediately,), name="vaultrag-reconcile", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Signal the thread to stop and wait for the current pass to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def tick(self) -> ReconcileReport | None:
        """Run one pass now; returns None when it was suppressed."""
        report = self._indexer.reconcile()
        if report is None:
            logger.debug("Already reconciling; skipped scheduled pass")
            return None
        if report.has_updates and self._on_update is not None:
            self._on_update(report)
        return report

    def _run(self, run_immediately: bool) -> None:
        if run_immediately:
            self._safe_tick()
        while not self._stop.wait(self._interval):
            self._safe_tick()

    def _safe_tick(self) -> None:
        try:
            self.tick()
        except Exception:
            # Keep the schedule alive; the next tick retries.
            logger.exception("Scheduled reconcile failed")
