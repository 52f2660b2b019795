"""Background sweeper for stale refresh token records."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from authgate.core.metrics import SWEEPER_UP_GAUGE, SWEPT_TOKENS
from authgate.services.credential_store import CredentialStore, utcnow

logger = logging.getLogger(__name__)


class TokenSweeper:
    """
    Periodically delete store records older than the refresh lifetime.

    Independent of signature expiry: it bounds store growth even for tokens
    nobody ever presents again. A failed run is logged and the next run
    retries.
    """

    def __init__(
        self,
        store: CredentialStore,
        refresh_lifetime: timedelta,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._lifetime = refresh_lifetime
        self._interval = max(0.01, interval_seconds)
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._heartbeat: float = 0.0
        self._runs: int = 0
        self._failures: int = 0
        self._deleted_total: int = 0
        self._last_deleted: int = 0

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="token-sweeper", daemon=True)
        self._thread.start()
        SWEEPER_UP_GAUGE.set(1)
        logger.info("Token sweeper started (interval=%.1fs, lifetime=%s)", self._interval, self._lifetime)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        SWEEPER_UP_GAUGE.set(0)
        logger.info("Token sweeper stopped")

    def status(self) -> dict:
        with self._lock:
            return {
                "running": self.is_running(),
                "last_heartbeat": self._heartbeat,
                "runs": self._runs,
                "failures": self._failures,
                "last_deleted": self._last_deleted,
                "deleted_total": self._deleted_total,
            }

    def sweep_once(self) -> int:
        """
        Delete records created before ``now - refresh_lifetime``.

        Returns:
            int: Number of records deleted

        Raises:
            StorageError: If the store is unavailable.
        """
        cutoff = self._clock() - self._lifetime
        deleted = self._store.delete_created_before(cutoff)
        SWEPT_TOKENS.inc(deleted)
        if deleted:
            logger.info("Swept %d stale refresh tokens (cutoff=%s)", deleted, cutoff.isoformat())
        return deleted

    def run_pending(self) -> int:
        """One scheduled run: never raises, returns 0 on failure."""
        try:
            deleted = self.sweep_once()
        except Exception as exc:
            logger.exception("Token sweep failed: %s", exc)
            with self._lock:
                self._runs += 1
                self._failures += 1
                self._heartbeat = time.time()
            return 0

        with self._lock:
            self._runs += 1
            self._last_deleted = deleted
            self._deleted_total += deleted
            self._heartbeat = time.time()
        return deleted

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.run_pending()
