"""
Stale Thread Sweeper
Periodically closes recruit threads that have been open past a threshold

The scheduler runs one sweep immediately on start and then one per interval
on a daemon thread. At most one sweep is ever in flight: a trigger that
arrives while a sweep is running is dropped, not queued.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .applicant_registry import ApplicantRegistry, RegistryEntry
from .chat_platform import ChatClient
from ..utils.config import DEFAULT_CLOSE_MESSAGE
from ..utils.metrics import CoordinatorMetrics

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60
DEFAULT_STALE_AFTER = timedelta(days=7)


@dataclass
class SweepResult:
    """Outcome of one sweep"""
    scanned: int = 0
    stale: int = 0
    finalized: int = 0
    retired: int = 0
    finalize_failures: int = 0


class ThreadCloser:
    """
    Finalizes a recruit thread: post a notice, lock it, archive it.

    Each step is best-effort. A thread that no longer exists (or cannot be
    fetched) is treated as already finalized.
    """

    def __init__(self, client: ChatClient, close_message: str = DEFAULT_CLOSE_MESSAGE) -> None:
        self.client = client
        self.close_message = close_message

    def finalize(self, entry: RegistryEntry) -> bool:
        """
        Close the thread behind *entry*.

        Returns:
            True if a live thread was closed, False if it was already gone
        """
        try:
            thread = self.client.fetch_thread(entry.resource_id)
        except Exception as e:
            logger.debug(f"Could not fetch thread {entry.resource_id}: {e}")
            thread = None

        if thread is None:
            return False

        try:
            thread.send(self.close_message)
        except Exception as e:
            # Archived threads reject new messages
            logger.debug(f"Could not post close notice in thread {entry.resource_id}: {e}")

        try:
            if not thread.locked:
                thread.set_locked(True, self.close_message)
        except Exception as e:
            logger.warning(f"Could not lock thread {entry.resource_id}: {e}")

        try:
            if not thread.archived:
                thread.set_archived(True, self.close_message)
        except Exception as e:
            logger.warning(f"Could not archive thread {entry.resource_id}: {e}")

        return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SweepScheduler:
    """
    Retires registry entries older than *stale_after*.

    Args:
        registry:         Registry to scan and prune.
        finalize:         Callable that closes the external resource of an
                          entry; exceptions are logged and never stop a sweep.
        interval_seconds: Delay between sweeps.
        stale_after:      Age at which an entry is retired (default 7 days).
        clock:            Returns the current aware UTC time.
        metrics:          Optional metrics sink.
    """

    def __init__(
        self,
        registry: ApplicantRegistry,
        finalize: Callable[[RegistryEntry], object],
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[CoordinatorMetrics] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.registry = registry
        self.finalize = finalize
        self.interval_seconds = interval_seconds
        self.stale_after = stale_after
        self._clock = clock
        self._metrics = metrics
        self._running = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._iteration = 0

    @property
    def is_running(self) -> bool:
        """True while a sweep is in flight"""
        return self._running.locked()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Sweep now, then every ``interval_seconds`` until ``stop``."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="sweep-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop scheduling. A sweep in progress runs to completion."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.trigger()
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}", exc_info=True)

            if self._stop_event.is_set():
                break
            logger.debug(f"Next sweep in {self.interval_seconds} seconds")
            self._stop_event.wait(self.interval_seconds)

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    def trigger(self) -> Optional[SweepResult]:
        """
        Run one sweep now.

        Returns:
            The sweep result, or ``None`` if another sweep was already running
            and this trigger was dropped
        """
        if not self._running.acquire(blocking=False):
            logger.debug("Sweep already running; trigger dropped")
            if self._metrics is not None:
                self._metrics.record_sweep_skipped()
            return None

        try:
            return self._sweep()
        finally:
            self._running.release()

    def _sweep(self) -> SweepResult:
        self._iteration += 1
        started = time.monotonic()
        result = SweepResult()

        entries = self.registry.list_all()
        result.scanned = len(entries)
        if not entries:
            return self._finish(result, started)

        logger.info(f"=== Sweep cycle {self._iteration}: {len(entries)} open thread(s) ===")

        now = self._clock()
        cutoff = now - self.stale_after
        stale = [e for e in entries if e.opened_at is None or e.opened_at <= cutoff]
        result.stale = len(stale)

        for entry in stale:
            context = {"thread_id": entry.resource_id, "applicant_id": entry.owner_key}
            try:
                self.finalize(entry)
                result.finalized += 1
            except Exception as e:
                result.finalize_failures += 1
                if self._metrics is not None:
                    self._metrics.record_finalize_failure(type(e).__name__)
                logger.warning(
                    f"Failed to auto-close recruit thread {entry.resource_id}: {e}",
                    extra={"extra_fields": context},
                )

            # Removed even when finalize failed so the registry cannot grow without bound
            try:
                if self.registry.remove_by_resource(entry.resource_id):
                    result.retired += 1
                    logger.info(
                        f"Retired stale recruit thread {entry.resource_id}",
                        extra={"extra_fields": context},
                    )
            except Exception as e:
                logger.error(f"Failed to remove registry entry for thread {entry.resource_id}: {e}")

        return self._finish(result, started)

    def _finish(self, result: SweepResult, started: float) -> SweepResult:
        duration_ms = (time.monotonic() - started) * 1000
        if self._metrics is not None:
            self._metrics.record_sweep(duration_ms, result.retired)
        if result.stale:
            logger.info(
                f"Sweep complete: scanned={result.scanned} stale={result.stale} "
                f"retired={result.retired} failures={result.finalize_failures}"
            )
        return result
