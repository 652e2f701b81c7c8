"""
Metrics Collection Module
Tracks sweep activity, registry churn and war cache write statistics
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict


@dataclass
class CoordinatorMetrics:
    """
    Collects operational metrics for the coordination core.

    Counters are cumulative since startup (or the last ``reset``). Sweep
    durations are kept in a bounded deque so a long-running daemon never
    grows the sample list without limit.
    """

    # Sweeps that ran to completion
    sweeps_run: int = 0

    # Sweep triggers dropped because a sweep was already in flight
    sweeps_skipped: int = 0

    # Registry entries removed by the sweeper
    entries_retired: int = 0

    # Finalize failures by exception type
    finalize_failures: Counter = field(default_factory=Counter)

    # War cache day files written / suppressed as duplicates
    war_cache_writes: int = 0
    war_cache_writes_skipped: int = 0

    # Duration of each sweep in milliseconds
    sweep_duration_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=500))

    # Count of errors by type
    errors_count: Counter = field(default_factory=Counter)

    start_time: datetime = field(default_factory=datetime.now)

    def record_sweep(self, duration_ms: float, retired: int):
        """Record a completed sweep and how many entries it retired."""
        self.sweeps_run += 1
        self.entries_retired += retired
        self.sweep_duration_ms.append(duration_ms)

    def record_sweep_skipped(self):
        self.sweeps_skipped += 1

    def record_finalize_failure(self, error_type: str):
        """
        Record an external finalize failure.

        Args:
            error_type: Exception class name (e.g., "TimeoutError")
        """
        self.finalize_failures[error_type] += 1

    def record_war_cache_write(self, skipped: bool = False):
        if skipped:
            self.war_cache_writes_skipped += 1
        else:
            self.war_cache_writes += 1

    def record_error(self, error_type: str):
        """
        Record that an error occurred.

        Args:
            error_type: Type of error (e.g., "registry_persist", "config_write")
        """
        self.errors_count[error_type] += 1

    def get_summary(self) -> Dict:
        """
        Get a summary of all metrics.

        Returns:
            Dictionary suitable for logging or export
        """
        stats = {}
        if self.sweep_duration_ms:
            sorted_times = sorted(self.sweep_duration_ms)
            n = len(sorted_times)
            stats = {
                "avg_ms": sum(sorted_times) / n,
                "min_ms": sorted_times[0],
                "max_ms": sorted_times[-1],
                "p50_ms": sorted_times[n // 2],
                "p95_ms": sorted_times[int(n * 0.95)] if n > 1 else sorted_times[0],
            }

        return {
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
            "sweeps_run": self.sweeps_run,
            "sweeps_skipped": self.sweeps_skipped,
            "entries_retired": self.entries_retired,
            "finalize_failures": dict(self.finalize_failures),
            "war_cache_writes": self.war_cache_writes,
            "war_cache_writes_skipped": self.war_cache_writes_skipped,
            "sweep_duration_stats": stats,
            "errors": dict(self.errors_count),
        }

    def reset(self):
        """Reset all metrics to initial state."""
        self.sweeps_run = 0
        self.sweeps_skipped = 0
        self.entries_retired = 0
        self.finalize_failures.clear()
        self.war_cache_writes = 0
        self.war_cache_writes_skipped = 0
        self.sweep_duration_ms.clear()
        self.errors_count.clear()
        self.start_time = datetime.now()
