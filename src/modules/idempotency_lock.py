"""
Idempotency Lock
Non-blocking in-memory claims keyed by source-event id
"""

import threading
from typing import Callable, Set


class IdempotencyLock:
    """
    Check-and-set over two disjoint key sets treated as one claim space.

    A key is *pending* while a workflow is creating its derived resource and
    *completed* once the resource is registered. ``is_completed`` is supplied
    by the owner of the completed set (the applicant registry).

    Pending claims live only in memory; a process restart releases them all.
    """

    def __init__(self, is_completed: Callable[[str], bool] = lambda key: False) -> None:
        self._pending: Set[str] = set()
        self._is_completed = is_completed
        self._lock = threading.Lock()

    def try_claim(self, key: str) -> bool:
        """
        Claim *key* for the caller.

        Returns:
            True if the key was free and is now pending, False if it is
            already pending or already completed
        """
        with self._lock:
            if key in self._pending or self._is_completed(key):
                return False
            self._pending.add(key)
            return True

    def release(self, key: str) -> None:
        """Release a pending claim. Releasing an unknown key is a no-op."""
        with self._lock:
            self._pending.discard(key)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
