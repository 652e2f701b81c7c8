"""
Applicant Registry
Durable index of open recruit threads, keyed by applicant and by thread

The registry answers "does this applicant already have an open thread?" and
"which applicant does this thread belong to?" from memory, and persists every
change through an AtomicFileStore write chain without making the caller wait
for the disk.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .atomic_file_store import AtomicFileStore, Document
from .idempotency_lock import IdempotencyLock
from ..utils.metrics import CoordinatorMetrics

logger = logging.getLogger(__name__)

REGISTRY_VERSION = 1


class RegistryConflictError(ValueError):
    """Raised when an entry would break the one-entry-per-key invariant"""


@dataclass(frozen=True)
class RegistryEntry:
    """An open derived resource (recruit thread) and who it belongs to"""
    owner_key: str
    resource_tag: str
    resource_id: str
    external_url: str
    correlation_key: str
    group_id: Optional[str] = None
    opened_at: Optional[datetime] = None
    trigger_key: Optional[str] = None

    @property
    def claim_key(self) -> str:
        """Key the idempotency claim for this entry was taken under"""
        return self.trigger_key or self.owner_key

    def age(self, now: datetime) -> Optional[float]:
        """Seconds since the entry was opened"""
        if self.opened_at is None:
            return None
        return (now - self.opened_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "applicantId": self.owner_key,
            "applicantTag": self.resource_tag,
            "threadId": self.resource_id,
            "threadUrl": self.external_url,
            "playerTag": self.correlation_key,
            "openedAt": int(self.opened_at.timestamp() * 1000) if self.opened_at else None,
        }
        if self.group_id is not None:
            data["guildId"] = self.group_id
        if self.trigger_key is not None:
            data["sourceMessageId"] = self.trigger_key
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEntry":
        """
        Build an entry from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing
                or malformed
        """
        opened_at_ms = data.get("openedAt")
        opened_at = None
        if opened_at_ms is not None:
            try:
                opened_at = datetime.fromtimestamp(float(opened_at_ms) / 1000, tz=timezone.utc)
            except (OverflowError, OSError) as e:
                raise ValueError(f"openedAt out of range: {opened_at_ms!r}") from e
        owner_key = data["applicantId"]
        resource_id = data["threadId"]
        if not isinstance(owner_key, str) or not isinstance(resource_id, str):
            raise TypeError("applicantId and threadId must be strings")
        return cls(
            owner_key=owner_key,
            resource_tag=str(data.get("applicantTag", "")),
            resource_id=resource_id,
            external_url=str(data.get("threadUrl", "")),
            correlation_key=str(data.get("playerTag", "")),
            group_id=data.get("guildId"),
            opened_at=opened_at,
            trigger_key=data.get("sourceMessageId"),
        )


def _default_document() -> Document:
    return {"version": REGISTRY_VERSION, "entries": []}


def _is_supported(doc: Any) -> bool:
    return doc.get("version") == REGISTRY_VERSION and isinstance(doc.get("entries"), list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicantRegistry:
    """
    Owner-key, resource-id and trigger-key indices over one logical relation.

    All three indices are updated together under one mutex. Durable writes
    are queued on the backing store's write chain; ``flush`` waits for them.

    Args:
        path:    Location of the registry JSON document.
        clock:   Returns the current aware UTC time (injectable for tests).
        metrics: Optional metrics sink for persistence failures.
    """

    def __init__(
        self,
        path: Union[str, Path],
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[CoordinatorMetrics] = None,
    ) -> None:
        self._store = AtomicFileStore(
            path,
            default_factory=_default_document,
            validator=_is_supported,
            name="applicant-registry",
        )
        self._clock = clock
        self._metrics = metrics
        self._by_owner: Dict[str, RegistryEntry] = {}
        self._by_resource: Dict[str, RegistryEntry] = {}
        self._by_trigger: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()
        self._opened = False
        self._closed = False
        self.claims = IdempotencyLock(is_completed=self._has_claim_key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Rebuild the indices from the durable document. Runs once."""
        with self._lock:
            if self._opened:
                return
            document = self._store.load()
            loaded = 0
            for raw in document.get("entries", []):
                try:
                    entry = RegistryEntry.from_dict(raw)
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"Skipping malformed registry entry: {e}")
                    continue
                if (
                    entry.owner_key in self._by_owner
                    or entry.resource_id in self._by_resource
                    or entry.claim_key in self._by_trigger
                ):
                    logger.warning(
                        f"Skipping duplicate registry entry for applicant {entry.owner_key} "
                        f"/ thread {entry.resource_id} / trigger {entry.claim_key}"
                    )
                    continue
                self._index(entry)
                loaded += 1
            self._opened = True
        logger.info(f"Loaded {loaded} open recruit thread(s) from {self._store.path}")

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until queued registry writes are on disk."""
        self._store.flush(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._store.close()

    def _ensure_open(self) -> None:
        if not self._opened:
            self.open()

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def try_claim(self, key: str) -> bool:
        """Claim *key* unless it is pending or already owns an open entry."""
        self._ensure_open()
        return self.claims.try_claim(key)

    def release_claim(self, key: str) -> None:
        self.claims.release(key)

    def _has_claim_key(self, key: str) -> bool:
        with self._lock:
            return key in self._by_trigger

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, owner_key: str) -> Optional[RegistryEntry]:
        self._ensure_open()
        with self._lock:
            return self._by_owner.get(owner_key)

    def lookup_by_resource(self, resource_id: str) -> Optional[RegistryEntry]:
        self._ensure_open()
        with self._lock:
            return self._by_resource.get(resource_id)

    def lookup_by_trigger(self, trigger_key: str) -> Optional[RegistryEntry]:
        self._ensure_open()
        with self._lock:
            return self._by_trigger.get(trigger_key)

    def list_all(self) -> List[RegistryEntry]:
        self._ensure_open()
        with self._lock:
            return list(self._by_owner.values())

    def __len__(self) -> int:
        self._ensure_open()
        with self._lock:
            return len(self._by_owner)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, entry: RegistryEntry) -> RegistryEntry:
        """
        Record a newly created resource and release its pending claim.

        The in-memory indices are updated before this returns; the durable
        write is queued behind any earlier registry writes.

        Raises:
            RegistryConflictError: If the owner already has an open entry or
                the resource id belongs to another owner
            RuntimeError: If the registry has been closed
        """
        self._ensure_open()
        if entry.opened_at is None:
            entry = replace(entry, opened_at=self._clock())

        with self._lock:
            self._check_writable()
            if entry.owner_key in self._by_owner:
                raise RegistryConflictError(
                    f"Applicant {entry.owner_key} already has an open thread "
                    f"({self._by_owner[entry.owner_key].resource_id})"
                )
            if entry.resource_id in self._by_resource:
                raise RegistryConflictError(f"Thread {entry.resource_id} is already registered")
            if entry.claim_key in self._by_trigger:
                raise RegistryConflictError(f"Trigger {entry.claim_key} already produced a thread")
            self._index(entry)
            self._persist_locked()

        # Indexed first, released second: the claim key is never free in between
        self.claims.release(entry.claim_key)

        logger.info(
            f"Registered recruit thread {entry.resource_id} for applicant {entry.owner_key}",
            extra={"extra_fields": {"thread_id": entry.resource_id, "applicant_id": entry.owner_key}},
        )
        return entry

    def remove_by_resource(self, resource_id: str) -> bool:
        """
        Forget the entry for a closed, archived or missing thread.

        Returns:
            True if an entry was removed
        """
        self._ensure_open()
        with self._lock:
            entry = self._by_resource.get(resource_id)
            if entry is None:
                return False
            self._check_writable()
            self._unindex(entry)
            self._persist_locked()

        logger.debug(f"Removed recruit thread {resource_id} (applicant {entry.owner_key})")
        return True

    # ------------------------------------------------------------------
    # Private helpers (must be called with _lock held)
    # ------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._closed:
            raise RuntimeError("Applicant registry is closed")

    def _index(self, entry: RegistryEntry) -> None:
        self._by_owner[entry.owner_key] = entry
        self._by_resource[entry.resource_id] = entry
        self._by_trigger[entry.claim_key] = entry

    def _unindex(self, entry: RegistryEntry) -> None:
        self._by_owner.pop(entry.owner_key, None)
        self._by_resource.pop(entry.resource_id, None)
        self._by_trigger.pop(entry.claim_key, None)

    def _persist_locked(self) -> None:
        snapshot = {
            "version": REGISTRY_VERSION,
            "entries": [e.to_dict() for e in self._by_owner.values()],
        }
        future = self._store.submit(lambda _current: snapshot)
        future.add_done_callback(self._log_persist_failure)

    def _log_persist_failure(self, future) -> None:
        error = future.exception()
        if error is None:
            return
        if self._metrics is not None:
            self._metrics.record_error("registry_persist")
        logger.error(f"Failed to persist applicant registry: {error}")
