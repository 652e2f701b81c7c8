"""
Recruit Thread Workflow
Claim -> create -> register sequence for opening one thread per trigger
"""

import enum
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .applicant_registry import ApplicantRegistry, RegistryConflictError, RegistryEntry
from .chat_platform import ChatClient, is_thread_open
from .sweep_scheduler import ThreadCloser

logger = logging.getLogger(__name__)


class OpenThreadOutcome(enum.Enum):
    CREATED = "created"
    ALREADY_OPEN = "already_open"
    IN_PROGRESS = "in_progress"
    NOT_CREATED = "not_created"


@dataclass(frozen=True)
class OpenThreadResult:
    outcome: OpenThreadOutcome
    entry: Optional[RegistryEntry] = None


class ThreadOpenCoordinator:
    """
    Makes sure a trigger (a command invocation or source message) produces
    at most one recruit thread, even when it fires twice concurrently.

    Args:
        registry: Registry holding open threads and pending claims.
        client:   Chat client used to re-check whether a registered thread
                  is still open.
        discard:  Closes a thread that was created but cannot be registered
                  because its applicant already has an open one (defaults to
                  ``ThreadCloser(client).finalize``).
    """

    def __init__(
        self,
        registry: ApplicantRegistry,
        client: ChatClient,
        discard: Optional[Callable[[RegistryEntry], object]] = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.discard = discard or ThreadCloser(client).finalize

    def _still_open(self, entry: RegistryEntry) -> bool:
        try:
            return is_thread_open(self.client.fetch_thread(entry.resource_id))
        except Exception as e:
            logger.debug(f"Could not fetch thread {entry.resource_id}: {e}")
            return False

    def _recheck(self, trigger_key: str) -> Optional[RegistryEntry]:
        """Return the open entry for *trigger_key*, clearing it if its thread is gone."""
        existing = self.registry.lookup_by_trigger(trigger_key)
        if existing is None:
            return None
        if self._still_open(existing):
            return existing
        logger.info(f"Clearing closed recruit thread {existing.resource_id} for trigger {trigger_key}")
        self.registry.remove_by_resource(existing.resource_id)
        return None

    def open_thread(
        self,
        trigger_key: str,
        create: Callable[[], Optional[RegistryEntry]],
    ) -> OpenThreadResult:
        """
        Run *create* at most once per open thread for *trigger_key*.

        Args:
            trigger_key: Source event id the thread is created for.
            create:      Performs the side effects and returns the entry to
                         register (``None`` when no thread could be created).
                         Its ``trigger_key`` is set to *trigger_key*.

        Returns:
            The outcome and, for ``CREATED``/``ALREADY_OPEN``, the entry

        Raises:
            RegistryConflictError: If the created thread id is already
                registered to another applicant
            Exception: Whatever *create* raises; the claim is released first
        """
        existing = self._recheck(trigger_key)
        if existing is not None:
            return OpenThreadResult(OpenThreadOutcome.ALREADY_OPEN, existing)

        if not self.registry.try_claim(trigger_key):
            # Lost the race; a concurrent trigger may have finished meanwhile
            existing = self._recheck(trigger_key)
            if existing is not None:
                return OpenThreadResult(OpenThreadOutcome.ALREADY_OPEN, existing)
            return OpenThreadResult(OpenThreadOutcome.IN_PROGRESS)

        pending = True
        try:
            entry = create()
            if entry is None:
                return OpenThreadResult(OpenThreadOutcome.NOT_CREATED)

            if entry.trigger_key != trigger_key:
                entry = replace(entry, trigger_key=trigger_key)
            try:
                registered = self.registry.register(entry)
            except RegistryConflictError as conflict:
                existing = self._resolve_owner_conflict(entry, conflict)
                if existing is not None:
                    return OpenThreadResult(OpenThreadOutcome.ALREADY_OPEN, existing)
                registered = self.registry.register(entry)
            pending = False
            return OpenThreadResult(OpenThreadOutcome.CREATED, registered)
        finally:
            if pending:
                self.registry.release_claim(trigger_key)

    def _resolve_owner_conflict(
        self,
        entry: RegistryEntry,
        conflict: RegistryConflictError,
    ) -> Optional[RegistryEntry]:
        """
        Handle a freshly created thread whose applicant is already registered.

        Returns:
            The applicant's still-open entry after closing the new thread, or
            ``None`` once a stale entry has been cleared so the new thread can
            be registered in its place

        Raises:
            RegistryConflictError: *conflict*, if it is not on the applicant
        """
        existing = self.registry.lookup(entry.owner_key)
        if existing is None or existing.resource_id == entry.resource_id:
            raise conflict

        if not self._still_open(existing):
            logger.info(f"Replacing closed recruit thread {existing.resource_id} for applicant {entry.owner_key}")
            self.registry.remove_by_resource(existing.resource_id)
            return None

        logger.warning(
            f"Applicant {entry.owner_key} already has open thread {existing.resource_id}; "
            f"closing duplicate thread {entry.resource_id}"
        )
        try:
            self.discard(entry)
        except Exception as e:
            logger.error(f"Failed to close duplicate recruit thread {entry.resource_id}: {e}")
        return existing
