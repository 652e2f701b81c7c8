"""
Chat Platform Interfaces
The thread operations the coordination core needs from the chat client
"""

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ThreadHandle(Protocol):
    """A conversation thread as seen through the chat client"""

    id: str
    locked: bool
    archived: bool

    def send(self, content: str) -> None: ...

    def set_locked(self, locked: bool, reason: str) -> None: ...

    def set_archived(self, archived: bool, reason: str) -> None: ...


class ChatClient(Protocol):
    """Looks threads up by id"""

    def fetch_thread(self, thread_id: str) -> Optional[ThreadHandle]:
        """Return the thread, or ``None`` if it no longer exists or is not a thread."""
        ...


def is_thread_open(thread: Optional[ThreadHandle]) -> bool:
    """A thread counts as open when it exists and is not archived."""
    return thread is not None and not thread.archived


class DetachedChatClient:
    """
    Chat client used when the coordinator runs without a platform connection.

    Every thread lookup reports "gone", so the sweeper retires stale registry
    entries without posting anything.
    """

    def fetch_thread(self, thread_id: str) -> Optional[ThreadHandle]:
        logger.debug(f"Detached chat client: thread {thread_id} treated as missing")
        return None
