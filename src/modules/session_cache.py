"""
Recruit DM Session Cache
Thread-safe in-memory sessions with an absolute TTL

Sessions back the short-lived applicant DM flow (the buttons and menus sent
to an applicant). They expire a fixed time after creation regardless of how
often they are read, and they are never persisted: a restart drops them all.

Expiry happens two ways:
  - lazily on ``get``/``update`` for the session being accessed, and
  - for the whole table at the start of every ``create``, so memory stays
    bounded even if nobody looks an old session up again.
"""

import secrets
import threading
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..utils.maybe import Maybe, Unknown

DEFAULT_SESSION_TTL_SECONDS = 60 * 60
DEFAULT_MAX_SESSIONS = 1024

_IMMUTABLE_FIELDS = ("id", "created_at")


@dataclass(frozen=True)
class PlayerSnapshot:
    """The applicant's game profile at the time the session was created"""
    name: str
    tag: str
    town_hall: Maybe = field(default_factory=lambda: Unknown("not reported"))


@dataclass(frozen=True)
class RecruitDmSession:
    """State of one applicant DM conversation"""
    id: str
    created_at: datetime
    guild_id: str
    thread_id: str
    thread_url: str
    recruiter_id: str
    recruiter_tag: str
    applicant_id: str
    applicant_tag: str
    player: PlayerSnapshot
    original_message_url: str = ""
    clans: List[Dict[str, Any]] = field(default_factory=list)
    templates: List[Dict[str, Any]] = field(default_factory=list)
    home_guild_name: Optional[str] = None
    applicant_display_name: Optional[str] = None
    community_invite_url: Optional[str] = None
    status_message: Optional[str] = None
    recruiter_controls_closed: bool = False
    dm_channel_id: Optional[str] = None
    dm_message_id: Optional[str] = None
    clan_summaries: List[Dict[str, Any]] = field(default_factory=list)


_SESSION_FIELDS = {f.name for f in fields(RecruitDmSession)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """16 hex characters; short enough to embed in a component custom id."""
    return secrets.token_hex(8)


class SessionCache:
    """
    Session table with strict expiry ``created_at + ttl``.

    Args:
        ttl_seconds:  Lifetime of a session from creation (default 1 hour).
        max_sessions: Upper bound on live sessions; the oldest are dropped
                      first when it is exceeded.
        clock:        Returns the current aware UTC time (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds}")
        if max_sessions <= 0:
            raise ValueError(f"max_sessions must be a positive integer, got {max_sessions}")
        self._sessions: Dict[str, RecruitDmSession] = {}
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_sessions = max_sessions
        self._clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> RecruitDmSession:
        """
        Start a session with a fresh random id.

        Args:
            data: Session fields other than ``id`` and ``created_at``

        Raises:
            TypeError: If *data* contains unknown fields or misses required ones
        """
        unknown = set(data) - _SESSION_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        payload = {k: v for k, v in data.items() if k not in _IMMUTABLE_FIELDS}

        with self._lock:
            now = self._clock()
            self._cleanup_locked(now)

            session_id = generate_session_id()
            while session_id in self._sessions:
                session_id = generate_session_id()

            session = RecruitDmSession(id=session_id, created_at=now, **payload)
            self._sessions[session_id] = session

            # Insertion order is creation order, so the head is the oldest
            while len(self._sessions) > self._max_sessions:
                self._sessions.pop(next(iter(self._sessions)))
            return session

    def get(self, session_id: str) -> Optional[RecruitDmSession]:
        """Return the session, or ``None`` if it is unknown or expired."""
        with self._lock:
            return self._get_locked(session_id, self._clock())

    def update(self, session_id: str, patch: Mapping[str, Any]) -> Optional[RecruitDmSession]:
        """
        Apply *patch* to a live session. ``id`` and ``created_at`` are kept.

        Returns:
            The updated session, or ``None`` if it is unknown or expired
        """
        unknown = set(patch) - _SESSION_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE_FIELDS}

        with self._lock:
            current = self._get_locked(session_id, self._clock())
            if current is None:
                return None
            updated = replace(current, **changes)
            self._sessions[session_id] = updated
            return updated

    def close_recruiter_controls(self, session_id: str) -> Optional[RecruitDmSession]:
        """Mark the recruiter-side controls of a session as closed."""
        return self.update(session_id, {"recruiter_controls_closed": True})

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Private helpers (must be called with _lock already held)
    # ------------------------------------------------------------------

    def _expired(self, session: RecruitDmSession, now: datetime) -> bool:
        return now - session.created_at >= self._ttl

    def _get_locked(self, session_id: str, now: datetime) -> Optional[RecruitDmSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._expired(session, now):
            del self._sessions[session_id]
            return None
        return session

    def _cleanup_locked(self, now: datetime) -> None:
        expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
