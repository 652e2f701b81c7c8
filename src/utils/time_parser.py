"""
Compact Timestamp Parser
Parses the stats API's non-delimited timestamps (e.g. ``20260105T000000.000Z``)

The grammar is::

    YYYY MM DD 'T' hh mm ss [ '.' f{1,3} ] 'Z'

The fractional part is optional and padded to milliseconds. Input that is
already in canonical ISO-8601 form is accepted as well. Parsing never raises:
malformed input produces an ``Unknown`` result so call sites decide their own
fallback.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from .maybe import Maybe, Present, Unknown

COMPACT_TIMESTAMP = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})"
    r"T(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d{1,3}))?Z$"
)

Unparseable = Unknown


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_platform(value: str) -> Optional[datetime]:
    s = value
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(s))
    except (ValueError, OverflowError):
        # Offsets that push the instant outside the datetime range
        return None


def _parse_compact(value: str) -> Optional[datetime]:
    match = COMPACT_TIMESTAMP.match(value)
    if not match:
        return None

    parts = match.groupdict()
    millis = int((parts["fraction"] or "000").ljust(3, "0")[:3])
    try:
        return datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"]),
            int(parts["minute"]),
            int(parts["second"]),
            millis * 1000,
            tzinfo=timezone.utc,
        )
    except ValueError:
        # Month 13, hour 25 and friends
        return None


def parse_timestamp(value: Optional[str]) -> Maybe:
    """
    Parse a stats API timestamp into an aware UTC datetime.

    Args:
        value: Raw timestamp string, compact or ISO-8601

    Returns:
        ``Present(datetime)`` on success, ``Unknown`` when the value is
        missing or malformed
    """
    if not value or not isinstance(value, str):
        return Unparseable("missing")

    raw = value.strip()
    parsed = _parse_platform(raw) or _parse_compact(raw)
    if parsed is None:
        return Unparseable(f"unparseable timestamp: {raw!r}")
    return Present(parsed)


def format_compact(dt: datetime) -> str:
    """Render a datetime in the compact wire format (UTC, millisecond precision)."""
    dt = _as_utc(dt)
    return dt.strftime("%Y%m%dT%H%M%S.") + f"{dt.microsecond // 1000:03d}Z"
