"""
CWL War Cache
Date-partitioned on-disk cache of finished Clan War League wars

Layout::

    <root>/<CLANTAG>/<YYYY-MM>/day<N>.json

Each file holds one finished war exactly as the stats API returned it. Files
are written once (a repeat save with the same end time is skipped) and each
file is replaced atomically on its own, so writes for different clans,
months or days never wait on each other.
"""

import json
import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .atomic_file_store import atomic_write_json
from ..utils.maybe import Maybe, Present, Unknown
from ..utils.metrics import CoordinatorMetrics
from ..utils.time_parser import parse_timestamp

logger = logging.getLogger(__name__)

WAR_ENDED = "warEnded"
MONTH_KEY = re.compile(r"^\d{4}-\d{2}$")
DAY_FILE = re.compile(r"^day(\d+)\.json$")
CLAN_TAG = re.compile(r"^[0-9A-Z]+$")

WarRecord = Mapping[str, Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_partition_key(clan_tag: str) -> str:
    """
    Turn a clan tag into its directory name: trimmed, uppercased, no ``#``.

    Raises:
        ValueError: If the tag is empty or contains anything but letters and
            digits (no path separators can reach the filesystem)
    """
    normalized = str(clan_tag or "").strip().upper().lstrip("#")
    if not CLAN_TAG.match(normalized):
        raise ValueError(f"Invalid clan tag: {clan_tag!r}")
    return normalized


def war_end_time(war: WarRecord) -> Maybe:
    """Parsed ``endTime`` of a war, or ``Unknown`` if absent or malformed."""
    return parse_timestamp(war.get("endTime"))


def month_key(value: Union[str, date, datetime]) -> str:
    """
    ``YYYY-MM`` key for a datetime, date, or stats API timestamp string.

    Raises:
        ValueError: If a string value cannot be parsed
    """
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if not isinstance(parsed, Present):
            raise ValueError(f"Cannot derive a month from {value!r}")
        value = parsed.value
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc) if value.tzinfo else value
    return f"{value.year:04d}-{value.month:02d}"


class WarCache:
    """
    Append-once store of finished wars.

    Args:
        root_dir: Directory holding one sub-directory per clan.
        clock:    Returns the current aware UTC time.
        metrics:  Optional metrics sink for written/skipped saves.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[CoordinatorMetrics] = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self._clock = clock
        self._metrics = metrics

    # ------------------------------------------------------------------
    # State checks
    # ------------------------------------------------------------------

    def is_finished(self, war: WarRecord) -> bool:
        """
        True when the war reports ``warEnded`` and its end time has passed.

        A war that reports ``warEnded`` without a usable end time counts as
        finished.
        """
        if war.get("state") != WAR_ENDED:
            return False

        end = war_end_time(war)
        if isinstance(end, Unknown):
            return True
        return end.value <= self._clock()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _clan_dir(self, clan_tag: str) -> Path:
        return self.root_dir / normalize_partition_key(clan_tag)

    def _day_path(self, clan_tag: str, year_month: str, day: int) -> Path:
        if not MONTH_KEY.match(year_month):
            raise ValueError(f"Invalid month key: {year_month!r}")
        return self._clan_dir(clan_tag) / year_month / f"day{int(day)}.json"

    @staticmethod
    def _day_for(end: Present, round_index: Optional[int]) -> int:
        if round_index is not None:
            if round_index < 0:
                raise ValueError(f"round_index must be >= 0, got {round_index}")
            return round_index + 1
        # Day of month of the end time; does not match the CWL round number.
        # Kept for callers that do not know the round.
        return end.value.day

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, clan_tag: str, year_month: str, day: int) -> Optional[Dict[str, Any]]:
        """Return the cached war for a day, or ``None`` if absent or unreadable."""
        path = self._day_path(clan_tag, year_month, day)
        try:
            with open(path, "r", encoding="utf-8") as handle:
                war = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable war cache file {path}: {e}")
            return None
        return war if isinstance(war, dict) else None

    def load_month(self, clan_tag: str, year_month: str) -> Dict[int, Dict[str, Any]]:
        """Return every cached war of a month keyed by day number."""
        month_dir = self._clan_dir(clan_tag) / year_month
        wars: Dict[int, Dict[str, Any]] = {}
        if not MONTH_KEY.match(year_month) or not month_dir.is_dir():
            return wars

        for child in month_dir.iterdir():
            match = DAY_FILE.match(child.name)
            if not match:
                continue
            day = int(match.group(1))
            war = self.load(clan_tag, year_month, day)
            if war is not None:
                wars[day] = war
        return dict(sorted(wars.items()))

    def list_available_months(self, clan_tag: str) -> List[str]:
        """Months with cached data for a clan, most recent first."""
        clan_dir = self._clan_dir(clan_tag)
        try:
            children = list(clan_dir.iterdir())
        except FileNotFoundError:
            logger.debug(f"No war cache directory for clan {clan_tag} at {clan_dir}")
            return []
        except OSError as e:
            logger.error(f"Error listing months for clan {clan_tag}: {e}")
            return []

        months = [c.name for c in children if c.is_dir() and MONTH_KEY.match(c.name)]
        return sorted(months, reverse=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, war: WarRecord, clan_tag: str, round_index: Optional[int] = None) -> bool:
        """
        Cache a finished war.

        Args:
            war:         War as returned by the stats API.
            clan_tag:    Clan the war is cached under.
            round_index: 0-based CWL round; stored as ``day<round_index + 1>``.

        Returns:
            True if a file was written, False if the war is still running,
            has no usable end time, or is already cached with the same end time

        Raises:
            OSError: If the day file cannot be written
        """
        if not self.is_finished(war):
            return False

        end = war_end_time(war)
        if not isinstance(end, Present):
            return False

        year_month = month_key(end.value)
        day = self._day_for(end, round_index)

        cached = self.load(clan_tag, year_month, day)
        if cached and cached.get("endTime") and cached.get("endTime") == war.get("endTime"):
            if self._metrics is not None:
                self._metrics.record_war_cache_write(skipped=True)
            return False

        path = self._day_path(clan_tag, year_month, day)
        atomic_write_json(path, dict(war))
        if self._metrics is not None:
            self._metrics.record_war_cache_write()
        logger.debug(f"Cached CWL war for {clan_tag} at {path}")
        return True
