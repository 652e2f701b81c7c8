"""
Recruit Config Store
Guild-scoped recruit settings persisted as a single JSON document
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .atomic_file_store import AtomicFileStore, Document

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1
MIN_TOWN_HALL = 1
MAX_TOWN_HALL = 18


def _default_document() -> Document:
    return {"version": CONFIG_VERSION, "guilds": {}}


def _is_supported(doc: Any) -> bool:
    return doc.get("version") == CONFIG_VERSION and isinstance(doc.get("guilds"), dict)


def normalize_role_ids(role_ids: Iterable[Any]) -> List[str]:
    """De-duplicate role ids, keeping order and dropping blanks and non-strings."""
    seen = []
    for role_id in role_ids or []:
        if not isinstance(role_id, str):
            continue
        cleaned = role_id.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def validate_town_hall(th: int) -> int:
    """
    Raises:
        ValueError: If *th* is not an integer Town Hall level (1-18)
    """
    if isinstance(th, bool) or not isinstance(th, int) or not MIN_TOWN_HALL <= th <= MAX_TOWN_HALL:
        raise ValueError(f"Town Hall must be an integer {MIN_TOWN_HALL}-{MAX_TOWN_HALL} (got {th})")
    return th


class RecruitConfigStore:
    """
    Reads and writes per-guild recruit settings.

    Document layout::

        {"version": 1,
         "guilds": {"<guild id>": {"thRoleIds": {"15": ["<role id>"]},
                                   "allowedRoleIds": ["<role id>"],
                                   "threadChannelId": "<channel id>",
                                   "dmTemplates": [{"id", "name", "content"}]}}}

    Writes block until the document is on disk; a failed write raises and
    leaves the cached settings unchanged.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._store = AtomicFileStore(
            path,
            default_factory=_default_document,
            validator=_is_supported,
            name="recruit-config",
        )

    def close(self) -> None:
        self._store.close()

    def _guild(self, guild_id: str) -> Dict[str, Any]:
        guild = self._store.load()["guilds"].get(guild_id)
        return guild if isinstance(guild, dict) else {}

    def _update_guild(self, guild_id: str, key: str, update: Callable[[Any], Any]) -> None:
        """Replace ``guilds[guild_id][key]`` with ``update(old value)`` on the write chain."""
        def apply(doc: Document) -> Document:
            guild = doc["guilds"].get(guild_id)
            if not isinstance(guild, dict):
                guild = {}
            guild[key] = update(guild.get(key))
            doc["guilds"][guild_id] = guild
            return doc

        self._store.mutate(apply)
        logger.info(f"Updated recruit setting {key} for guild {guild_id}")

    # ------------------------------------------------------------------
    # Town Hall -> recruiter role mapping
    # ------------------------------------------------------------------

    def get_role_ids_for_town_hall(self, guild_id: str, th: int) -> List[str]:
        validate_town_hall(th)
        mapping = self._guild(guild_id).get("thRoleIds") or {}
        return normalize_role_ids(mapping.get(str(th), []))

    def set_role_ids_for_town_hall(self, guild_id: str, th: int, role_ids: Iterable[str]) -> None:
        validate_town_hall(th)
        cleaned = normalize_role_ids(role_ids)

        def merge(mapping):
            mapping = dict(mapping) if isinstance(mapping, dict) else {}
            mapping[str(th)] = cleaned
            return mapping

        self._update_guild(guild_id, "thRoleIds", merge)

    def get_role_mapping(self, guild_id: str) -> Dict[int, List[str]]:
        """Return the configured roles per Town Hall level, omitting empty levels."""
        mapping = self._guild(guild_id).get("thRoleIds") or {}
        result = {}
        for th in range(MIN_TOWN_HALL, MAX_TOWN_HALL + 1):
            roles = normalize_role_ids(mapping.get(str(th), []))
            if roles:
                result[th] = roles
        return result

    # ------------------------------------------------------------------
    # Additional roles allowed to run the recruit commands
    # ------------------------------------------------------------------

    def get_allowed_role_ids(self, guild_id: str) -> List[str]:
        return normalize_role_ids(self._guild(guild_id).get("allowedRoleIds", []))

    def set_allowed_role_ids(self, guild_id: str, role_ids: Iterable[str]) -> None:
        cleaned = normalize_role_ids(role_ids)
        self._update_guild(guild_id, "allowedRoleIds", lambda _old: cleaned)

    # ------------------------------------------------------------------
    # Recruit thread channel
    # ------------------------------------------------------------------

    def get_thread_channel_id(self, guild_id: str) -> Optional[str]:
        channel_id = self._guild(guild_id).get("threadChannelId")
        return channel_id if isinstance(channel_id, str) and channel_id else None

    def set_thread_channel_id(self, guild_id: str, channel_id: Optional[str]) -> None:
        self._update_guild(guild_id, "threadChannelId", lambda _old: channel_id or None)

    # ------------------------------------------------------------------
    # DM templates
    # ------------------------------------------------------------------

    def get_dm_templates(self, guild_id: str) -> List[Dict[str, str]]:
        templates = self._guild(guild_id).get("dmTemplates") or []
        return [
            dict(t) for t in templates
            if isinstance(t, dict) and isinstance(t.get("id"), str) and isinstance(t.get("content"), str)
        ]

    def set_dm_templates(self, guild_id: str, templates: Iterable[Dict[str, str]]) -> None:
        cleaned = []
        for template in templates:
            template_id = str(template.get("id", "")).strip()
            content = str(template.get("content", "")).strip()
            if not template_id or not content:
                raise ValueError("DM templates need a non-empty id and content")
            cleaned.append({
                "id": template_id,
                "name": str(template.get("name") or template_id),
                "content": content,
            })
        self._update_guild(guild_id, "dmTemplates", lambda _old: cleaned)
