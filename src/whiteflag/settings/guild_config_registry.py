"""
Per-guild configuration registry.

Provides a small API over the ``settings`` collection of the durable store:
- get_config(guild_id) -> GuildConfig: current settings (empty if never set up)
- set_config(guild_id, **patch): merge a patch into the stored settings and persist

Nothing is cached between calls; each operation reloads the collection so a
manual edit of ``settings.json`` is picked up immediately.
"""
from __future__ import annotations

from typing import Any, Dict, List

from whiteflag.datatypes.discord_datatypes import GuildID, RoleID
from whiteflag.datatypes.guild_config import CONFIG_FIELDS, GuildConfig
from whiteflag.datatypes.request_datatypes import Tier
from whiteflag.storage.json_store import SETTINGS_KEY, JsonStore
from whiteflag.util.logger import get_logger

logger = get_logger("guild_config_registry")

# Attribute name -> persisted key
_ATTRIBUTE_KEYS: Dict[str, str] = {attr: key for key, attr in CONFIG_FIELDS.items()}


class GuildConfigRegistry:
    """Lookup and merge-patch access to per-guild settings."""

    def __init__(self, store: JsonStore) -> None:
        self.store = store

    def _load_all(self) -> Dict[str, Dict[str, Any]]:
        return self.store.load(SETTINGS_KEY, {})

    def get_config(self, guild_id: GuildID) -> GuildConfig:
        """Return the guild's settings; an empty config if it was never set up."""
        guild_id = GuildID(guild_id)
        raw = self._load_all().get(str(guild_id)) or {}
        if not isinstance(raw, dict):
            logger.warning("[GUILD CONFIG] Ignoring malformed settings for guild %s", guild_id)
            raw = {}
        return GuildConfig.from_dict(guild_id, raw)

    def list_guild_ids(self) -> List[GuildID]:
        ids: List[GuildID] = []
        for key in self._load_all():
            try:
                ids.append(GuildID(key))
            except ValueError:
                logger.warning("[GUILD CONFIG] Skipping non-numeric guild key %r", key)
        return ids

    def set_config(self, guild_id: GuildID, **patch: Any) -> GuildConfig:
        """
        Merge ``patch`` into the guild's settings and persist.

        Keyword names are GuildConfig attributes (``review_channel_id=...``).
        ``None`` values are ignored, ``tier_role_ids`` is merged per tier and
        unknown names are logged and dropped.

        Returns:
            The merged GuildConfig as persisted.
        """
        guild_id = GuildID(guild_id)
        all_settings = self._load_all()
        current = GuildConfig.from_dict(guild_id, all_settings.get(str(guild_id)) or {})

        for attr, value in patch.items():
            if attr not in _ATTRIBUTE_KEYS or attr == "guild_id":
                logger.warning("[GUILD CONFIG] Unknown field %s for guild %s", attr, guild_id)
                continue
            if value is None:
                continue
            if attr == "tier_role_ids":
                current.tier_role_ids.update(
                    {Tier.parse(tier): RoleID(role_id) for tier, role_id in value.items()}
                )
            else:
                setattr(current, attr, value)

        merged = GuildConfig.from_dict(guild_id, current.to_dict())
        all_settings[str(guild_id)] = merged.to_dict()
        self.store.save(SETTINGS_KEY, all_settings)

        logger.info(
            "[GUILD CONFIG] Updated guild %s: %s",
            guild_id, ", ".join(sorted(k for k, v in patch.items() if v is not None)) or "no changes",
        )
        return merged
