"""
Per-guild configuration record.

Only identifiers are stored here; whether a channel or role still exists is
checked by the Discord layer at the point of use.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from whiteflag.datatypes.request_datatypes import Tier

# Persisted key -> GuildConfig attribute
CONFIG_FIELDS: Dict[str, str] = {
    "reviewChannelId": "review_channel_id",
    "logChannelId": "log_channel_id",
    "announceChannelId": "announce_channel_id",
    "staffRoleIds": "staff_role_ids",
    "tierRoleIds": "tier_role_ids",
}


@dataclass(slots=True)
class GuildConfig:
    """Channels and roles a guild uses for the whiteflag workflow."""

    guild_id: GuildID
    review_channel_id: ChannelID | None = None
    log_channel_id: ChannelID | None = None
    announce_channel_id: ChannelID | None = None
    staff_role_ids: List[RoleID] = field(default_factory=list)
    tier_role_ids: Dict[Tier, RoleID] = field(default_factory=dict)

    def role_for_tier(self, tier: Tier) -> RoleID | None:
        return self.tier_role_ids.get(tier)

    def missing_for_submission(self, tier: Tier) -> List[str]:
        """Names of the settings a submission for ``tier`` still needs."""
        missing: List[str] = []
        if self.review_channel_id is None:
            missing.append("review channel")
        if self.announce_channel_id is None:
            missing.append("announce channel")
        if self.role_for_tier(tier) is None:
            missing.append(f"{tier.value} role")
        return missing

    def missing_settings(self) -> List[str]:
        """Names of every required setting that is still unset, across all tiers."""
        missing: List[str] = []
        if self.review_channel_id is None:
            missing.append("review channel")
        if self.announce_channel_id is None:
            missing.append("announce channel")
        missing.extend(f"{tier.value} role" for tier in Tier if self.role_for_tier(tier) is None)
        return missing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviewChannelId": _str_or_none(self.review_channel_id),
            "logChannelId": _str_or_none(self.log_channel_id),
            "announceChannelId": _str_or_none(self.announce_channel_id),
            "staffRoleIds": [str(role_id) for role_id in self.staff_role_ids],
            "tierRoleIds": {tier.value: str(role_id) for tier, role_id in self.tier_role_ids.items()},
        }

    @classmethod
    def from_dict(cls, guild_id: GuildID, data: Mapping[str, Any]) -> "GuildConfig":
        tier_roles: Dict[Tier, RoleID] = {}
        raw_tier_roles = data.get("tierRoleIds") or {}
        if isinstance(raw_tier_roles, Mapping):
            for tier_value, role_id in raw_tier_roles.items():
                if role_id in (None, ""):
                    continue
                try:
                    tier_roles[Tier.parse(tier_value)] = RoleID(role_id)
                except ValueError:
                    continue

        staff_roles = data.get("staffRoleIds") or []
        return cls(
            guild_id=guild_id,
            review_channel_id=ChannelID.optional(data.get("reviewChannelId")),
            log_channel_id=ChannelID.optional(data.get("logChannelId")),
            announce_channel_id=ChannelID.optional(data.get("announceChannelId")),
            staff_role_ids=[RoleID(role_id) for role_id in staff_roles if role_id not in (None, "")],
            tier_role_ids=tier_roles,
        )


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None
