"""Small Discord helpers shared by cogs and UI callbacks."""

from __future__ import annotations

from typing import Any

import discord

from whiteflag.datatypes.guild_config import GuildConfig
from whiteflag.util.logger import get_logger

logger = get_logger("discord_utils")

GENERIC_FAILURE = "❌ Something went wrong. Please try again or contact staff."


def is_admin(member: Any) -> bool:
    """True if ``member`` is a guild member with the Administrator permission."""
    if not isinstance(member, discord.Member):
        return False
    return bool(member.guild_permissions.administrator)


def has_staff_permission(member: Any, config: GuildConfig) -> bool:
    """
    Check whether a member may review, approve, deny or end whiteflags.

    Administrators and members with Manage Server always qualify; otherwise
    the member needs one of the guild's configured staff roles.

    Args:
        member: The interacting user (must be a guild member).
        config: The guild's whiteflag settings.

    Returns:
        bool: True if the member counts as staff.
    """
    if not isinstance(member, discord.Member):
        return False
    permissions = member.guild_permissions
    if permissions.administrator or permissions.manage_guild:
        return True
    staff_roles = {role_id.to_int() for role_id in config.staff_role_ids}
    return any(role.id in staff_roles for role in getattr(member, "roles", []))


async def safe_respond(interaction: discord.Interaction, content: str, **kwargs: Any) -> None:
    """Reply ephemerally whether or not the interaction was already answered."""
    kwargs.setdefault("ephemeral", True)
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content, **kwargs)
        else:
            await interaction.response.send_message(content, **kwargs)
    except discord.HTTPException as exc:
        logger.warning("Could not respond to interaction %s: %s", getattr(interaction, "id", "?"), exc)
