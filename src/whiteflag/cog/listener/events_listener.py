"""Event listener Cog for whiteflag.

This cog has exactly ONE responsibility: handle bot lifecycle events
(on_ready, on_guild_join, on_guild_remove).
"""

import discord
from discord.ext import commands

from whiteflag.datatypes.discord_datatypes import GuildID
from whiteflag.services.whiteflag_service import WhiteflagService
from whiteflag.util.logger import get_logger

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Handles Discord bot lifecycle events."""

    def __init__(self, bot: discord.Bot, service: WhiteflagService) -> None:
        self.bot = bot
        self.service = service
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Set bot presence."""
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected; user info not yet available.")
            return

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="the white flags"),
        )
        logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        config = self.service.get_config(GuildID(guild.id))
        missing = config.missing_settings()
        logger.info(
            "[EVENTS LISTENER] Joined guild '%s' (ID: %s); unset: %s",
            guild.name, guild.id, ", ".join(missing) or "nothing",
        )

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        # Settings and history are kept so a re-invite picks them up again.
        logger.info("[EVENTS LISTENER] Removed from guild '%s' (ID: %s)", guild.name, guild.id)


def setup(bot: discord.Bot, service: WhiteflagService) -> None:
    bot.add_cog(EventsListenerCog(bot, service))
