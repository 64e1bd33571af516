"""
Setup cog: administrator commands that configure the whiteflag workflow.

Commands:
- /setup: review, announce and log channels
- /setup_roles: tier ping roles and an optional staff role
- /settings_show: current configuration for this server
- /post_whiteflag_buttons: post the tier request buttons in the announce channel
- /rules: post the whiteflag rules in the current channel
- /ping_tier: ping a tier role (staff only)

Responses are ephemeral so configuration never leaks into public channels.
"""
import discord
from discord import Option
from discord.ext import commands

from whiteflag.configuration.app_configuration import app_config
from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from whiteflag.datatypes.guild_config import GuildConfig
from whiteflag.datatypes.request_datatypes import Tier
from whiteflag.services.whiteflag_service import WhiteflagService
from whiteflag.ui.review_ui import build_tier_buttons_view
from whiteflag.util.discord_utils import GENERIC_FAILURE, has_staff_permission, is_admin
from whiteflag.util.logger import get_logger

logger = get_logger("setup_commands")

TIER_CHOICES = [tier.value for tier in Tier]


def describe_config(config: GuildConfig) -> str:
    def channel(value: ChannelID | None) -> str:
        return f"<#{value}>" if value is not None else "not set"

    def role(value: RoleID | None) -> str:
        return f"<@&{value}>" if value is not None else "not set"

    lines = [
        f"- Review channel: {channel(config.review_channel_id)}",
        f"- Open season channel: {channel(config.announce_channel_id)}",
        f"- Mod log channel: {channel(config.log_channel_id)}",
    ]
    for tier in Tier:
        lines.append(f"- {tier.value} role: {role(config.role_for_tier(tier))}")
    staff = ", ".join(f"<@&{role_id}>" for role_id in config.staff_role_ids) or "administrators only"
    lines.append(f"- Staff roles: {staff}")
    return "\n".join(lines)


class SetupCog(commands.Cog):
    """Guild-level configuration commands for whiteflag."""

    def __init__(self, discord_bot_instance, service: WhiteflagService):
        self.discord_bot_instance = discord_bot_instance
        self.service = service
        logger.info("[SETUP CMDS] Setup cog loaded")

    async def _check_admin(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("❌ Must be used in a server.", ephemeral=True)
            return False
        if not is_admin(ctx.author):
            await ctx.respond("❌ No permission.", ephemeral=True)
            return False
        return True

    @commands.slash_command(name="setup", description="Configure the review, open season and mod log channels.")
    async def setup_channels(
        self,
        ctx: discord.ApplicationContext,
        review_channel: Option(discord.TextChannel, "Where staff review whiteflag requests"),  # type: ignore
        open_season_channel: Option(discord.TextChannel, "Where request buttons and open season announcements go"),  # type: ignore
        mod_log_channel: Option(discord.TextChannel, "Where mod logs go"),  # type: ignore
    ):
        if not await self._check_admin(ctx):
            return
        try:
            config = await self.service.on_configure(
                GuildID(ctx.guild_id),
                review_channel_id=ChannelID(review_channel.id),
                announce_channel_id=ChannelID(open_season_channel.id),
                log_channel_id=ChannelID(mod_log_channel.id),
            )
        except Exception:
            logger.exception("[SETUP CMDS] /setup failed for guild %s", ctx.guild_id)
            await ctx.respond(GENERIC_FAILURE, ephemeral=True)
            return
        await ctx.respond(f"✅ Setup complete.\n{describe_config(config)}", ephemeral=True)

    @commands.slash_command(name="setup_roles", description="Set the roles pinged per cluster and the staff role.")
    async def setup_roles(
        self,
        ctx: discord.ApplicationContext,
        role_100x: Option(discord.Role, "Role to ping for PVP Chaos 100x"),  # type: ignore
        role_25x: Option(discord.Role, "Role to ping for PVP 25x"),  # type: ignore
        staff_role: Option(discord.Role, "Role allowed to review whiteflags", required=False, default=None),  # type: ignore
    ):
        if not await self._check_admin(ctx):
            return
        patch = {
            "tier_role_ids": {
                Tier.HUNDRED_X: RoleID(role_100x.id),
                Tier.TWENTY_FIVE_X: RoleID(role_25x.id),
            },
        }
        if staff_role is not None:
            patch["staff_role_ids"] = [RoleID(staff_role.id)]
        try:
            config = await self.service.on_configure(GuildID(ctx.guild_id), **patch)
        except Exception:
            logger.exception("[SETUP CMDS] /setup_roles failed for guild %s", ctx.guild_id)
            await ctx.respond(GENERIC_FAILURE, ephemeral=True)
            return
        await ctx.respond(f"✅ Roles saved.\n{describe_config(config)}", ephemeral=True)

    @commands.slash_command(name="settings_show", description="Show the whiteflag configuration for this server.")
    async def settings_show(self, ctx: discord.ApplicationContext):
        if not await self._check_admin(ctx):
            return
        config = self.service.get_config(GuildID(ctx.guild_id))
        await ctx.respond(f"**Whiteflag settings**\n{describe_config(config)}", ephemeral=True)

    @commands.slash_command(name="post_whiteflag_buttons", description="Post the whiteflag request buttons.")
    async def post_whiteflag_buttons(self, ctx: discord.ApplicationContext):
        if not await self._check_admin(ctx):
            return
        config = self.service.get_config(GuildID(ctx.guild_id))
        if config.announce_channel_id is None:
            await ctx.respond("❌ Run /setup first (open season channel not set).", ephemeral=True)
            return

        try:
            channel = ctx.guild.get_channel(config.announce_channel_id.to_int()) if ctx.guild else None
            if channel is None:
                channel = await self.discord_bot_instance.fetch_channel(config.announce_channel_id.to_int())
            await channel.send(
                content="Select a tier to submit a whiteflag request:",
                view=build_tier_buttons_view(),
            )
        except discord.HTTPException as exc:
            logger.warning("[SETUP CMDS] Could not post buttons in guild %s: %s", ctx.guild_id, exc)
            await ctx.respond("❌ Open season channel missing or not writable.", ephemeral=True)
            return
        await ctx.respond("✅ Buttons posted.", ephemeral=True)

    @commands.slash_command(name="rules", description="Post the whiteflag rules.")
    async def rules(self, ctx: discord.ApplicationContext):
        if ctx.channel is None:
            await ctx.respond("❌ Can't find a channel.", ephemeral=True)
            return
        try:
            await ctx.channel.send(content=app_config.rules_text)
        except discord.HTTPException as exc:
            logger.warning("[SETUP CMDS] Could not post rules in channel %s: %s", ctx.channel_id, exc)
            await ctx.respond("❌ I can't post in this channel.", ephemeral=True)
            return
        await ctx.respond("✅ Rules posted.", ephemeral=True)

    @commands.slash_command(name="ping_tier", description="Ping the role for a cluster.")
    async def ping_tier(
        self,
        ctx: discord.ApplicationContext,
        tier: Option(str, "Cluster to ping", choices=TIER_CHOICES),  # type: ignore
        message: Option(str, "Optional message", required=False, default=None),  # type: ignore
    ):
        if not ctx.guild_id:
            await ctx.respond("❌ Must be used in a server.", ephemeral=True)
            return
        config = self.service.get_config(GuildID(ctx.guild_id))
        if not has_staff_permission(ctx.author, config):
            await ctx.respond("❌ No permission.", ephemeral=True)
            return

        selected = Tier.parse(tier)
        role_id = config.role_for_tier(selected)
        if role_id is None:
            await ctx.respond("❌ Run /setup_roles first.", ephemeral=True)
            return
        if ctx.channel is None:
            await ctx.respond("❌ Can't find a channel to send the ping.", ephemeral=True)
            return

        await ctx.channel.send(
            content=f"<@&{role_id}> {message or f'Ping for {selected.value}'}",
            allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False),
        )
        await ctx.respond("✅ Ping sent.", ephemeral=True)


def setup(discord_bot_instance, service: WhiteflagService):
    discord_bot_instance.add_cog(SetupCog(discord_bot_instance, service))
