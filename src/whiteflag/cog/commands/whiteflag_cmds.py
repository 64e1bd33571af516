"""
Whiteflag cog: slash commands for requesting, listing and ending whiteflags.

- /whiteflag_request: submit a request without the button form
- /whiteflag_list: active grants, soonest-expiring first (staff)
- /whiteflag_pending: requests waiting for review, oldest first (staff)
- /whiteflag_end: end a tribe's grant early and announce open season (staff)

Rejections from the lifecycle are reported ephemerally with their specific
reason; anything unexpected is logged and answered with a generic failure.
"""

import discord
from discord import Option
from discord.ext import commands

from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.request_datatypes import RequestMetadata, Tier, WhiteflagRequest
from whiteflag.lifecycle.errors import NotFoundError, WhiteflagError
from whiteflag.services.whiteflag_service import WhiteflagService
from whiteflag.ui.embeds import build_grant_list_embed
from whiteflag.util.discord_utils import GENERIC_FAILURE, has_staff_permission
from whiteflag.util.logger import get_logger

logger = get_logger("whiteflag_commands")

TIER_CHOICES = [tier.value for tier in Tier]


def format_active_line(request: WhiteflagRequest) -> str:
    return f"• **{request.entity_name}** ({request.tier.value}) expires <t:{request.expires_at}:R>"


def format_pending_line(request: WhiteflagRequest) -> str:
    return (
        f"• **{request.entity_name}** ({request.tier.value}) by <@{request.requester_id}>, "
        f"requested <t:{request.requested_at}:R>"
    )


class WhiteflagCog(commands.Cog):
    """Request and grant management commands."""

    def __init__(self, discord_bot_instance, service: WhiteflagService):
        self.discord_bot_instance = discord_bot_instance
        self.service = service
        logger.info("[WHITEFLAG CMDS] Whiteflag cog loaded")

    async def _check_staff(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("❌ Must be used in a server.", ephemeral=True)
            return False
        config = self.service.get_config(GuildID(ctx.guild_id))
        if not has_staff_permission(ctx.author, config):
            await ctx.respond("❌ No permission.", ephemeral=True)
            return False
        return True

    @commands.slash_command(name="whiteflag_request", description="Request a whiteflag for your tribe.")
    async def whiteflag_request(
        self,
        ctx: discord.ApplicationContext,
        tier: Option(str, "Cluster", choices=TIER_CHOICES),  # type: ignore
        tribe: Option(str, "Tribe name"),  # type: ignore
        coordinates: Option(str, "Base location / coordinates", required=False, default=""),  # type: ignore
        notes: Option(str, "Notes / reason", required=False, default=""),  # type: ignore
        hours: Option(int, "Duration in hours (only if enabled on this server)", required=False, default=None),  # type: ignore
    ):
        if not ctx.guild_id:
            await ctx.respond("❌ Must be used in a server.", ephemeral=True)
            return

        await ctx.defer(ephemeral=True)
        try:
            result = await self.service.on_submit(
                GuildID(ctx.guild_id),
                tribe,
                UserID(ctx.author.id),
                tier,
                RequestMetadata(display_name=str(ctx.author), coordinates=coordinates or "", notes=notes or ""),
                hours,
                deliver=False,
            )
        except WhiteflagError as exc:
            await ctx.send_followup(exc.user_message, ephemeral=True)
            return
        except Exception:
            logger.exception("[WHITEFLAG CMDS] /whiteflag_request failed in guild %s", ctx.guild_id)
            await ctx.send_followup(GENERIC_FAILURE, ephemeral=True)
            return

        request = result.request
        await ctx.send_followup(
            f"✅ Request for **{request.entity_name}** ({request.tier.value}) sent to staff for review.",
            ephemeral=True,
        )
        await self.service.deliver(result)

    @commands.slash_command(name="whiteflag_list", description="List active whiteflags.")
    async def whiteflag_list(self, ctx: discord.ApplicationContext):
        if not await self._check_staff(ctx):
            return
        grants = self.service.list_active(GuildID(ctx.guild_id))
        embed = build_grant_list_embed(
            "Active whiteflags",
            [format_active_line(grant) for grant in grants],
            "No active whiteflags.",
        )
        await ctx.respond(embed=embed, ephemeral=True)

    @commands.slash_command(name="whiteflag_pending", description="List whiteflag requests awaiting review.")
    async def whiteflag_pending(self, ctx: discord.ApplicationContext):
        if not await self._check_staff(ctx):
            return
        pending = self.service.list_pending(GuildID(ctx.guild_id))
        embed = build_grant_list_embed(
            "Pending whiteflag requests",
            [format_pending_line(request) for request in pending],
            "No pending requests.",
        )
        await ctx.respond(embed=embed, ephemeral=True)

    @commands.slash_command(name="whiteflag_end", description="End a tribe's whiteflag early.")
    async def whiteflag_end(
        self,
        ctx: discord.ApplicationContext,
        tribe: Option(str, "Tribe name"),  # type: ignore
        reason: Option(str, "Reason (optional)", required=False, default=None),  # type: ignore
    ):
        if not await self._check_staff(ctx):
            return

        await ctx.defer(ephemeral=True)
        try:
            result = await self.service.on_end_early_for_entity(
                GuildID(ctx.guild_id), tribe, UserID(ctx.author.id), reason, deliver=False
            )
        except NotFoundError:
            await ctx.send_followup("❌ No active whiteflag found for that tribe.", ephemeral=True)
            return
        except WhiteflagError as exc:
            await ctx.send_followup(exc.user_message, ephemeral=True)
            return
        except Exception:
            logger.exception("[WHITEFLAG CMDS] /whiteflag_end failed in guild %s", ctx.guild_id)
            await ctx.send_followup(GENERIC_FAILURE, ephemeral=True)
            return

        ended = result.request
        await ctx.send_followup(
            f"✅ Ended whiteflag for **{ended.entity_name}** ({ended.tier.value}).", ephemeral=True
        )
        await self.service.deliver(result)


def setup(discord_bot_instance, service: WhiteflagService):
    discord_bot_instance.add_cog(WhiteflagCog(discord_bot_instance, service))
