"""Interaction listener Cog for whiteflag.

This cog has exactly ONE responsibility: route component clicks and modal
submissions to the WhiteflagService.

Buttons are matched by ``custom_id`` rather than by View callbacks, so review
posts and request buttons sent before a restart keep working.
"""

from typing import Awaitable

import discord
from discord.ext import commands

from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.interaction_datatypes import ReviewAction, ReviewActionKind
from whiteflag.datatypes.request_datatypes import RequestMetadata, RequestStatus, Tier
from whiteflag.lifecycle.errors import PermissionDeniedError, WhiteflagError
from whiteflag.lifecycle.intents import TransitionResult
from whiteflag.services.whiteflag_service import WhiteflagService
from whiteflag.ui.embeds import build_decision_embed
from whiteflag.ui.review_ui import (
    EndEarlyModal,
    WhiteflagRequestModal,
    build_review_view,
    parse_tier_button,
)
from whiteflag.util.discord_utils import GENERIC_FAILURE, has_staff_permission, safe_respond
from whiteflag.util.logger import get_logger

logger = get_logger("interaction_listener")


class InteractionListenerCog(commands.Cog):
    """Thin router from Discord components to service calls."""

    def __init__(self, bot: discord.Bot, service: WhiteflagService) -> None:
        self.bot = bot
        self.service = service
        logger.info("[INTERACTION LISTENER] Interaction listener cog loaded")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_interaction")
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id")

        tier = parse_tier_button(custom_id)
        if tier is not None:
            await self._guarded(interaction, self.open_request_form(interaction, tier))
            return

        action = ReviewAction.from_custom_id(custom_id)
        if action is not None:
            await self._guarded(interaction, self.handle_review_action(interaction, action))

    async def _guarded(self, interaction: discord.Interaction, handler) -> None:
        try:
            await handler
        except WhiteflagError as exc:
            await safe_respond(interaction, exc.user_message)
        except Exception:
            logger.exception("[INTERACTION LISTENER] Interaction %s failed", interaction.id)
            await safe_respond(interaction, GENERIC_FAILURE)

    async def _acknowledge_then_deliver(self, result: TransitionResult, acknowledgement: Awaitable[None]) -> None:
        """Answer Discord first; notifications for the committed transition go out after."""
        try:
            await acknowledgement
        finally:
            await self.service.deliver(result)

    # ------------------------------------------------------------------
    # Request buttons
    # ------------------------------------------------------------------

    async def open_request_form(self, interaction: discord.Interaction, tier: Tier) -> None:
        if not interaction.guild_id:
            await safe_respond(interaction, "❌ Must be used in a server.")
            return

        config = self.service.get_config(GuildID(interaction.guild_id))
        if config.announce_channel_id is None:
            await safe_respond(interaction, "❌ Bot not set up yet. Ask an admin to run /setup.")
            return
        if interaction.channel_id != config.announce_channel_id.to_int():
            await safe_respond(interaction, "❌ Use the whiteflag buttons in the open season channel.")
            return

        settings = self.service.settings
        modal = WhiteflagRequestModal(
            tier,
            self.submit_request_form,
            custom_duration=settings.custom_duration_enabled,
            min_hours=settings.min_duration_hours,
            max_hours=settings.max_duration_hours,
        )
        await interaction.response.send_modal(modal)

    async def submit_request_form(
        self,
        interaction: discord.Interaction,
        tier: Tier,
        fields: dict[str, str],
    ) -> None:
        async def submit() -> None:
            result = await self.service.on_submit(
                GuildID(interaction.guild_id),
                fields.get("tribe", ""),
                UserID(interaction.user.id),
                tier,
                RequestMetadata(
                    display_name=str(interaction.user),
                    coordinates=fields.get("coordinates", ""),
                    notes=fields.get("notes", ""),
                ),
                fields.get("hours"),
                deliver=False,
            )
            request = result.request
            await self._acknowledge_then_deliver(result, safe_respond(
                interaction,
                f"✅ Request for **{request.entity_name}** ({request.tier.value}) sent to staff for review.",
            ))

        await self._guarded(interaction, submit())

    # ------------------------------------------------------------------
    # Review buttons
    # ------------------------------------------------------------------

    async def handle_review_action(self, interaction: discord.Interaction, action: ReviewAction) -> None:
        if not interaction.guild_id:
            await safe_respond(interaction, "❌ Must be used in a server.")
            return

        config = self.service.get_config(GuildID(interaction.guild_id))
        if not has_staff_permission(interaction.user, config):
            raise PermissionDeniedError(f"{interaction.user.id} is not staff in guild {interaction.guild_id}")

        actor = UserID(interaction.user.id)
        if action.kind is ReviewActionKind.APPROVE:
            result = await self.service.on_approve(action.request_id, actor, deliver=False)
        elif action.kind is ReviewActionKind.DENY:
            result = await self.service.on_deny(action.request_id, actor, deliver=False)
        else:
            await self.open_end_early_form(interaction, action.request_id)
            return

        logger.debug(
            "[INTERACTION LISTENER] %s applied to %s by %s",
            action.kind.value, action.request_id, actor,
        )
        await self._acknowledge_then_deliver(result, interaction.response.edit_message(
            embed=build_decision_embed(result.request, f"<@{actor}>"),
            view=build_review_view(result.request),
        ))

    async def open_end_early_form(self, interaction: discord.Interaction, request_id: str) -> None:
        request = self.service.get_request(request_id)
        if request is None or request.status is not RequestStatus.ACTIVE:
            status = request.status.value.replace("_", " ") if request else "gone"
            await safe_respond(interaction, f"❌ This whiteflag is no longer active ({status}).")
            return
        await interaction.response.send_modal(
            EndEarlyModal(request.id, request.entity_name, self.submit_end_early_form)
        )

    async def submit_end_early_form(
        self,
        interaction: discord.Interaction,
        request_id: str,
        reason: str,
    ) -> None:
        async def end() -> None:
            result = await self.service.on_end_early(
                request_id, UserID(interaction.user.id), reason, deliver=False
            )
            ended = result.request
            await self._acknowledge_then_deliver(result, safe_respond(
                interaction,
                f"✅ Ended whiteflag for **{ended.entity_name}** ({ended.tier.value}).",
            ))

        await self._guarded(interaction, end())


def setup(bot: discord.Bot, service: WhiteflagService) -> None:
    """Register the InteractionListenerCog with the bot."""
    bot.add_cog(InteractionListenerCog(bot, service))
