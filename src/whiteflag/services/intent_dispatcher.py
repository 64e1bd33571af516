"""
Executes lifecycle intents against Discord.

By the time intents reach the dispatcher the state change they describe is
already persisted. Every Discord call is wrapped individually and its result
reported as a :class:`DispatchOutcome`; a failed DM or post is logged and
never raised back into the lifecycle.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List

import discord

from whiteflag.datatypes.discord_datatypes import ChannelID
from whiteflag.lifecycle.intents import (
    ChannelPostKind,
    Intent,
    LogEvent,
    NotifyRequester,
    PostToChannel,
    RefreshReviewPost,
)
from whiteflag.settings.guild_config_registry import GuildConfigRegistry
from whiteflag.ui.embeds import build_decision_embed, build_open_season_embed, build_request_embed
from whiteflag.ui.review_ui import build_review_view
from whiteflag.util.logger import get_logger

logger = get_logger("intent_dispatcher")

NO_LOG_CHANNEL = "no log channel configured"


@dataclass(frozen=True)
class DispatchOutcome:
    intent: Intent
    delivered: bool
    error: str | None = None
    # Id of the message a channel post created
    message_id: int | None = None


class IntentDispatcher:
    """Best-effort delivery of notifications, review posts and log lines."""

    def __init__(self, bot: discord.Bot, registry: GuildConfigRegistry) -> None:
        self.bot = bot
        self.registry = registry

    async def dispatch(self, intents: Iterable[Intent]) -> List[DispatchOutcome]:
        outcomes: List[DispatchOutcome] = []
        for intent in intents:
            outcome = await self.dispatch_one(intent)
            if outcome.delivered:
                logger.debug("[INTENT DISPATCHER] Delivered %s", type(intent).__name__)
            elif outcome.error == NO_LOG_CHANNEL:
                logger.debug("[INTENT DISPATCHER] Dropped log line: %s", NO_LOG_CHANNEL)
            else:
                logger.warning(
                    "[INTENT DISPATCHER] Could not deliver %s: %s", type(intent).__name__, outcome.error
                )
            outcomes.append(outcome)
        return outcomes

    async def dispatch_one(self, intent: Intent) -> DispatchOutcome:
        message_id = None
        try:
            if isinstance(intent, NotifyRequester):
                await self._notify_requester(intent)
            elif isinstance(intent, PostToChannel):
                message = await self._post_to_channel(intent)
                message_id = getattr(message, "id", None)
            elif isinstance(intent, RefreshReviewPost):
                await self._refresh_review_post(intent)
            elif isinstance(intent, LogEvent):
                delivered = await self._log_event(intent)
                if not delivered:
                    return DispatchOutcome(intent, False, NO_LOG_CHANNEL)
            else:
                return DispatchOutcome(intent, False, f"unknown intent {type(intent).__name__}")
        except discord.Forbidden as exc:
            return DispatchOutcome(intent, False, f"forbidden: {exc}")
        except discord.HTTPException as exc:
            return DispatchOutcome(intent, False, f"http error: {exc}")
        except Exception as exc:
            logger.exception("[INTENT DISPATCHER] Unexpected error delivering %s", type(intent).__name__)
            return DispatchOutcome(intent, False, str(exc))
        return DispatchOutcome(intent, True, message_id=message_id)

    # ------------------------------------------------------------------
    # Delivery helpers
    # ------------------------------------------------------------------

    async def _resolve_channel(self, channel_id: ChannelID) -> Any:
        channel = self.bot.get_channel(channel_id.to_int())
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id.to_int())
        return channel

    async def _notify_requester(self, intent: NotifyRequester) -> None:
        user = self.bot.get_user(intent.user_id.to_int())
        if user is None:
            user = await self.bot.fetch_user(intent.user_id.to_int())
        await user.send(intent.message)

    async def _post_to_channel(self, intent: PostToChannel) -> discord.Message:
        channel = await self._resolve_channel(intent.channel_id)
        content = intent.message
        if intent.mention_role_id is not None:
            content = f"<@&{intent.mention_role_id}> {content}"

        if intent.kind is ChannelPostKind.REVIEW:
            return await channel.send(
                content=content,
                embed=build_request_embed(intent.request),
                view=build_review_view(intent.request),
                allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False),
            )
        return await channel.send(
            content=content,
            embed=build_open_season_embed(intent.request),
            allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False),
        )

    async def _refresh_review_post(self, intent: RefreshReviewPost) -> None:
        channel = await self._resolve_channel(intent.channel_id)
        message = channel.get_partial_message(intent.message_id)
        await message.edit(
            embed=build_decision_embed(intent.request, intent.decided_by),
            view=build_review_view(intent.request),
        )

    async def _log_event(self, intent: LogEvent) -> bool:
        config = self.registry.get_config(intent.guild_id)
        if config.log_channel_id is None:
            return False
        channel = await self._resolve_channel(config.log_channel_id)
        await channel.send(content=intent.message, allowed_mentions=discord.AllowedMentions.none())
        return True
