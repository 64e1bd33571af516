from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from conftest import GUILD, LOG_CHANNEL, REVIEW_CHANNEL, ROLE_100X, START

from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.request_datatypes import RequestStatus, Tier, WhiteflagRequest
from whiteflag.lifecycle.intents import (
    ChannelPostKind,
    LogEvent,
    NotifyRequester,
    PostToChannel,
    RefreshReviewPost,
)
from whiteflag.services.intent_dispatcher import NO_LOG_CHANNEL, IntentDispatcher


def pending_request() -> WhiteflagRequest:
    return WhiteflagRequest(
        id="abc",
        guild_id=GuildID(GUILD),
        entity_name="Alpha",
        tier=Tier.HUNDRED_X,
        requester_id=UserID(11),
        status=RequestStatus.PENDING,
        requested_at=START,
        duration_hours=168,
    )


def make_bot(channel=None, user=None):
    bot = MagicMock()
    bot.get_channel.return_value = channel
    bot.fetch_channel = AsyncMock(return_value=channel)
    bot.get_user.return_value = None
    bot.fetch_user = AsyncMock(return_value=user)
    return bot


@pytest.mark.asyncio
async def test_review_post_has_embed_view_and_role_ping(configured_registry):
    channel = SimpleNamespace(send=AsyncMock(return_value=SimpleNamespace(id=777)))
    dispatcher = IntentDispatcher(make_bot(channel=channel), configured_registry)

    intent = PostToChannel(REVIEW_CHANNEL, ChannelPostKind.REVIEW, "New request", pending_request(), ROLE_100X)
    outcomes = await dispatcher.dispatch([intent])

    assert outcomes[0].delivered
    assert outcomes[0].message_id == 777
    kwargs = channel.send.await_args.kwargs
    assert kwargs["content"] == f"<@&{ROLE_100X}> New request"
    assert isinstance(kwargs["embed"], discord.Embed)
    assert isinstance(kwargs["view"], discord.ui.View)


@pytest.mark.asyncio
async def test_notify_falls_back_to_fetch_user(configured_registry):
    user = SimpleNamespace(send=AsyncMock())
    bot = make_bot(user=user)
    dispatcher = IntentDispatcher(bot, configured_registry)

    outcome = await dispatcher.dispatch_one(NotifyRequester(UserID(11), "hello"))

    assert outcome.delivered
    bot.fetch_user.assert_awaited_once_with(11)
    user.send.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_closed_dms_are_reported_not_raised(configured_registry):
    user = SimpleNamespace(send=AsyncMock(side_effect=discord.Forbidden(MagicMock(), "DM disabled")))
    dispatcher = IntentDispatcher(make_bot(user=user), configured_registry)

    outcomes = await dispatcher.dispatch([NotifyRequester(UserID(11), "hello"), LogEvent(GUILD, "line")])

    assert not outcomes[0].delivered
    assert outcomes[0].error.startswith("forbidden")
    assert len(outcomes) == 2


@pytest.mark.asyncio
async def test_log_event_uses_log_channel(configured_registry):
    channel = SimpleNamespace(send=AsyncMock())
    bot = make_bot(channel=channel)
    dispatcher = IntentDispatcher(bot, configured_registry)

    outcome = await dispatcher.dispatch_one(LogEvent(GUILD, "approved"))

    assert outcome.delivered
    bot.get_channel.assert_called_once_with(LOG_CHANNEL.to_int())
    assert channel.send.await_args.kwargs["content"] == "approved"


@pytest.mark.asyncio
async def test_log_event_without_channel_is_dropped(registry):
    dispatcher = IntentDispatcher(make_bot(), registry)
    outcome = await dispatcher.dispatch_one(LogEvent(GuildID(77), "approved"))
    assert not outcome.delivered
    assert outcome.error == NO_LOG_CHANNEL


@pytest.mark.asyncio
async def test_unexpected_error_is_captured(configured_registry):
    channel = SimpleNamespace(send=AsyncMock(side_effect=RuntimeError("boom")))
    dispatcher = IntentDispatcher(make_bot(channel=channel), configured_registry)
    outcome = await dispatcher.dispatch_one(LogEvent(GUILD, "x"))
    assert outcome.error == "boom"


@pytest.mark.asyncio
async def test_refresh_review_post_redraws_and_clears_buttons(configured_registry):
    message = SimpleNamespace(edit=AsyncMock())
    channel = SimpleNamespace(get_partial_message=MagicMock(return_value=message))
    dispatcher = IntentDispatcher(make_bot(channel=channel), configured_registry)
    ended = pending_request().copy(status=RequestStatus.ENDED_EARLY, end_reason="raided")

    outcome = await dispatcher.dispatch_one(RefreshReviewPost(REVIEW_CHANNEL, 777, ended, "<@5>"))

    assert outcome.delivered
    channel.get_partial_message.assert_called_once_with(777)
    kwargs = message.edit.await_args.kwargs
    assert "Ended early" in kwargs["embed"].title
    assert kwargs["view"].children == []
