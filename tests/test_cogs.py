from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from conftest import ANNOUNCE_CHANNEL, GUILD, STAFF_ROLE

from whiteflag.cog.commands import setup_cmds, whiteflag_cmds
from whiteflag.cog.listener import events_listener, scheduler_cog
from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.request_datatypes import RequestStatus, Tier


def make_member(member_id=500, *, admin=False, manage_guild=False, role_ids=()):
    member = MagicMock(spec=discord.Member)
    member.id = member_id
    member.guild_permissions = SimpleNamespace(administrator=admin, manage_guild=manage_guild)
    member.roles = [SimpleNamespace(id=role_id) for role_id in role_ids]
    member.__str__.return_value = f"member{member_id}"
    return member


def make_ctx(author, guild_id=GUILD.to_int()):
    return SimpleNamespace(
        guild_id=guild_id,
        guild=None,
        author=author,
        channel=SimpleNamespace(send=AsyncMock()),
        channel_id=9,
        respond=AsyncMock(),
        defer=AsyncMock(),
        send_followup=AsyncMock(),
    )


def test_setup_functions_add_cogs(service):
    captured = []
    fake_bot = SimpleNamespace(add_cog=captured.append)

    setup_cmds.setup(fake_bot, service)
    whiteflag_cmds.setup(fake_bot, service)
    events_listener.setup(fake_bot, service)
    scheduler_cog.setup(fake_bot, service)

    assert [type(cog).__name__ for cog in captured] == [
        "SetupCog", "WhiteflagCog", "EventsListenerCog", "ExpirySweepCog",
    ]


# ----------------------------------------------------------------------
# Setup commands
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_setup_requires_admin(service):
    cog = setup_cmds.SetupCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(manage_guild=True))

    await setup_cmds.SetupCog.setup_channels.callback(
        cog, ctx, SimpleNamespace(id=1), SimpleNamespace(id=2), SimpleNamespace(id=3)
    )

    ctx.respond.assert_awaited_once_with("❌ No permission.", ephemeral=True)


@pytest.mark.asyncio
async def test_setup_channels_persists(service):
    cog = setup_cmds.SetupCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(admin=True), guild_id=77)

    await setup_cmds.SetupCog.setup_channels.callback(
        cog, ctx, SimpleNamespace(id=1), SimpleNamespace(id=2), SimpleNamespace(id=3)
    )

    config = service.get_config(GuildID(77))
    assert (config.review_channel_id, config.announce_channel_id, config.log_channel_id) == (1, 2, 3)
    assert ctx.respond.await_args.args[0].startswith("✅ Setup complete.")


@pytest.mark.asyncio
async def test_setup_roles_persists_tiers_and_staff(service):
    cog = setup_cmds.SetupCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(admin=True), guild_id=77)

    await setup_cmds.SetupCog.setup_roles.callback(
        cog, ctx, SimpleNamespace(id=10), SimpleNamespace(id=11), SimpleNamespace(id=12)
    )

    config = service.get_config(GuildID(77))
    assert config.role_for_tier(Tier.HUNDRED_X) == 10
    assert config.role_for_tier(Tier.TWENTY_FIVE_X) == 11
    assert config.staff_role_ids == [12]


@pytest.mark.asyncio
async def test_post_buttons_sends_tier_view(service):
    channel = SimpleNamespace(send=AsyncMock())
    bot = SimpleNamespace(fetch_channel=AsyncMock(return_value=channel))
    cog = setup_cmds.SetupCog(bot, service)
    ctx = make_ctx(make_member(admin=True))

    await setup_cmds.SetupCog.post_whiteflag_buttons.callback(cog, ctx)

    bot.fetch_channel.assert_awaited_once_with(ANNOUNCE_CHANNEL.to_int())
    view = channel.send.await_args.kwargs["view"]
    assert [item.custom_id for item in view.children] == ["whiteflag_tier:100x", "whiteflag_tier:25x"]
    ctx.respond.assert_awaited_once_with("✅ Buttons posted.", ephemeral=True)


@pytest.mark.asyncio
async def test_rules_posts_configured_text(service):
    cog = setup_cmds.SetupCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member())

    await setup_cmds.SetupCog.rules.callback(cog, ctx)

    assert "White Flag Rules" in ctx.channel.send.await_args.kwargs["content"]


@pytest.mark.asyncio
async def test_ping_tier_allows_staff_role(service):
    cog = setup_cmds.SetupCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(role_ids=[STAFF_ROLE.to_int()]))

    await setup_cmds.SetupCog.ping_tier.callback(cog, ctx, "25x", None)

    assert ctx.channel.send.await_args.kwargs["content"].startswith("<@&3002>")


# ----------------------------------------------------------------------
# Whiteflag commands
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_request_command_submits(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(member_id=42))

    await whiteflag_cmds.WhiteflagCog.whiteflag_request.callback(cog, ctx, "100x", "Alpha", "", "", None)

    pending = service.list_pending(GUILD)
    assert [(r.entity_name, r.requester_id) for r in pending] == [("Alpha", UserID(42))]
    assert pending[0].metadata.display_name == "member42"
    assert ctx.send_followup.await_args.args[0].startswith("✅")


@pytest.mark.asyncio
async def test_request_command_replies_before_notifying_staff(service, dispatcher):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(member_id=42))
    order = []

    async def reply(*args, **kwargs):
        order.append("reply")

    async def dispatch(intents):
        order.append("dispatch")
        return []

    ctx.send_followup = AsyncMock(side_effect=reply)
    dispatcher.dispatch = AsyncMock(side_effect=dispatch)

    await whiteflag_cmds.WhiteflagCog.whiteflag_request.callback(cog, ctx, "100x", "Alpha", "", "", None)

    assert order == ["reply", "dispatch"]


@pytest.mark.asyncio
async def test_request_command_reports_rejection(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    await service.on_submit(GUILD, "Alpha", UserID(1), "100x")
    ctx = make_ctx(make_member(member_id=42))

    await whiteflag_cmds.WhiteflagCog.whiteflag_request.callback(cog, ctx, "100x", "ALPHA", "", "", None)

    assert "already has a pending or active whiteflag" in ctx.send_followup.await_args.args[0]


@pytest.mark.asyncio
async def test_list_requires_staff(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member())

    await whiteflag_cmds.WhiteflagCog.whiteflag_list.callback(cog, ctx)

    ctx.respond.assert_awaited_once_with("❌ No permission.", ephemeral=True)


@pytest.mark.asyncio
async def test_list_shows_active_grants(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    request = (await service.on_submit(GUILD, "Alpha", UserID(1), "100x")).request
    await service.on_approve(request.id, UserID(2))
    ctx = make_ctx(make_member(manage_guild=True))

    await whiteflag_cmds.WhiteflagCog.whiteflag_list.callback(cog, ctx)

    embed = ctx.respond.await_args.kwargs["embed"]
    assert "**Alpha** (100x)" in embed.description
    await service.shutdown()


@pytest.mark.asyncio
async def test_end_command_ends_grant(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    request = (await service.on_submit(GUILD, "Alpha Wolves", UserID(1), "100x")).request
    await service.on_approve(request.id, UserID(2))
    ctx = make_ctx(make_member(admin=True))

    await whiteflag_cmds.WhiteflagCog.whiteflag_end.callback(cog, ctx, "alpha wolves", None)

    assert service.get_request(request.id).status is RequestStatus.ENDED_EARLY
    assert service.get_request(request.id).end_reason == "No reason provided"
    await service.shutdown()


@pytest.mark.asyncio
async def test_end_command_unknown_tribe(service):
    cog = whiteflag_cmds.WhiteflagCog(SimpleNamespace(), service)
    ctx = make_ctx(make_member(admin=True))

    await whiteflag_cmds.WhiteflagCog.whiteflag_end.callback(cog, ctx, "Nobody", "x")

    ctx.send_followup.assert_awaited_once_with("❌ No active whiteflag found for that tribe.", ephemeral=True)


# ----------------------------------------------------------------------
# Listeners
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sweep_cog_starts_service_and_loop(service, monkeypatch):
    cog = scheduler_cog.ExpirySweepCog(SimpleNamespace(), service)
    start = AsyncMock()
    monkeypatch.setattr(service, "start", start)
    loop_start = MagicMock()
    monkeypatch.setattr(cog._sweep_task, "start", loop_start)
    monkeypatch.setattr(cog._sweep_task, "is_running", lambda: False)
    monkeypatch.setattr(cog._sweep_task, "change_interval", MagicMock())

    await cog.on_ready()

    start.assert_awaited_once()
    loop_start.assert_called_once()
