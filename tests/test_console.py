from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import GUILD

from whiteflag.datatypes.discord_datatypes import UserID
from whiteflag.ui import console
from whiteflag.ui.console import COMMANDS, ConsoleControl, handle_console_command


def printed(mock_print):
    return "\n".join(str(call.args[0]) for call in mock_print.call_args_list)


def test_every_command_has_unique_names():
    names = [name for cmd in COMMANDS for name in [cmd.name, *cmd.aliases]]
    assert len(names) == len(set(names))
    assert {"help", "status", "grants", "sweep", "restart", "shutdown"} <= {cmd.name for cmd in COMMANDS}


@pytest.mark.asyncio
async def test_unknown_command_is_reported():
    control = ConsoleControl()
    with patch.object(console, "console_print") as mock_print:
        await handle_console_command("frobnicate", control)
    assert "Unknown command 'frobnicate'" in printed(mock_print)


@pytest.mark.asyncio
async def test_status_shows_counts(service):
    await service.on_submit(GUILD, "Alpha", UserID(1), "100x")
    control = ConsoleControl()
    control.set_bot(None, service)

    with patch.object(console, "console_print") as mock_print:
        await handle_console_command("status", control)

    output = printed(mock_print)
    assert "Not initialized" in output
    assert "Pending:    1" in output
    assert "Timers:     0" in output
    assert "Configured: 1 guild(s)" in output


@pytest.mark.asyncio
async def test_grants_lists_active(service):
    request = (await service.on_submit(GUILD, "Alpha", UserID(1), "100x")).request
    await service.on_approve(request.id, UserID(2))
    control = ConsoleControl()
    control.set_bot(None, service)

    with patch.object(console, "console_print") as mock_print:
        await handle_console_command("grants", control)

    assert "Alpha [100x]" in printed(mock_print)
    await service.shutdown()


@pytest.mark.asyncio
async def test_sweep_runs_service_sweep():
    control = ConsoleControl()
    service = SimpleNamespace(sweep=AsyncMock(return_value=[]))
    control.set_bot(None, service)

    with patch.object(console, "console_print"):
        await handle_console_command("sweep", control)

    service.sweep.assert_awaited_once()


@pytest.mark.asyncio
async def test_restart_sets_both_events_and_closes_bot():
    control = ConsoleControl()
    bot = MagicMock()
    bot.is_closed.return_value = False
    bot.close = AsyncMock()
    control.set_bot(bot)

    with patch.object(console, "console_print"):
        await handle_console_command("reboot", control)

    assert control.is_restart_requested()
    assert control.is_shutdown_requested()
    bot.close.assert_awaited_once()
