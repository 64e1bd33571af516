"""
Operator console for the running whiteflag bot.

Runs a prompt_toolkit prompt next to the Discord client. Commands inspect the
request store (``status``, ``grants``), force the expiry sweep (``sweep``)
and stop or restart the process. A restart is signalled to ``main`` through
:class:`ConsoleControl`, which turns it into exit code 42.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import discord
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from whiteflag.datatypes.request_datatypes import RequestStatus
from whiteflag.util.logger import get_logger

if TYPE_CHECKING:
    from whiteflag.services.whiteflag_service import WhiteflagService

logger = get_logger("console")

PANEL_WIDTH = 45

CommandHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]


@dataclass
class Command:
    """A console command and the names it answers to."""
    name: str
    handler: CommandHandler
    description: str
    aliases: list[str] = field(default_factory=list)

    def matches(self, word: str) -> bool:
        return word == self.name or word in self.aliases


COMMANDS: list[Command] = []


def command(name: str, description: str, *aliases: str) -> Callable[[CommandHandler], CommandHandler]:
    """Register the decorated coroutine as a console command."""
    def register(handler: CommandHandler) -> CommandHandler:
        COMMANDS.append(Command(name, handler, description, list(aliases)))
        return handler
    return register


def console_print(message: str, style: str = "") -> None:
    """Print without breaking the active prompt."""
    print_formatted_text(FormattedText([(style, message)]) if style else message)


def print_panel_title(title: str, style: str = "ansiblue") -> None:
    inner = PANEL_WIDTH - 2
    console_print(f"╔{'═' * inner}╗", style)
    console_print(f"║{title.center(inner)}║", style)
    console_print(f"╚{'═' * inner}╝", style)


class ConsoleControl:
    """Shared state between the console task and ``main``."""

    def __init__(self) -> None:
        self.shutdown_event = asyncio.Event()
        self.restart_event = asyncio.Event()
        self.bot: discord.Bot | None = None
        self.service: WhiteflagService | None = None

    def set_bot(self, bot: discord.Bot | None, service: WhiteflagService | None = None) -> None:
        self.bot = bot
        self.service = service

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def request_restart(self) -> None:
        self.restart_event.set()

    def stop(self) -> None:
        self.shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()

    def is_restart_requested(self) -> bool:
        return self.restart_event.is_set()


async def close_bot_instance(bot: discord.Bot | None, *, log_close: bool = False) -> None:
    """Close the Discord connection if it is still open."""
    if bot is None or bot.is_closed():
        return
    try:
        await bot.close()
    except Exception as exc:
        logger.exception("Closing the Discord client failed: %s", exc)
        return
    if log_close:
        logger.info("Discord client closed.")


async def _stop(control: ConsoleControl, *, restart: bool) -> None:
    if restart:
        control.request_restart()
    control.request_shutdown()
    await close_bot_instance(control.bot)


# ==================== Commands ====================

@command("help", "List console commands", "h", "?")
async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    print_panel_title("Console Commands", "ansigreen")
    for cmd in COMMANDS:
        names = ", ".join([cmd.name, *cmd.aliases])
        console_print(f"  {names}", "ansicyan")
        console_print(f"      {cmd.description}")
    console_print("")


@command("status", "Connection state, request counts and armed expiry timers", "stat", "info")
async def cmd_status(control: ConsoleControl, args: list[str]) -> None:
    print_panel_title("Bot Status")
    bot = control.bot
    if bot is None:
        console_print("  Bot:        🔴 Not initialized")
    else:
        console_print(f"  Bot:        {'🔴 Disconnected' if bot.is_closed() else '🟢 Connected'}")
        console_print(f"  Guilds:     {len(bot.guilds)}")
        console_print(f"  Latency:    {bot.latency * 1000:.0f}ms")

    service = control.service
    if service is not None:
        counts = service.repository.count_by_status()
        console_print(f"  Pending:    {counts[RequestStatus.PENDING]}")
        console_print(f"  Active:     {counts[RequestStatus.ACTIVE]}")
        console_print(f"  Timers:     {service.scheduler.armed_count()}")
        console_print(f"  Configured: {len(service.registry.list_guild_ids())} guild(s)")
    console_print("")


@command("grants", "Active whiteflags in every guild, soonest expiry first", "active", "g")
async def cmd_grants(control: ConsoleControl, args: list[str]) -> None:
    if control.service is None:
        console_print("Service not initialized.", "ansiyellow")
        return
    grants = control.service.list_active(None)
    print_panel_title(f"Active Whiteflags ({len(grants)})")
    for grant in grants:
        console_print(
            f"  • {grant.entity_name} [{grant.tier.value}] guild={grant.guild_id} expires_at={grant.expires_at}"
        )
    console_print("")


@command("sweep", "Expire overdue whiteflags now instead of waiting for the next sweep")
async def cmd_sweep(control: ConsoleControl, args: list[str]) -> None:
    if control.service is None:
        console_print("Service not initialized.", "ansiyellow")
        return
    expired = await control.service.sweep()
    console_print(f"Sweep complete: {len(expired)} grant(s) expired.", "ansigreen")


@command("clear", "Clear the screen", "cls")
async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    os.system("cls" if os.name == "nt" else "clear")


@command("restart", "Restart the whole process", "reboot")
async def cmd_restart(control: ConsoleControl, args: list[str]) -> None:
    console_print("Restarting...", "ansiyellow")
    await _stop(control, restart=True)


@command("shutdown", "Shut the bot down", "stop", "quit", "exit")
async def cmd_shutdown(control: ConsoleControl, args: list[str]) -> None:
    console_print("Shutting down...", "ansiyellow")
    await _stop(control, restart=False)


# ==================== Loop ====================

async def handle_console_command(line: str, control: ConsoleControl) -> None:
    """Run one console input line."""
    words = line.split()
    if not words:
        return
    name, args = words[0].lower(), words[1:]

    cmd = next((candidate for candidate in COMMANDS if candidate.matches(name)), None)
    if cmd is None:
        console_print(f"Unknown command '{name}'. Type 'help' for available commands.", "ansired")
        return
    try:
        await cmd.handler(control, args)
    except Exception as exc:
        logger.exception("Console command '%s' failed: %s", name, exc)
        console_print(f"Command failed: {exc}", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Read commands until shutdown is requested or stdin closes."""
    session = PromptSession("> ")
    print_panel_title("Whiteflag Console", "ansigreen")
    console_print("Type 'help' for commands.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
            except (EOFError, KeyboardInterrupt):
                console_print("\nConsole closed, shutting down.", "ansiyellow")
                control.request_shutdown()
                break
            await handle_console_command(line, control)


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Run the console for the duration of the ``async with`` block."""
    task = asyncio.create_task(run_console(control))
    try:
        yield control
    finally:
        control.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
