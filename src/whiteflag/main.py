"""
Whiteflag Discord Bot
=====================

Entry point. Members ask for temporary raid protection ("white flags") for
their tribe, staff approve or deny each request, and approved grants run out
on their own after a fixed time unless staff end them early.

The process runs the Discord client and the operator console side by side.
A ``restart`` typed into the console makes :func:`main` re-exec the
interpreter with the same arguments.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """
    Directory holding ``config/``, ``data/`` and ``.env``.

    ``WHITEFLAG_HOME`` wins when set. A frozen build uses the directory of
    its executable, a source checkout the repository root.
    """
    override = os.getenv("WHITEFLAG_HOME")
    if override:
        return Path(override).resolve()
    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent
    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
# Relative config and data paths below resolve against BASE_DIR
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from whiteflag.configuration.app_configuration import app_config
from whiteflag.services.whiteflag_service import WhiteflagService, create_service
from whiteflag.ui.console import ConsoleControl, close_bot_instance, console_session
from whiteflag.util.logger import get_logger, handle_exception, handle_loop_exception

logger = get_logger("main")

RESTART_EXIT_CODE = 42
TOKEN_VARIABLE = "DISCORD_BOT_TOKEN"


def load_environment() -> str:
    """Read ``.env`` and return the bot token, exiting with code 1 if it is absent."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv(TOKEN_VARIABLE)
    if token:
        return token
    logger.critical("%s is not set; refusing to start.", TOKEN_VARIABLE)
    sys.exit(1)


def build_intents() -> discord.Intents:
    """Only guild events are needed: everything else arrives as interactions."""
    intents = discord.Intents.default()
    intents.guilds = True
    return intents


def load_cogs(bot: discord.Bot, service: WhiteflagService) -> None:
    """Attach every cog to ``bot``, all sharing the one service instance."""
    from whiteflag.cog.commands import setup_cmds, whiteflag_cmds
    from whiteflag.cog.listener import events_listener, interaction_listener, scheduler_cog

    modules = (events_listener, interaction_listener, scheduler_cog, setup_cmds, whiteflag_cmds)
    for module in modules:
        module.setup(bot, service)
    logger.info("Loaded %d cog modules.", len(modules))


def create_bot() -> tuple[discord.Bot, WhiteflagService]:
    bot = discord.Bot(intents=build_intents())
    service = create_service(bot, app_config)
    load_cogs(bot, service)
    return bot, service


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Connect and block until the gateway session ends."""
    logger.info("Connecting to Discord...")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Connection attempt cancelled.")
    finally:
        logger.info("Discord client stopped.")


async def shutdown_runtime(bot: discord.Bot | None = None, service: WhiteflagService | None = None) -> None:
    """Close the gateway connection, then cancel pending expiry timers."""
    await close_bot_instance(bot, log_close=True)
    if service is not None:
        try:
            await service.shutdown()
        except Exception as exc:
            logger.exception("Whiteflag service did not shut down cleanly: %s", exc)
    logger.info("Shutdown complete.")


async def run_bot_session(
    bot: discord.Bot,
    service: WhiteflagService,
    token: str,
    control: ConsoleControl,
) -> int:
    """Run one client session with the console attached; returns 0 or 1."""
    control.set_bot(bot, service)
    failed = False
    try:
        async with console_session(control):
            try:
                await start_bot(bot, token)
            except asyncio.CancelledError:
                logger.info("Session cancelled.")
            except Exception as exc:
                logger.critical("Discord client crashed: %s", exc)
                failed = True
    finally:
        control.set_bot(None)
        await shutdown_runtime(bot, service)
    return 1 if failed else 0


async def async_main() -> int:
    token = load_environment()
    asyncio.get_running_loop().set_exception_handler(handle_loop_exception)

    try:
        bot, service = create_bot()
    except Exception as exc:
        logger.critical("Could not build the bot: %s", exc)
        return 1

    control = ConsoleControl()
    exit_code = await run_bot_session(bot, service, token, control)
    if control.is_restart_requested():
        logger.info("Restart requested from console (exit code %d).", RESTART_EXIT_CODE)
        return RESTART_EXIT_CODE
    return exit_code


def _exit_code_from(exc: SystemExit) -> int:
    if exc.code is None:
        return 1
    if isinstance(exc.code, int):
        return exc.code
    try:
        return int(exc.code)
    except (TypeError, ValueError):
        logger.warning("Non-numeric exit code %r, using 1", exc.code)
        return 1


def main() -> int:
    """Console-script entry point; returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting whiteflag bot...")
    try:
        exit_code = asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        return 0
    except SystemExit as exc:
        return _exit_code_from(exc)
    except Exception as exc:
        logger.critical("Unexpected error while running the bot: %s", exc)
        return 1

    if exit_code == RESTART_EXIT_CODE:
        logger.info("Re-executing %s", sys.executable)
        # execv keeps the terminal attached, so the console comes back after the restart
        os.execv(sys.executable, [sys.executable, *sys.argv])
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
