"""
Logging for whiteflag.

Every module asks for a named logger with ``get_logger(name)``. Loggers write
INFO and above to the operator console through prompt_toolkit, so log lines
never tear through the ``>`` prompt, and everything down to DEBUG into one
rotating file per session under ``logs/``.
"""

import asyncio
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOGS_DIR: Path = (Path(__file__).parents[3] / "logs").resolve()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

# Seconds within which a restarted process keeps appending to the previous file
SESSION_REUSE_SECONDS = 60
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

_session_log_path: Path | None = None


class ColorFormatter(logging.Formatter):
    """Wraps each formatted record in its level's ANSI colour."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = LEVEL_COLORS.get(record.levelname)
        return f"{color}{text}{RESET_COLOR}" if color else text


class PromptToolkitHandler(logging.Handler):
    """Console handler that prints above the active prompt_toolkit prompt."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """True when stderr is a terminal that will render ANSI colours."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def session_log_path() -> Path:
    """
    Path of this session's log file.

    A restart within ``SESSION_REUSE_SECONDS`` of the last write continues the
    newest file from today instead of starting a new one.
    """
    global _session_log_path
    if _session_log_path is not None:
        return _session_log_path

    now = datetime.now()
    todays_logs = sorted(
        LOGS_DIR.glob(f"{now:%Y-%m-%d}*.log"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    if todays_logs and now.timestamp() - todays_logs[0].stat().st_mtime < SESSION_REUSE_SECONDS:
        _session_log_path = todays_logs[0]
    else:
        _session_log_path = LOGS_DIR / f"{now.strftime(DATE_FORMAT)}.log"
    return _session_log_path


def _console_handler() -> logging.Handler:
    handler = PromptToolkitHandler()
    formatter_cls = ColorFormatter if should_use_color() else logging.Formatter
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(logging.INFO)
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        session_log_path(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def get_logger(logger_name: str) -> logging.Logger:
    """Return the named logger, attaching console and file handlers on first use."""
    logger = logging.getLogger(logger_name)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        logger.addHandler(_console_handler())
        logger.addHandler(_file_handler())
    return logger


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` replacement: log the crash, let Ctrl+C behave normally."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    get_logger("crash").error(
        "Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback)
    )


def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """asyncio exception handler: log the failure and keep the loop running."""
    exception = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if exception is not None:
        get_logger("crash").error(
            "%s", message, exc_info=(type(exception), exception, exception.__traceback__)
        )
    else:
        get_logger("crash").error("%s", message)


# Library chatter only reaches us when it is an actual error.
for noisy_logger in ("discord", "discord.gateway", "discord.client", "discord.http", "websockets", "aiohttp", "asyncio"):
    library_logger = logging.getLogger(noisy_logger)
    library_logger.setLevel(logging.ERROR)
    library_logger.propagate = False
    library_logger.handlers = []

sys.excepthook = handle_exception
