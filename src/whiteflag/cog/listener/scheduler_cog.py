"""Background expiry cog for whiteflag.

- On the first ``on_ready`` it reconciles persisted grants with the expiry
  scheduler (overdue grants are expired, the rest are armed).
- A ``tasks.loop`` sweeps for overdue grants at ``whiteflag.sweep_interval_seconds``
  as a fallback for missed timers, and purges old closed records.
"""

from __future__ import annotations

import asyncio

import discord
from discord.ext import commands, tasks

from whiteflag.services.whiteflag_service import WhiteflagService
from whiteflag.util.logger import get_logger

logger = get_logger("scheduler_cog")


class ExpirySweepCog(commands.Cog):
    """
    Drives the expiry side of the whiteflag lifecycle.

    Access via:
        bot.cogs["ExpirySweepCog"]
    """

    def __init__(self, bot: discord.Bot, service: WhiteflagService) -> None:
        self.bot = bot
        self.service = service

    # ------------------------------------------------------------------
    # Cog lifecycle
    # ------------------------------------------------------------------

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        await self.service.start()

        interval = self.service.settings.sweep_interval_seconds
        self._sweep_task.change_interval(seconds=interval)
        if not self._sweep_task.is_running():
            self._sweep_task.start()
            logger.info("[EXPIRY_SWEEP] Started (interval=%ds)", interval)

    def cog_unload(self) -> None:
        self._sweep_task.cancel()
        logger.info("[EXPIRY_SWEEP] Stopped")

    # ------------------------------------------------------------------
    # Sweep loop
    # ------------------------------------------------------------------

    @tasks.loop(seconds=60)  # real interval set in on_ready
    async def _sweep_task(self) -> None:
        try:
            await self.service.sweep()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Leave state as is; the next tick retries.
            logger.error("[EXPIRY_SWEEP] Sweep failed: %s", exc, exc_info=True)

    @_sweep_task.before_loop
    async def _before_sweep(self) -> None:
        await self.bot.wait_until_ready()


def setup(bot: discord.Bot, service: WhiteflagService) -> None:
    bot.add_cog(ExpirySweepCog(bot, service))
