"""
WhiteflagService: entry point for every inbound whiteflag event.

Each ``on_*`` method runs one lifecycle transition to completion (the state
change is persisted before it returns) and then hands the resulting intents
to the dispatcher. Interaction handlers pass ``deliver=False``, acknowledge
the interaction, and call :meth:`WhiteflagService.deliver` afterwards so a
slow DM or channel post never holds up the reply. Rejections surface as :class:`WhiteflagError` subclasses
for the caller to report; delivery failures never do.

Also owns the expiry scheduler: it arms/disarms timers through the
lifecycle, receives their wake-ups, and rebuilds them on startup.
"""

from __future__ import annotations

from typing import Any, List

from whiteflag.configuration.app_configuration import AppConfig, WhiteflagSettings
from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.guild_config import GuildConfig
from whiteflag.datatypes.request_datatypes import RequestMetadata, RequestStatus, Tier, WhiteflagRequest
from whiteflag.lifecycle.intents import ChannelPostKind, PostToChannel, TransitionResult
from whiteflag.lifecycle.state_machine import WhiteflagLifecycle
from whiteflag.repositories.request_repo import RequestRepository
from whiteflag.scheduler.expiry_scheduler import ExpiryScheduler, ReconcileReport
from whiteflag.services.intent_dispatcher import DispatchOutcome, IntentDispatcher
from whiteflag.settings.guild_config_registry import GuildConfigRegistry
from whiteflag.storage.json_store import JsonStore
from whiteflag.util.logger import get_logger

logger = get_logger("whiteflag_service")


class WhiteflagService:
    """Wires lifecycle, repository, registry, scheduler and dispatcher together."""

    def __init__(
        self,
        lifecycle: WhiteflagLifecycle,
        scheduler: ExpiryScheduler,
        dispatcher: IntentDispatcher,
    ) -> None:
        self.lifecycle = lifecycle
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.scheduler.on_due = self.handle_due
        self.lifecycle.timers = scheduler
        self._started = False

    @property
    def repository(self) -> RequestRepository:
        return self.lifecycle.repository

    @property
    def registry(self) -> GuildConfigRegistry:
        return self.lifecycle.registry

    @property
    def settings(self) -> WhiteflagSettings:
        return self.lifecycle.settings

    async def deliver(self, result: TransitionResult) -> List[DispatchOutcome]:
        """Execute a transition's intents and remember where its review post landed."""
        outcomes = await self.dispatcher.dispatch(result.intents)
        for outcome in outcomes:
            intent = outcome.intent
            if (
                outcome.delivered
                and outcome.message_id is not None
                and isinstance(intent, PostToChannel)
                and intent.kind is ChannelPostKind.REVIEW
            ):
                self.lifecycle.attach_review_post(intent.request.id, intent.channel_id, outcome.message_id)
        return outcomes

    # ------------------------------------------------------------------
    # Startup / shutdown
    # ------------------------------------------------------------------

    async def start(self) -> ReconcileReport | None:
        """Rebuild expiry timers from disk. Runs once per process."""
        if self._started:
            return None
        self._started = True
        return await self.scheduler.reconcile_on_startup(self.repository)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        self._started = False

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def on_submit(
        self,
        guild_id: GuildID,
        entity_name: str,
        requester_id: UserID,
        tier: Tier | str,
        metadata: RequestMetadata | None = None,
        duration_hours: Any = None,
        *,
        deliver: bool = True,
    ) -> TransitionResult:
        result = self.lifecycle.submit(guild_id, entity_name, requester_id, tier, metadata, duration_hours)
        if deliver:
            await self.deliver(result)
        return result

    async def on_approve(self, request_id: str, approver_id: UserID, *, deliver: bool = True) -> TransitionResult:
        result = self.lifecycle.approve(request_id, approver_id)
        if deliver:
            await self.deliver(result)
        return result

    async def on_deny(
        self, request_id: str, denier_id: UserID, reason: str | None = None, *, deliver: bool = True
    ) -> TransitionResult:
        result = self.lifecycle.deny(request_id, denier_id, reason)
        if deliver:
            await self.deliver(result)
        return result

    async def on_end_early(
        self, request_id: str, actor_id: UserID, reason: str | None = None, *, deliver: bool = True
    ) -> TransitionResult:
        result = self.lifecycle.end_early(request_id, actor_id, reason)
        if deliver:
            await self.deliver(result)
        return result

    async def on_end_early_for_entity(
        self,
        guild_id: GuildID,
        entity_name: str,
        actor_id: UserID,
        reason: str | None = None,
        *,
        deliver: bool = True,
    ) -> TransitionResult:
        result = self.lifecycle.end_early_for_entity(guild_id, entity_name, actor_id, reason)
        if deliver:
            await self.deliver(result)
        return result

    async def on_configure(self, guild_id: GuildID, **patch: Any) -> GuildConfig:
        return self.registry.set_config(guild_id, **patch)

    async def handle_due(self, request_id: str) -> None:
        """Expiry-timer callback."""
        result = self.lifecycle.expire(request_id)
        if result is not None:
            await self.deliver(result)

    async def sweep(self) -> List[TransitionResult]:
        """Periodic fallback sweep for grants whose timer was missed."""
        results = self.lifecycle.sweep_expired()
        for result in results:
            await self.deliver(result)
        if results:
            logger.info("[WHITEFLAG SERVICE] Sweep expired %d grant(s)", len(results))
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_config(self, guild_id: GuildID) -> GuildConfig:
        return self.registry.get_config(guild_id)

    def get_request(self, request_id: str) -> WhiteflagRequest | None:
        return self.repository.get(request_id)

    def list_active(self, guild_id: GuildID | None) -> List[WhiteflagRequest]:
        return self.repository.list_by_status(guild_id, RequestStatus.ACTIVE, now=self.lifecycle.clock())

    def list_pending(self, guild_id: GuildID | None) -> List[WhiteflagRequest]:
        return self.repository.list_by_status(guild_id, RequestStatus.PENDING)


def create_service(bot: Any, config: AppConfig) -> WhiteflagService:
    """Build the full service graph for a bot from the application config."""
    store = JsonStore(config.data_dir)
    registry = GuildConfigRegistry(store)
    repository = RequestRepository(store)
    scheduler = ExpiryScheduler()
    lifecycle = WhiteflagLifecycle(repository, registry, config.whiteflag)
    dispatcher = IntentDispatcher(bot, registry)
    logger.info("[WHITEFLAG SERVICE] Using data directory %s", config.data_dir)
    return WhiteflagService(lifecycle, scheduler, dispatcher)
