"""
Whiteflag request lifecycle.

    pending ──approve──▶ active ──expire──────▶ expired
       │                   └────end early───▶ ended_early
       └──────deny───────▶ denied

Every transition follows the same bracket: reload the record, validate the
move, write the new status, then hand back the intents the caller must
execute. Validation always happens before the write, so a rejected action
leaves the store untouched. All methods are synchronous; running them on the
event loop means no other transition can interleave inside a bracket.

Invariants enforced here:
- at most one pending-or-active record per entity name (per guild);
- a requester has at most one pending request (per guild);
- terminal statuses are never left, and no transition is applied twice;
- an expiry timer never overrides a record that is no longer active.
"""

from __future__ import annotations

import time
import uuid
from typing import Callable, List, Protocol

from whiteflag.configuration.app_configuration import WhiteflagSettings
from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from whiteflag.datatypes.request_datatypes import (
    HOUR_SECONDS,
    RequestMetadata,
    RequestStatus,
    Tier,
    WhiteflagRequest,
    can_transition,
)
from whiteflag.lifecycle.errors import (
    ConfigurationIncompleteError,
    DuplicateEntityError,
    DuplicateRequesterError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from whiteflag.lifecycle.intents import (
    ChannelPostKind,
    Intent,
    LogEvent,
    NotifyRequester,
    PostToChannel,
    RefreshReviewPost,
    TransitionResult,
)
from whiteflag.repositories.request_repo import RequestRepository
from whiteflag.settings.guild_config_registry import GuildConfigRegistry
from whiteflag.util.logger import get_logger

logger = get_logger("lifecycle")

DAY_SECONDS = 24 * HOUR_SECONDS


class ExpiryTimers(Protocol):
    def arm(self, request_id: str, expires_at: int) -> None: ...

    def disarm(self, request_id: str) -> bool: ...


def relative_time(timestamp: int | None) -> str:
    """Discord relative timestamp markup (``<t:…:R>``)."""
    return f"<t:{timestamp}:R>" if timestamp is not None else "N/A"


def _system_clock() -> int:
    return int(time.time())


def _new_request_id() -> str:
    return uuid.uuid4().hex


def _review_refresh(record: WhiteflagRequest, decided_by: str) -> List[Intent]:
    if record.review_channel_id is None or record.review_message_id is None:
        return []
    return [RefreshReviewPost(record.review_channel_id, record.review_message_id, record, decided_by)]


class WhiteflagLifecycle:
    """Validates and applies every request transition."""

    def __init__(
        self,
        repository: RequestRepository,
        registry: GuildConfigRegistry,
        settings: WhiteflagSettings,
        timers: ExpiryTimers | None = None,
        *,
        clock: Callable[[], int] = _system_clock,
        id_factory: Callable[[], str] = _new_request_id,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.settings = settings
        self.timers = timers
        self.clock = clock
        self.id_factory = id_factory

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _clean_entity_name(self, entity_name: str) -> str:
        name = " ".join(str(entity_name or "").split())
        if len(name) < self.settings.entity_name_min_length:
            raise ValidationError(
                f"Tribe name must be at least {self.settings.entity_name_min_length} characters."
            )
        if len(name) > self.settings.entity_name_max_length:
            raise ValidationError(
                f"Tribe name must be at most {self.settings.entity_name_max_length} characters."
            )
        return name

    def _resolve_duration(self, duration_hours: int | float | str | None) -> int:
        if not self.settings.custom_duration_enabled or duration_hours in (None, ""):
            return self.settings.duration_hours

        low, high = self.settings.min_duration_hours, self.settings.max_duration_hours
        try:
            hours = float(duration_hours)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ValidationError(f"Duration must be a number between {low} and {high} hours.")
        if hours != hours or not hours.is_integer() or not low <= hours <= high:
            raise ValidationError(f"Duration must be a whole number between {low} and {high} hours.")
        return int(hours)

    def _clean_metadata(self, metadata: RequestMetadata | None) -> RequestMetadata:
        metadata = metadata or RequestMetadata()
        notes = metadata.notes.strip()
        if len(notes) > self.settings.notes_max_length:
            raise ValidationError(f"Notes must be at most {self.settings.notes_max_length} characters.")
        return RequestMetadata(
            display_name=metadata.display_name.strip(),
            coordinates=metadata.coordinates.strip(),
            notes=notes,
        )

    def _load(self, request_id: str) -> WhiteflagRequest:
        record = self.repository.get(request_id)
        if record is None:
            raise NotFoundError(f"request {request_id} not found")
        return record

    @staticmethod
    def _require(record: WhiteflagRequest, target: RequestStatus, action: str) -> None:
        if not can_transition(record.status, target):
            raise InvalidStateError(record.id, record.status.value, action)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(
        self,
        guild_id: GuildID,
        entity_name: str,
        requester_id: UserID,
        tier: Tier | str,
        metadata: RequestMetadata | None = None,
        duration_hours: int | float | str | None = None,
    ) -> TransitionResult:
        """Create a ``pending`` request and route it to the review channel."""
        guild_id, requester_id = GuildID(guild_id), UserID(requester_id)
        name = self._clean_entity_name(entity_name)
        try:
            tier = Tier.parse(tier)
        except ValueError:
            raise ValidationError(f"Unknown tier. Choose one of: {', '.join(t.value for t in Tier)}.")
        hours = self._resolve_duration(duration_hours)
        metadata = self._clean_metadata(metadata)

        config = self.registry.get_config(guild_id)
        missing = config.missing_for_submission(tier)
        if missing:
            raise ConfigurationIncompleteError(missing)

        now = self.clock()
        if self.repository.find_pending_for_requester(guild_id, requester_id) is not None:
            raise DuplicateRequesterError()
        if self.repository.find_live_for_entity(guild_id, name, now) is not None:
            raise DuplicateEntityError(name)

        record = WhiteflagRequest(
            id=self.id_factory(),
            guild_id=guild_id,
            entity_name=name,
            tier=tier,
            requester_id=requester_id,
            status=RequestStatus.PENDING,
            requested_at=now,
            duration_hours=hours,
            metadata=metadata,
        )
        self.repository.add(record)
        logger.info(
            "[LIFECYCLE] Request %s submitted: %s (%s) by %s in guild %s",
            record.id, name, tier.value, requester_id, guild_id,
        )

        intents: List[Intent] = [
            PostToChannel(
                channel_id=config.review_channel_id,  # type: ignore[arg-type]
                kind=ChannelPostKind.REVIEW,
                message=f"🏳️ New whiteflag request: **{name}** ({tier.value}) for {hours}h",
                request=record,
                mention_role_id=config.role_for_tier(tier),
            ),
            LogEvent(
                guild_id=guild_id,
                message=f"📝 Whiteflag requested: **{name}** ({tier.value}) by <@{requester_id}> for {hours}h",
            ),
        ]
        return TransitionResult(request=record, intents=intents)

    def approve(self, request_id: str, approver_id: UserID) -> TransitionResult:
        """Turn a ``pending`` request into an active grant and arm its expiry."""
        approver_id = UserID(approver_id)
        record = self._load(request_id)
        self._require(record, RequestStatus.ACTIVE, "approve")

        now = self.clock()
        if self.repository.find_active_for_entity(record.guild_id, record.entity_name, now, exclude_id=record.id):
            raise DuplicateEntityError(record.entity_name)

        expires_at = now + record.duration_hours * HOUR_SECONDS
        approved = record.copy(
            status=RequestStatus.ACTIVE,
            approved_at=now,
            approved_by=approver_id,
            expires_at=expires_at,
        )
        self.repository.replace(approved)
        if self.timers is not None:
            self.timers.arm(approved.id, expires_at)
        logger.info("[LIFECYCLE] Request %s approved by %s, expires at %d", approved.id, approver_id, expires_at)

        return TransitionResult(
            request=approved,
            intents=[
                NotifyRequester(
                    user_id=approved.requester_id,
                    message=(
                        f"✅ Your whiteflag for **{approved.entity_name}** ({approved.tier.value}) was approved. "
                        f"It expires {relative_time(expires_at)}."
                    ),
                ),
                LogEvent(
                    guild_id=approved.guild_id,
                    message=(
                        f"✅ Whiteflag approved: **{approved.entity_name}** ({approved.tier.value}) "
                        f"by <@{approver_id}>, expires {relative_time(expires_at)}"
                    ),
                ),
            ],
        )

    def deny(self, request_id: str, denier_id: UserID, reason: str | None = None) -> TransitionResult:
        """Reject a ``pending`` request."""
        denier_id = UserID(denier_id)
        record = self._load(request_id)
        self._require(record, RequestStatus.DENIED, "deny")

        denied = record.copy(
            status=RequestStatus.DENIED,
            denied_at=self.clock(),
            denied_by=denier_id,
            end_reason=(reason or "").strip() or None,
        )
        self.repository.replace(denied)
        logger.info("[LIFECYCLE] Request %s denied by %s", denied.id, denier_id)

        suffix = f" Reason: {denied.end_reason}" if denied.end_reason else ""
        return TransitionResult(
            request=denied,
            intents=[
                NotifyRequester(
                    user_id=denied.requester_id,
                    message=f"❌ Your whiteflag request for **{denied.entity_name}** ({denied.tier.value}) was denied.{suffix}",
                ),
                LogEvent(
                    guild_id=denied.guild_id,
                    message=f"❌ Whiteflag denied: **{denied.entity_name}** ({denied.tier.value}) by <@{denier_id}>{suffix}",
                ),
            ],
        )

    def end_early(self, request_id: str, actor_id: UserID, reason: str | None = None) -> TransitionResult:
        """Lift an active grant before it expires and announce open season."""
        actor_id = UserID(actor_id)
        record = self._load(request_id)
        self._require(record, RequestStatus.ENDED_EARLY, "end")

        now = self.clock()
        if record.is_overdue_at(now):
            # Already ran out; the timer or the sweep will record the quiet expiry.
            raise InvalidStateError(record.id, RequestStatus.EXPIRED.value, "end")

        config = self.registry.get_config(record.guild_id)
        if config.announce_channel_id is None:
            raise ConfigurationIncompleteError(["announce channel"])

        reason = (reason or "").strip() or "No reason provided"
        ended = record.copy(
            status=RequestStatus.ENDED_EARLY,
            ended_early_at=now,
            ended_early_by=actor_id,
            end_reason=reason,
        )
        self.repository.replace(ended)
        # A timer firing in between is harmless: expire() re-reads the record.
        if self.timers is not None:
            self.timers.disarm(ended.id)
        logger.info("[LIFECYCLE] Grant %s ended early by %s: %s", ended.id, actor_id, reason)

        return TransitionResult(
            request=ended,
            intents=[
                PostToChannel(
                    channel_id=config.announce_channel_id,
                    kind=ChannelPostKind.OPEN_SEASON,
                    message=f"⚔️ OPEN SEASON: **{ended.entity_name}** ({ended.tier.value}) is no longer protected. Reason: {reason}",
                    request=ended,
                    mention_role_id=config.role_for_tier(ended.tier),
                ),
                LogEvent(
                    guild_id=ended.guild_id,
                    message=(
                        f"🛑 Whiteflag ended: **{ended.entity_name}** ({ended.tier.value}) "
                        f"by <@{actor_id}>. Reason: {reason}"
                    ),
                ),
                NotifyRequester(
                    user_id=ended.requester_id,
                    message=f"🛑 Your whiteflag for **{ended.entity_name}** was ended early by staff. Reason: {reason}",
                ),
                *_review_refresh(ended, f"<@{actor_id}>"),
            ],
        )

    def end_early_for_entity(
        self,
        guild_id: GuildID,
        entity_name: str,
        actor_id: UserID,
        reason: str | None = None,
    ) -> TransitionResult:
        """Resolve the live grant for ``entity_name`` and end it early."""
        grant = self.repository.find_active_for_entity(GuildID(guild_id), entity_name, self.clock())
        if grant is None:
            raise NotFoundError(f"no active whiteflag for {entity_name!r}")
        return self.end_early(grant.id, actor_id, reason)

    def attach_review_post(self, request_id: str, channel_id: ChannelID, message_id: int) -> WhiteflagRequest | None:
        """Remember where a request's review post was sent so closing it can redraw the post."""
        record = self.repository.get(request_id)
        if record is None:
            return None
        updated = record.copy(review_channel_id=ChannelID(channel_id), review_message_id=int(message_id))
        self.repository.replace(updated)
        return updated

    def expire(self, request_id: str) -> TransitionResult | None:
        """
        Expire a grant whose timer fired.

        The record is re-read first; if it is gone or no longer ``active``
        (ended early, or already expired by the sweep) this is a silent no-op.
        """
        record = self.repository.get(request_id)
        if record is None or record.status is not RequestStatus.ACTIVE:
            logger.debug(
                "[LIFECYCLE] Ignoring expiry for %s (status=%s)",
                request_id, record.status.value if record else "missing",
            )
            return None

        expired = record.copy(status=RequestStatus.EXPIRED)
        self.repository.replace(expired)
        if self.timers is not None:
            self.timers.disarm(expired.id)
        logger.info("[LIFECYCLE] Grant %s expired", expired.id)
        return TransitionResult(request=expired, intents=self._expiry_intents(expired))

    def sweep_expired(self) -> List[TransitionResult]:
        """
        Fallback sweep: expire every overdue grant a timer may have missed and
        purge closed records past the retention window.
        """
        now = self.clock()
        pruned = self.repository.prune_expired(now)
        results: List[TransitionResult] = []
        for expired in pruned.expired:
            if self.timers is not None:
                self.timers.disarm(expired.id)
            results.append(TransitionResult(request=expired, intents=self._expiry_intents(expired)))

        retention_days = self.settings.history_retention_days
        if retention_days:
            self.repository.purge_terminal(now - retention_days * DAY_SECONDS)
        return results

    @staticmethod
    def _expiry_intents(record: WhiteflagRequest) -> List[Intent]:
        # Expiry is quiet: no public announcement.
        return [
            LogEvent(
                guild_id=record.guild_id,
                message=f"⌛ Whiteflag expired: **{record.entity_name}** ({record.tier.value})",
            ),
            NotifyRequester(
                user_id=record.requester_id,
                message=f"⌛ Your whiteflag for **{record.entity_name}** ({record.tier.value}) has expired.",
            ),
            *_review_refresh(record, "Expired automatically"),
        ]
