"""
Whiteflag request records and their lifecycle vocabulary.

A :class:`WhiteflagRequest` is one attempt to obtain protection for an entity
(an in-game tribe). It is created ``pending``, mutated in place through at
most one approval or denial, and an approved grant ends either by expiry or
by a manual early end. ``to_dict``/``from_dict`` define the persisted JSON
shape; key names are camelCase to match the on-disk collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping

from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, UserID

HOUR_SECONDS = 60 * 60


class RequestStatus(str, Enum):
    """Lifecycle status of a request."""

    PENDING = "pending"
    ACTIVE = "active"
    DENIED = "denied"
    EXPIRED = "expired"
    ENDED_EARLY = "ended_early"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[RequestStatus] = frozenset(
    {RequestStatus.DENIED, RequestStatus.EXPIRED, RequestStatus.ENDED_EARLY}
)

# Directed transition graph; terminal statuses have no outgoing edges.
ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ACTIVE, RequestStatus.DENIED}),
    RequestStatus.ACTIVE: frozenset({RequestStatus.EXPIRED, RequestStatus.ENDED_EARLY}),
    RequestStatus.DENIED: frozenset(),
    RequestStatus.EXPIRED: frozenset(),
    RequestStatus.ENDED_EARLY: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class Tier(str, Enum):
    """PvP cluster a request belongs to; selects the role that gets pinged."""

    HUNDRED_X = "100x"
    TWENTY_FIVE_X = "25x"

    @classmethod
    def parse(cls, value: "str | Tier") -> "Tier":
        """Resolve a tier from its value (``"100x"``) or member name, case-insensitively."""
        if isinstance(value, Tier):
            return value
        text = str(value).strip().lower()
        for tier in cls:
            if tier.value == text or tier.name.lower() == text:
                return tier
        raise ValueError(f"Unknown tier: {value!r}")


def normalize_entity_name(name: str) -> str:
    """Comparison key for entity names: case-folded with all whitespace removed.

    ``"Alpha  Wolves"``, ``"alphawolves"`` and ``" ALPHA WOLVES "`` share a key.
    """
    return "".join(str(name).split()).casefold()


@dataclass(frozen=True)
class RequestMetadata:
    """Free-text fields carried through the lifecycle untouched."""

    display_name: str = ""
    coordinates: str = ""
    notes: str = ""


@dataclass
class WhiteflagRequest:
    """
    A single protection request and, once approved, the grant it became.

    Attributes:
        id: Opaque unique token assigned at creation.
        guild_id: Community the request belongs to.
        entity_name: Tribe name as typed by the requester (display casing kept).
        tier: Cluster the request targets.
        requester_id: Member that submitted the request.
        status: Current lifecycle status.
        requested_at: Creation time, unix seconds.
        duration_hours: Grant length applied at approval.
        approved_at / approved_by: Set only by approval.
        expires_at: ``approved_at + duration``; set only by approval.
        denied_at / denied_by: Set only by denial.
        ended_early_at / ended_early_by / end_reason: Set only by a manual end.
        metadata: Display name, coordinates and notes.
        review_channel_id / review_message_id: Where the staff review post
            lives, once it has been sent.
    """

    id: str
    guild_id: GuildID
    entity_name: str
    tier: Tier
    requester_id: UserID
    status: RequestStatus
    requested_at: int
    duration_hours: int
    approved_at: int | None = None
    approved_by: UserID | None = None
    expires_at: int | None = None
    denied_at: int | None = None
    denied_by: UserID | None = None
    ended_early_at: int | None = None
    ended_early_by: UserID | None = None
    end_reason: str | None = None
    metadata: RequestMetadata = field(default_factory=RequestMetadata)
    review_channel_id: ChannelID | None = None
    review_message_id: int | None = None

    @property
    def entity_key(self) -> str:
        return normalize_entity_name(self.entity_name)

    def is_active_at(self, now: int) -> bool:
        """True while this record is an approved grant that has not run out."""
        return (
            self.status is RequestStatus.ACTIVE
            and self.expires_at is not None
            and self.expires_at > now
        )

    def is_overdue_at(self, now: int) -> bool:
        """True for an ``active`` record whose expiry instant has passed."""
        return (
            self.status is RequestStatus.ACTIVE
            and self.expires_at is not None
            and self.expires_at <= now
        )

    def closed_at(self) -> int | None:
        """Timestamp at which the record reached its terminal status, if any."""
        if self.status is RequestStatus.DENIED:
            return self.denied_at
        if self.status is RequestStatus.ENDED_EARLY:
            return self.ended_early_at
        if self.status is RequestStatus.EXPIRED:
            return self.expires_at
        return None

    def copy(self, **changes: Any) -> "WhiteflagRequest":
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "guildId": str(self.guild_id),
            "entityName": self.entity_name,
            "tier": self.tier.value,
            "requesterId": str(self.requester_id),
            "status": self.status.value,
            "requestedAt": self.requested_at,
            "durationHours": self.duration_hours,
            "approvedAt": self.approved_at,
            "approvedBy": _id_or_none(self.approved_by),
            "expiresAt": self.expires_at,
            "deniedAt": self.denied_at,
            "deniedBy": _id_or_none(self.denied_by),
            "endedEarlyAt": self.ended_early_at,
            "endedEarlyBy": _id_or_none(self.ended_early_by),
            "endReason": self.end_reason,
            "displayName": self.metadata.display_name,
            "coordinates": self.metadata.coordinates,
            "notes": self.metadata.notes,
            "reviewChannelId": _id_or_none(self.review_channel_id),
            "reviewMessageId": _id_or_none(self.review_message_id),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WhiteflagRequest":
        """Build a record from its persisted form.

        Raises ``KeyError``/``ValueError`` for rows missing required fields;
        the repository skips such rows.
        """
        return cls(
            id=str(data["id"]),
            guild_id=GuildID(data["guildId"]),
            entity_name=str(data["entityName"]),
            tier=Tier.parse(data["tier"]),
            requester_id=UserID(data["requesterId"]),
            status=RequestStatus(data["status"]),
            requested_at=int(data["requestedAt"]),
            duration_hours=int(data.get("durationHours") or 168),
            approved_at=_int_or_none(data.get("approvedAt")),
            approved_by=UserID.optional(data.get("approvedBy")),
            expires_at=_int_or_none(data.get("expiresAt")),
            denied_at=_int_or_none(data.get("deniedAt")),
            denied_by=UserID.optional(data.get("deniedBy")),
            ended_early_at=_int_or_none(data.get("endedEarlyAt")),
            ended_early_by=UserID.optional(data.get("endedEarlyBy")),
            end_reason=data.get("endReason"),
            metadata=RequestMetadata(
                display_name=str(data.get("displayName") or ""),
                coordinates=str(data.get("coordinates") or ""),
                notes=str(data.get("notes") or ""),
            ),
            review_channel_id=ChannelID.optional(data.get("reviewChannelId")),
            review_message_id=_int_or_none(data.get("reviewMessageId")),
        )


def _id_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)
