"""
Side-effect intents produced by lifecycle transitions.

The lifecycle never talks to Discord. Each transition returns the messages
that should go out as plain data, and the caller hands them to the
:class:`~whiteflag.services.intent_dispatcher.IntentDispatcher` after the
state change is already on disk.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Union

from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from whiteflag.datatypes.request_datatypes import WhiteflagRequest


class ChannelPostKind(str, Enum):
    REVIEW = "review"           # new request with approve/deny controls
    OPEN_SEASON = "open_season"  # public notice that protection was lifted


@dataclass(frozen=True)
class NotifyRequester:
    user_id: UserID
    message: str


@dataclass(frozen=True)
class PostToChannel:
    channel_id: ChannelID
    kind: ChannelPostKind
    message: str
    request: WhiteflagRequest
    mention_role_id: RoleID | None = None


@dataclass(frozen=True)
class LogEvent:
    guild_id: GuildID
    message: str


@dataclass(frozen=True)
class RefreshReviewPost:
    """Redraw the staff review post of a closed grant and remove its controls."""

    channel_id: ChannelID
    message_id: int
    request: WhiteflagRequest
    decided_by: str


Intent = Union[NotifyRequester, PostToChannel, LogEvent, RefreshReviewPost]


@dataclass
class TransitionResult:
    """The record as persisted after a transition plus the intents it produced."""

    request: WhiteflagRequest
    intents: List[Intent] = field(default_factory=list)

    def of_type(self, intent_type: type) -> List[Intent]:
        return [intent for intent in self.intents if isinstance(intent, intent_type)]
