"""
Decoded form of the staff action buttons attached to review posts.

Button custom ids look like ``whiteflag:approve:<request id>``. They are
decoded exactly once, at the Discord boundary, into a :class:`ReviewAction`;
everything past that point works with the enum, never with the string.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

CUSTOM_ID_PREFIX = "whiteflag"
TIER_BUTTON_PREFIX = "whiteflag_tier"


class ReviewActionKind(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    END_EARLY = "end"


@dataclass(frozen=True)
class ReviewAction:
    """A staff decision aimed at one request."""

    kind: ReviewActionKind
    request_id: str

    def to_custom_id(self) -> str:
        return f"{CUSTOM_ID_PREFIX}:{self.kind.value}:{self.request_id}"

    @classmethod
    def from_custom_id(cls, custom_id: str | None) -> "ReviewAction | None":
        """Decode a component custom id; returns None for ids that are not ours."""
        if not custom_id:
            return None
        parts = custom_id.split(":")
        if len(parts) != 3 or parts[0] != CUSTOM_ID_PREFIX or not parts[2]:
            return None
        try:
            kind = ReviewActionKind(parts[1])
        except ValueError:
            return None
        return cls(kind=kind, request_id=parts[2])
