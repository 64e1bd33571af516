"""Rejections raised by the whiteflag lifecycle.

Every error carries a ``user_message`` that the Discord layer sends back to
the member whose action was rejected.
"""
from __future__ import annotations

from typing import List, Sequence


class WhiteflagError(Exception):
    """Base class for every rejection the lifecycle can produce."""

    user_message: str = "❌ That action could not be completed."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class NotFoundError(WhiteflagError):
    user_message = "❌ That whiteflag request no longer exists."


class InvalidStateError(WhiteflagError):
    """A transition was attempted from a status that does not allow it."""

    def __init__(self, request_id: str, current: str, attempted: str) -> None:
        self.request_id = request_id
        self.current = current
        self.attempted = attempted
        self.user_message = f"❌ Cannot {attempted}: this request is already **{current.replace('_', ' ')}**."
        super().__init__(f"{attempted} not allowed for {request_id} in status {current}")


class DuplicateRequesterError(WhiteflagError):
    user_message = "❌ You already have a whiteflag request waiting for staff review."


class DuplicateEntityError(WhiteflagError):
    def __init__(self, entity_name: str) -> None:
        self.entity_name = entity_name
        self.user_message = f"❌ **{entity_name}** already has a pending or active whiteflag."
        super().__init__(f"entity {entity_name!r} already has a live request")


class ConfigurationIncompleteError(WhiteflagError):
    def __init__(self, missing: Sequence[str]) -> None:
        self.missing: List[str] = list(missing)
        self.user_message = (
            "❌ The bot is not set up yet (missing: "
            + ", ".join(self.missing)
            + "). Ask an admin to run /setup and /setup_roles."
        )
        super().__init__(f"missing settings: {', '.join(self.missing)}")


class ValidationError(WhiteflagError):
    def __init__(self, reason: str) -> None:
        self.user_message = f"❌ {reason}"
        super().__init__(reason)


class PermissionDeniedError(WhiteflagError):
    user_message = "❌ No permission."
