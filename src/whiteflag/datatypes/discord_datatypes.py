"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but are persisted as strings for JSON
parity. These wrappers keep guild, user, channel and role ids from being mixed
up as they flow through the lifecycle engine, and compare equal to the raw
int/str forms so lookups against persisted data stay simple.
"""

from __future__ import annotations

from typing import Any, TypeVar, Union

S = TypeVar("S", bound="Snowflake")


class Snowflake:
    """
    Base wrapper for a Discord snowflake id.

    Attributes:
        _value (str): The snowflake stored as a canonical decimal string.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> str(uid)
        '123456789012345678'
        >>> uid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls: type[S], value: int) -> S:
        return cls(value)

    @classmethod
    def from_object(cls: type[S], obj: Any) -> S:
        """Create an id from any Discord model exposing ``.id``."""
        return cls(obj.id)

    @classmethod
    def optional(cls: type[S], value: Union[str, int, "Snowflake", None]) -> S | None:
        """Like the constructor but maps ``None``/empty values to ``None``."""
        if value is None or value == "":
            return None
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Discord user snowflake (requesters, approvers, staff)."""

    __slots__ = ()


class GuildID(Snowflake):
    """Discord guild snowflake; the community scope for config and uniqueness."""

    __slots__ = ()


class ChannelID(Snowflake):
    """Discord channel snowflake (review, log and announce channels)."""

    __slots__ = ()


class RoleID(Snowflake):
    """Discord role snowflake (tier ping roles and staff roles)."""

    __slots__ = ()
