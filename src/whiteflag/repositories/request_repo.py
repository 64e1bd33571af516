"""
Persistent storage and queries for whiteflag requests.

Every method reloads the ``whiteflags`` collection from the durable store
before acting; there is no long-lived cache, so the expiry scheduler and the
interaction handlers always see the same state. Entity names are matched on
their normalized key (case- and whitespace-insensitive).

Timestamps are INTEGER unix seconds so comparisons need no parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.request_datatypes import (
    RequestStatus,
    WhiteflagRequest,
    normalize_entity_name,
)
from whiteflag.storage.json_store import REQUESTS_KEY, JsonStore
from whiteflag.util.logger import get_logger

logger = get_logger("request_repo")


@dataclass
class PruneResult:
    """Outcome of a passive-expiry sweep."""

    kept: List[WhiteflagRequest] = field(default_factory=list)
    expired: List[WhiteflagRequest] = field(default_factory=list)


class RequestRepository:
    """CRUD and lifecycle queries over the request collection."""

    def __init__(self, store: JsonStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Raw collection access
    # ------------------------------------------------------------------

    def _parse_rows(self) -> Tuple[List[WhiteflagRequest], List[Any]]:
        rows: List[Any] = self.store.load(REQUESTS_KEY, [])
        records: List[WhiteflagRequest] = []
        malformed: List[Any] = []
        for row in rows:
            try:
                records.append(WhiteflagRequest.from_dict(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("[REQUEST REPO] Skipping malformed record %r: %s", row, exc)
                malformed.append(row)
        return records, malformed

    def load_all(self) -> List[WhiteflagRequest]:
        """Reload every record, skipping rows that cannot be parsed."""
        return self._parse_rows()[0]

    def save_all(self, records: List[WhiteflagRequest]) -> None:
        """Persist ``records``; rows that never parsed are written back untouched."""
        _, malformed = self._parse_rows()
        self.store.save(REQUESTS_KEY, [record.to_dict() for record in records] + malformed)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, record: WhiteflagRequest) -> None:
        """Append a new record. Raises ValueError if the id is already taken."""
        records = self.load_all()
        if any(existing.id == record.id for existing in records):
            raise ValueError(f"request id {record.id} already exists")
        records.append(record)
        self.save_all(records)

    def replace(self, record: WhiteflagRequest) -> None:
        """Overwrite the stored record with the same id. Raises KeyError if absent."""
        records = self.load_all()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                self.save_all(records)
                return
        raise KeyError(record.id)

    def prune_expired(self, now: int) -> PruneResult:
        """
        Move every ``active`` record whose ``expires_at`` has passed to ``expired``.

        This is the sole detector of passive expiry. Only changed records are
        rewritten, and a second call with the same ``now`` finds nothing.

        Returns:
            PruneResult whose ``expired`` holds the records just transitioned
            (already carrying their new status) and ``kept`` the rest.
        """
        result = PruneResult()
        records = self.load_all()
        updated: List[WhiteflagRequest] = []
        for record in records:
            if record.is_overdue_at(now):
                expired = record.copy(status=RequestStatus.EXPIRED)
                result.expired.append(expired)
                updated.append(expired)
            else:
                result.kept.append(record)
                updated.append(record)

        if result.expired:
            self.save_all(updated)
            logger.info("[REQUEST REPO] Pruned %d expired grant(s)", len(result.expired))
        return result

    def purge_terminal(self, older_than: int) -> int:
        """Physically delete terminal records closed before ``older_than``."""
        records = self.load_all()
        kept = [
            record for record in records
            if not (record.status.is_terminal and (record.closed_at() or 0) < older_than)
        ]
        removed = len(records) - len(kept)
        if removed:
            self.save_all(kept)
            logger.info("[REQUEST REPO] Purged %d closed record(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> WhiteflagRequest | None:
        for record in self.load_all():
            if record.id == request_id:
                return record
        return None

    def find_pending_for_requester(self, guild_id: GuildID, requester_id: UserID) -> WhiteflagRequest | None:
        for record in self.load_all():
            if (
                record.guild_id == guild_id
                and record.requester_id == requester_id
                and record.status is RequestStatus.PENDING
            ):
                return record
        return None

    def find_active_for_entity(
        self,
        guild_id: GuildID,
        entity_name: str,
        now: int,
        exclude_id: str | None = None,
    ) -> WhiteflagRequest | None:
        """Return the unexpired ``active`` grant for an entity, if any."""
        key = normalize_entity_name(entity_name)
        for record in self.load_all():
            if (
                record.id != exclude_id
                and record.guild_id == guild_id
                and record.entity_key == key
                and record.is_active_at(now)
            ):
                return record
        return None

    def find_live_for_entity(
        self,
        guild_id: GuildID,
        entity_name: str,
        now: int,
        exclude_id: str | None = None,
    ) -> WhiteflagRequest | None:
        """Return a ``pending`` request or unexpired grant for an entity, if any."""
        key = normalize_entity_name(entity_name)
        for record in self.load_all():
            if record.id == exclude_id or record.guild_id != guild_id or record.entity_key != key:
                continue
            if record.status is RequestStatus.PENDING or record.is_active_at(now):
                return record
        return None

    def list_by_status(
        self,
        guild_id: GuildID | None,
        status: RequestStatus,
        now: int | None = None,
    ) -> List[WhiteflagRequest]:
        """
        List records with ``status``, for one guild or all guilds (``None``).

        Active grants are ordered soonest-expiring first and, when ``now`` is
        given, grants that already ran out are left out. Everything else is
        ordered earliest-requested first.
        """
        records = [
            record for record in self.load_all()
            if record.status is status and (guild_id is None or record.guild_id == guild_id)
        ]
        if status is RequestStatus.ACTIVE:
            if now is not None:
                records = [record for record in records if record.is_active_at(now)]
            records.sort(key=lambda r: (r.expires_at or 0, r.requested_at))
        else:
            records.sort(key=lambda r: r.requested_at)
        return records

    def count_by_status(self) -> Dict[RequestStatus, int]:
        counts = {status: 0 for status in RequestStatus}
        for record in self.load_all():
            counts[record.status] += 1
        return counts
