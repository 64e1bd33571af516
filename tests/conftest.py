"""
Pytest configuration and fixtures for whiteflag tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from whiteflag.configuration.app_configuration import WhiteflagSettings  # noqa: E402
from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, RoleID  # noqa: E402
from whiteflag.datatypes.request_datatypes import Tier  # noqa: E402
from whiteflag.lifecycle.state_machine import WhiteflagLifecycle  # noqa: E402
from whiteflag.repositories.request_repo import RequestRepository  # noqa: E402
from whiteflag.scheduler.expiry_scheduler import ExpiryScheduler  # noqa: E402
from whiteflag.services.whiteflag_service import WhiteflagService  # noqa: E402
from whiteflag.settings.guild_config_registry import GuildConfigRegistry  # noqa: E402
from whiteflag.storage.json_store import JsonStore  # noqa: E402

GUILD = GuildID(1000)
REVIEW_CHANNEL = ChannelID(2001)
LOG_CHANNEL = ChannelID(2002)
ANNOUNCE_CHANNEL = ChannelID(2003)
ROLE_100X = RoleID(3001)
ROLE_25X = RoleID(3002)
STAFF_ROLE = RoleID(3003)

START = 1_700_000_000


class FakeClock:
    """Manually advanced unix-seconds clock."""

    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingTimers:
    """ExpiryTimers stand-in that remembers what is armed."""

    def __init__(self) -> None:
        self.armed: dict[str, int] = {}
        self.disarmed: list[str] = []

    def arm(self, request_id: str, expires_at: int) -> None:
        self.armed[request_id] = expires_at

    def disarm(self, request_id: str) -> bool:
        self.disarmed.append(request_id)
        return self.armed.pop(request_id, None) is not None


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


@pytest.fixture
def registry(store):
    return GuildConfigRegistry(store)


@pytest.fixture
def configured_registry(registry):
    registry.set_config(
        GUILD,
        review_channel_id=REVIEW_CHANNEL,
        log_channel_id=LOG_CHANNEL,
        announce_channel_id=ANNOUNCE_CHANNEL,
        staff_role_ids=[STAFF_ROLE],
        tier_role_ids={Tier.HUNDRED_X: ROLE_100X, Tier.TWENTY_FIVE_X: ROLE_25X},
    )
    return registry


@pytest.fixture
def repository(store):
    return RequestRepository(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return RecordingTimers()


@pytest.fixture
def settings():
    return WhiteflagSettings({"duration_hours": 168, "history_retention_days": 30})


@pytest.fixture
def lifecycle(repository, configured_registry, settings, timers, clock):
    counter = iter(range(1, 10_000))
    return WhiteflagLifecycle(
        repository,
        configured_registry,
        settings,
        timers,
        clock=clock,
        id_factory=lambda: f"req{next(counter)}",
    )


@pytest.fixture
def dispatcher():
    fake = AsyncMock()
    fake.dispatch.return_value = []
    return fake


@pytest.fixture
def service(lifecycle, clock, dispatcher):
    return WhiteflagService(lifecycle, ExpiryScheduler(clock=clock), dispatcher)
