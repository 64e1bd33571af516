import asyncio

import pytest
from conftest import GUILD, START, FakeClock

from whiteflag.datatypes.discord_datatypes import GuildID, UserID
from whiteflag.datatypes.request_datatypes import RequestStatus, Tier, WhiteflagRequest
from whiteflag.scheduler.expiry_scheduler import ExpiryScheduler


def active_record(request_id: str, expires_at: int) -> WhiteflagRequest:
    return WhiteflagRequest(
        id=request_id,
        guild_id=GuildID(GUILD),
        entity_name=request_id,
        tier=Tier.TWENTY_FIVE_X,
        requester_id=UserID(1),
        status=RequestStatus.ACTIVE,
        requested_at=START - 100,
        duration_hours=168,
        approved_at=START - 100,
        approved_by=UserID(2),
        expires_at=expires_at,
    )


def test_arm_disarm_and_rearm():
    scheduler = ExpiryScheduler(clock=FakeClock())
    scheduler.arm("a", START + 10)
    scheduler.arm("a", START + 20)
    assert scheduler.armed_count() == 1
    assert scheduler.is_armed("a")

    assert scheduler.disarm("a") is True
    assert scheduler.disarm("a") is False
    assert not scheduler.is_armed("a")


def test_pop_due_skips_replaced_and_cancelled_jobs():
    clock = FakeClock()
    scheduler = ExpiryScheduler(clock=clock)
    scheduler.arm("a", START + 5)
    scheduler.arm("a", START + 50)  # replaces the first job
    scheduler.arm("b", START + 5)
    scheduler.disarm("b")

    due, delay = scheduler._pop_due()
    assert due == []
    assert delay == 50

    clock.advance(50)
    due, delay = scheduler._pop_due()
    assert due == ["a"]
    assert delay is None
    assert scheduler.armed_count() == 0


@pytest.mark.asyncio
async def test_runner_fires_due_job():
    fired: list[str] = []
    done = asyncio.Event()

    async def on_due(request_id: str) -> None:
        fired.append(request_id)
        done.set()

    clock = FakeClock()
    scheduler = ExpiryScheduler(on_due, clock=clock)
    scheduler.arm("a", START + 60)
    clock.advance(60)
    scheduler.start()

    await asyncio.wait_for(done.wait(), timeout=2)
    assert fired == ["a"]
    await scheduler.shutdown()
    assert scheduler.runner_task is None


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_runner():
    calls: list[str] = []
    done = asyncio.Event()

    async def on_due(request_id: str) -> None:
        calls.append(request_id)
        if request_id == "bad":
            raise RuntimeError("boom")
        done.set()

    scheduler = ExpiryScheduler(on_due, clock=FakeClock())
    scheduler.arm("bad", START - 2)
    scheduler.arm("good", START - 1)
    scheduler.start()

    await asyncio.wait_for(done.wait(), timeout=2)
    assert calls == ["bad", "good"]
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_reconcile_expires_overdue_and_arms_the_rest(repository):
    repository.add(active_record("overdue", START - 1))
    repository.add(active_record("future", START + 3600))

    fired: list[str] = []

    async def on_due(request_id: str) -> None:
        fired.append(request_id)

    scheduler = ExpiryScheduler(on_due, clock=FakeClock())
    report = await scheduler.reconcile_on_startup(repository)

    assert report.expired_ids == ["overdue"]
    assert report.armed_ids == ["future"]
    assert fired == ["overdue"]
    assert scheduler.is_armed("future")
    assert not scheduler.is_armed("overdue")
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_shutdown_is_idempotent():
    scheduler = ExpiryScheduler(clock=FakeClock())
    scheduler.arm("a", START + 10)
    scheduler.start()
    await scheduler.shutdown()
    await scheduler.shutdown()
    assert scheduler.armed_count() == 0
