"""
In-process expiry timers for active whiteflag grants.

One wake-up per grant is kept in a min-heap keyed by wall-clock expiry time.
``arm`` and ``disarm`` are synchronous so the lifecycle can call them inside
its reload-mutate-persist bracket without yielding to the event loop. A
single background task sleeps until the earliest deadline and then hands the
request id to ``on_due``; the lifecycle re-validates the record there, so a
stale wake-up is harmless.

Timers live only in memory. ``reconcile_on_startup`` rebuilds them from the
persisted records every time the process starts.
"""
from __future__ import annotations

import asyncio
import heapq
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

from whiteflag.datatypes.request_datatypes import RequestStatus
from whiteflag.repositories.request_repo import RequestRepository
from whiteflag.util.logger import get_logger

logger = get_logger("expiry_scheduler")

DueCallback = Callable[[str], Awaitable[None]]

# Upper bound on a single sleep so wall-clock jumps are noticed.
MAX_SLEEP_SECONDS = 300.0


@dataclass
class ReconcileReport:
    """What ``reconcile_on_startup`` did."""

    expired_ids: List[str] = field(default_factory=list)
    armed_ids: List[str] = field(default_factory=list)


class ExpiryScheduler:
    """
    Scheduler that fires ``on_due(request_id)`` when a grant's expiry arrives.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, request_id) tuples.
        pending (Dict): Maps request id to its live job id.
        cancelled_ids (set): Job ids that were replaced or disarmed.
        counter (int): Monotonically increasing job id counter.
        runner_task (asyncio.Task | None): Background task processing the heap.
    """

    def __init__(
        self,
        on_due: DueCallback | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.on_due = on_due
        self.clock = clock
        self.heap: list[tuple[float, int, str]] = []
        self.pending: Dict[str, int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self._wakeup: asyncio.Event = asyncio.Event()

    # ------------------------------------------------------------------
    # Arming
    # ------------------------------------------------------------------

    def arm(self, request_id: str, expires_at: float) -> None:
        """Schedule a single wake-up at ``expires_at``, replacing any earlier one."""
        previous = self.pending.get(request_id)
        if previous is not None:
            self.cancelled_ids.add(previous)

        self.counter += 1
        heapq.heappush(self.heap, (float(expires_at), self.counter, request_id))
        self.pending[request_id] = self.counter
        self._wakeup.set()
        logger.debug("[EXPIRY SCHEDULER] Armed %s for unix=%d", request_id, int(expires_at))

    def disarm(self, request_id: str) -> bool:
        """Cancel the wake-up for ``request_id``. Returns False if none was armed."""
        job_id = self.pending.pop(request_id, None)
        if job_id is None:
            return False
        self.cancelled_ids.add(job_id)
        self._wakeup.set()
        logger.debug("[EXPIRY SCHEDULER] Disarmed %s", request_id)
        return True

    def is_armed(self, request_id: str) -> bool:
        return request_id in self.pending

    def armed_count(self) -> int:
        return len(self.pending)

    # ------------------------------------------------------------------
    # Runner lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Create the background runner task if it is not already active."""
        if self.runner_task is None or self.runner_task.done():
            loop = asyncio.get_running_loop()
            self.runner_task = loop.create_task(self.run(), name="whiteflag-expiry-scheduler")

    async def shutdown(self) -> None:
        """Stop the runner and drop every armed timer. Safe to call repeatedly."""
        task, self.runner_task = self.runner_task, None
        self.heap.clear()
        self.pending.clear()
        self.cancelled_ids.clear()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def reconcile_on_startup(self, repository: RequestRepository) -> ReconcileReport:
        """
        Rebuild timers from persisted state.

        Active grants whose expiry already passed while the bot was offline are
        expired immediately through ``on_due``; the rest are armed for their
        remaining time. Starts the runner.
        """
        report = ReconcileReport()
        now = self.clock()
        for record in repository.list_by_status(None, RequestStatus.ACTIVE):
            if record.expires_at is None:
                logger.warning("[EXPIRY SCHEDULER] Active grant %s has no expiry; skipping", record.id)
                continue
            if record.expires_at <= now:
                report.expired_ids.append(record.id)
            else:
                self.arm(record.id, record.expires_at)
                report.armed_ids.append(record.id)

        for request_id in report.expired_ids:
            await self._fire(request_id)

        self.start()
        logger.info(
            "[EXPIRY SCHEDULER] Reconciled: %d expired while offline, %d armed",
            len(report.expired_ids), len(report.armed_ids),
        )
        return report

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def _pop_due(self) -> tuple[list[str], float | None]:
        """Pop every due job; return their ids and the delay until the next one."""
        due: list[str] = []
        now = self.clock()
        while self.heap:
            run_at, job_id, request_id = self.heap[0]
            if job_id in self.cancelled_ids:
                heapq.heappop(self.heap)
                self.cancelled_ids.discard(job_id)
                continue
            if run_at > now:
                return due, run_at - now
            heapq.heappop(self.heap)
            if self.pending.get(request_id) == job_id:
                del self.pending[request_id]
            due.append(request_id)
        return due, None

    async def _fire(self, request_id: str) -> None:
        if self.on_due is None:
            logger.warning("[EXPIRY SCHEDULER] No handler registered; dropping expiry for %s", request_id)
            return
        try:
            await self.on_due(request_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[EXPIRY SCHEDULER] Failed to expire %s: %s", request_id, exc, exc_info=True)

    async def run(self) -> None:
        """Sleep until the earliest deadline, fire due jobs, repeat until cancelled."""
        while True:
            self._wakeup.clear()
            due, delay = self._pop_due()

            for request_id in due:
                await self._fire(request_id)
            if due:
                continue

            timeout = MAX_SLEEP_SECONDS if delay is None else min(delay, MAX_SLEEP_SECONDS)
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
