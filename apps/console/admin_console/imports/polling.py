"""Job list reconciliation loop.

The poller keeps the N most recent jobs fresh by re-fetching the whole
list on a timer. Every successful fetch replaces the list through
``_apply_snapshot`` and re-arms the timer: 2s while any job is pending or
processing, 5s otherwise. Failed ticks keep the current schedule.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from admin_console.core.config import settings
from admin_console.core.errors import ConsoleError, record_error
from admin_console.core.metrics import emit_poll
from admin_console.imports.client import ImportApiClient
from admin_console.imports.schemas import ImportJob, JobList, JobStatus

logger = logging.getLogger(__name__)


class JobPoller:
    """Owns the job list, the current-job reference and the refresh timer."""

    def __init__(
        self,
        client: ImportApiClient,
        limit: int | None = None,
        active_interval: float | None = None,
        idle_interval: float | None = None,
        stale_after: int | None = None,
        on_update: Callable[["JobPoller"], None] | None = None,
    ):
        self.client = client
        self.limit = limit if limit is not None else settings.job_list_limit
        self.active_interval = (
            active_interval if active_interval is not None
            else settings.active_poll_interval_seconds
        )
        self.idle_interval = (
            idle_interval if idle_interval is not None
            else settings.idle_poll_interval_seconds
        )
        self.stale_after = (
            stale_after if stale_after is not None else settings.stale_after_failures
        )
        self.on_update = on_update

        self.jobs: list[ImportJob] = []
        self.total = 0
        self.tracked_job_id: Optional[str] = None
        self.current_job: Optional[ImportJob] = None
        self.last_error: Optional[ConsoleError] = None
        self.consecutive_failures = 0
        self.scheduled_delays: list[float] = []

        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self._closed = False
        self._issued_seq = 0
        self._landed_seq = 0

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def has_active_job(self) -> bool:
        return any(job.is_active for job in self.jobs)

    @property
    def processing_count(self) -> int:
        return sum(1 for job in self.jobs if job.status == JobStatus.PROCESSING)

    @property
    def current_interval(self) -> float:
        return self.active_interval if self.has_active_job else self.idle_interval

    @property
    def is_stale(self) -> bool:
        return self.consecutive_failures >= self.stale_after

    @property
    def is_running(self) -> bool:
        return self._running and not self._closed

    @property
    def last_scheduled_delay(self) -> Optional[float]:
        return self.scheduled_delays[-1] if self.scheduled_delays else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Fetch immediately and keep polling until ``stop``."""
        if self._closed:
            raise RuntimeError("JobPoller has been stopped")
        if self._running:
            return
        self._running = True
        logger.info(f"Job poller started (limit={self.limit})")
        await self._poll(from_timer=True)

    def stop(self) -> None:
        """Clear the timer. In-flight fetches finish but their results are dropped."""
        if self._closed:
            return
        self._closed = True
        self._running = False
        self._cancel_timer()
        logger.info("Job poller stopped")

    async def wait_idle(self) -> None:
        """Wait for fetches already in flight to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def track(self, job_id: Optional[str]) -> None:
        """Follow ``job_id`` as the current job."""
        self.tracked_job_id = job_id
        self.current_job = self._find(job_id)

    # ------------------------------------------------------------------
    # Out-of-band fetches
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """Fetch the list now, outside the timer.

        Returns:
            True when the list was replaced
        """
        if self._closed:
            return False
        return await self._poll(from_timer=False)

    def notify_change(self) -> None:
        """Push hook: something changed remotely, so fetch soon.

        Push events carry no payload the poller trusts; the list fetch is
        the only source of truth.
        """
        if self._closed:
            return
        self._spawn(self.refresh())

    def schedule_refresh(self, delay: float) -> None:
        """Run one out-of-band fetch after ``delay`` seconds."""
        if self._closed:
            return
        self._spawn(self._delayed_refresh(delay))

    async def _delayed_refresh(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.refresh()

    # ------------------------------------------------------------------
    # Fetch and apply
    # ------------------------------------------------------------------

    async def _poll(self, from_timer: bool) -> bool:
        self._issued_seq += 1
        seq = self._issued_seq
        started = time.perf_counter()

        try:
            result = await self.client.list_jobs(limit=self.limit)
        except ConsoleError as e:
            duration_ms = (time.perf_counter() - started) * 1000
            emit_poll(success=False, duration_ms=duration_ms, has_active_job=self.has_active_job)
            if self._closed:
                return False
            self._record_failure(e)
            if from_timer:
                self._arm(self.current_interval)
            return False

        duration_ms = (time.perf_counter() - started) * 1000
        if self._closed:
            logger.debug(f"Discarding job list #{seq} received after stop")
            return False

        if seq < self._landed_seq:
            logger.debug(
                f"Job list #{seq} landed after #{self._landed_seq}; applying anyway",
                extra={"seq": seq, "landed_seq": self._landed_seq},
            )
        self._landed_seq = max(self._landed_seq, seq)

        self._apply_snapshot(result)
        emit_poll(
            success=True,
            duration_ms=duration_ms,
            job_count=len(result.jobs),
            has_active_job=self.has_active_job,
        )
        await self._refresh_tracked_job()
        return True

    def _apply_snapshot(self, result: JobList) -> None:
        """Replace the list, refresh the current job and re-arm the timer."""
        previous = {job.id: job for job in self.jobs}
        for job in result.jobs:
            self._check_step_order(previous.get(job.id), job)

        self.jobs = list(result.jobs)
        self.total = result.total

        if self.consecutive_failures:
            if self.is_stale:
                logger.info("Job list fetch recovered; data is fresh again")
            self.consecutive_failures = 0
            self.last_error = None

        if self.tracked_job_id is not None:
            found = self._find(self.tracked_job_id)
            if found is not None:
                self.current_job = found

        if self._running:
            self._arm(self.current_interval)

        if self.on_update is not None:
            self.on_update(self)

    async def _refresh_tracked_job(self) -> None:
        """Fetch the tracked job by id when it fell out of the recent list."""
        job_id = self.tracked_job_id
        if job_id is None or self._find(job_id) is not None:
            return
        if self.current_job is not None and self.current_job.is_terminal:
            return

        try:
            job = await self.client.get_job(job_id)
        except ConsoleError as e:
            record_error(e, "refresh_tracked_job")
            return

        if self._closed or self.tracked_job_id != job_id:
            return
        self._check_step_order(self.current_job, job)
        self.current_job = job
        if self.on_update is not None:
            self.on_update(self)

    def _record_failure(self, error: ConsoleError) -> None:
        self.consecutive_failures += 1
        self.last_error = error
        record_error(error, "poll_jobs")
        if self.consecutive_failures == self.stale_after:
            logger.warning(
                f"Job list is stale after {self.consecutive_failures} failed polls",
                extra={"consecutive_failures": self.consecutive_failures},
            )

    @staticmethod
    def _check_step_order(old: Optional[ImportJob], new: ImportJob) -> None:
        if old is None or old.id != new.id:
            return
        if old.status != JobStatus.PROCESSING or new.status != JobStatus.PROCESSING:
            return
        if old.step is None or new.step is None:
            return
        if new.step.position < old.step.position:
            logger.warning(
                f"Schema drift: job {new.id} step went back from "
                f"{old.step.value} to {new.step.value}",
                extra={"job_id": new.id},
            )

    def _find(self, job_id: Optional[str]) -> Optional[ImportJob]:
        if job_id is None:
            return None
        return next((job for job in self.jobs if job.id == job_id), None)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _arm(self, delay: float) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)
        self.scheduled_delays.append(delay)
        logger.debug(f"Next job poll in {delay}s")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._spawn(self._poll(from_timer=True))

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
