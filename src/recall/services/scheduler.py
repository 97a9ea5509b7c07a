"""One-shot reminder jobs on APScheduler, one job per reminder id."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from recall.models import Reminder
from recall.timeutil import now_utc, parse_datetime

logger = logging.getLogger(__name__)

FireCallback = Callable[[int], Awaitable[object]]

JOB_PREFIX = "reminder:"


def job_id(reminder_id: int) -> str:
    return f"{JOB_PREFIX}{reminder_id}"


class TriggerScheduler:
    """Owns the APScheduler job that fires each reminder.

    Jobs live in this process only; two servers on one database both fire.
    Cancelling a reminder whose fire is already running does not stop it.
    """

    def __init__(
        self,
        fire: FireCallback | None = None,
        *,
        jobs: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] = now_utc,
        immediate_delay: float = 1.0,
    ) -> None:
        self._fire = fire
        self.jobs = jobs or AsyncIOScheduler(timezone=timezone.utc)
        self._clock = clock
        self.immediate_delay = immediate_delay
        self._firing: Counter[int] = Counter()
        self._tasks: set[asyncio.Task] = set()

    def bind(self, fire: FireCallback) -> None:
        self._fire = fire

    def start(self) -> None:
        if not self.jobs.running:
            self.jobs.start()

    def shutdown(self) -> None:
        if self.jobs.running:
            self.jobs.shutdown(wait=False)

    def _reminder_jobs(self):
        return [j for j in self.jobs.get_jobs() if j.id.startswith(JOB_PREFIX)]

    @property
    def pending_count(self) -> int:
        return len(self._reminder_jobs())

    def is_scheduled(self, reminder_id: int) -> bool:
        return self.jobs.get_job(job_id(reminder_id)) is not None

    def is_firing(self, reminder_id: int) -> bool:
        return self._firing[reminder_id] > 0

    def scheduled_for(self, reminder_id: int) -> datetime | None:
        """The trigger time the pending job was armed for."""
        job = self.jobs.get_job(job_id(reminder_id))
        return job.args[1] if job is not None else None

    def schedule(self, reminder: Reminder):
        """Arm a job for ``reminder.trigger_time``, replacing any existing one.

        Overdue reminders fire after ``immediate_delay`` seconds.
        """
        try:
            trigger_time = parse_datetime(reminder.trigger_time)
        except (TypeError, ValueError, OverflowError) as exc:
            logger.error(
                "Not scheduling reminder %s: invalid trigger time %r (%s)",
                reminder.id, reminder.trigger_time, exc,
            )
            return None

        delay = (trigger_time - self._clock()).total_seconds()
        if delay <= 0:
            logger.info(
                "Reminder %s (%r) is due, firing in %.1fs",
                reminder.id, reminder.title, self.immediate_delay,
            )
            delay = self.immediate_delay

        # Removal and re-add happen without yielding, so the old job can't fire in between
        self._remove(reminder.id)
        job = self.jobs.add_job(
            self._run,
            trigger=DateTrigger(run_date=now_utc() + timedelta(seconds=delay)),
            args=[reminder.id, trigger_time],
            id=job_id(reminder.id),
            name=f"reminder:{reminder.title[:30]}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        self._start_if_possible()
        logger.info(
            "Scheduled reminder %s (%r) at %s, %d pending",
            reminder.id, reminder.title, trigger_time.isoformat(), self.pending_count,
        )
        return job

    def cancel(self, reminder_id: int) -> bool:
        """Remove the pending job for ``reminder_id``. No-op if there is none."""
        cancelled = self._remove(reminder_id)
        if cancelled:
            logger.info("Cancelled reminder %s, %d pending", reminder_id, self.pending_count)
        return cancelled

    def cancel_all(self) -> None:
        for job in self._reminder_jobs():
            self._remove_job(job.id)

    async def drain(self) -> None:
        """Wait for fires that are already running."""
        current = asyncio.current_task()
        while self._tasks - {current}:
            await asyncio.gather(*(self._tasks - {current}), return_exceptions=True)

    def _remove(self, reminder_id: int) -> bool:
        return self._remove_job(job_id(reminder_id))

    def _remove_job(self, jid: str) -> bool:
        try:
            self.jobs.remove_job(jid)
        except JobLookupError:
            return False
        return True

    def _start_if_possible(self) -> None:
        if self.jobs.running:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Held as a pending job until start() runs inside the event loop
            return
        self.jobs.start()

    async def _run(self, reminder_id: int, trigger_time: datetime) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        self._firing[reminder_id] += 1
        try:
            if self._fire is None:
                logger.warning("Reminder %s fired with no trigger handler bound", reminder_id)
            else:
                await self._fire(reminder_id)
        except Exception:
            logger.exception("Trigger handler failed for reminder %s", reminder_id)
        finally:
            self._firing[reminder_id] -= 1
            if self._firing[reminder_id] <= 0:
                del self._firing[reminder_id]
            self._tasks.discard(task)
