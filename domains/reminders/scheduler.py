"""Dispatch queue: delayed reminder jobs on APScheduler."""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from logger import logger
from . import config
from .store import ReminderStore, UserDirectory
from .types import DeliveryTarget, DispatchJob, Reminder, as_utc

Worker = Callable[[DispatchJob], Awaitable]


def job_id(reminder_id: str) -> str:
    """APScheduler job id; one live job per reminder."""
    return f"reminder:{reminder_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchQueue:
    """Delayed-job facility for reminder delivery.

    Jobs are keyed by reminder id, so scheduling a reminder again (retry,
    reschedule, reload) replaces its previous job instead of adding one.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        directory: UserDirectory,
        backoff_seconds: float = config.DISPATCH_BACKOFF_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.scheduler = scheduler
        self.directory = directory
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._worker: Optional[Worker] = None
        # Reminder ids with a queued or running job in this process
        self._scheduled_ids: set[str] = set()

    def register_worker(self, worker: Worker) -> None:
        self._worker = worker

    async def schedule(
        self,
        reminder_id: str,
        user_id: str,
        task: str,
        due_at: datetime,
        target: Optional[DeliveryTarget] = None,
    ) -> str:
        """Queue delivery of a reminder at ``due_at`` (immediately if past).

        Args:
            reminder_id: Reminder to deliver
            user_id: Owning user
            task: Reminder text
            due_at: When to deliver
            target: Delivery channel/address (looked up from the directory if None)

        Returns:
            The job id
        """
        if target is None:
            target = await self.directory.get_delivery_target(user_id)

        due_at = as_utc(due_at)
        job = DispatchJob(
            reminder_id=reminder_id,
            user_id=user_id,
            target=target,
            task=task,
            due_at=due_at,
        )
        delay = max(0.0, (due_at - self._clock()).total_seconds())
        return self.enqueue(job, delay)

    def enqueue(self, job: DispatchJob, delay: float) -> str:
        """Add (or replace) the job for ``job.reminder_id``, firing after ``delay`` seconds."""
        if self._worker is None:
            raise RuntimeError("No dispatch worker registered")

        run_at = self._clock() + timedelta(seconds=max(0.0, delay))
        self.scheduler.add_job(
            self._worker,
            trigger=DateTrigger(run_date=run_at),
            args=[job],
            id=job_id(job.reminder_id),
            name=f"reminder:{job.task[:30]}",
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        self._scheduled_ids.add(job.reminder_id)
        logger.info(f"Queued reminder {job.reminder_id} (attempt {job.attempt}) for {run_at.isoformat()}")
        return job_id(job.reminder_id)

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt``: base, 2x base, 4x base, ..."""
        return self.backoff_seconds * 2 ** (attempt - 1)

    def retry(self, job: DispatchJob, error: str) -> float:
        """Re-queue a failed job as its next attempt.

        Returns:
            The backoff delay in seconds
        """
        delay = self.backoff_delay(job.attempt)
        self.enqueue(job.next_attempt(error), delay)
        return delay

    def cancel(self, reminder_id: str) -> bool:
        """Remove the queued job for a reminder.

        Returns:
            True if a job was removed
        """
        self._scheduled_ids.discard(reminder_id)
        try:
            self.scheduler.remove_job(job_id(reminder_id))
        except JobLookupError:
            return False
        logger.info(f"Removed queued job for reminder {reminder_id}")
        return True

    def finished(self, reminder_id: str) -> None:
        """Forget a reminder whose job reached a terminal outcome."""
        self._scheduled_ids.discard(reminder_id)

    def is_scheduled(self, reminder_id: str) -> bool:
        return reminder_id in self._scheduled_ids

    async def reload_pending(self, store: ReminderStore) -> int:
        """Queue every pending reminder in the store.

        Call on startup: past-due reminders are dispatched immediately.

        Returns:
            Count of reminders queued
        """
        pending = await store.list_pending()
        now = self._clock()
        loaded = 0
        overdue = 0

        for r in pending:
            if await self._schedule_reminder_logged(r) is None:
                continue
            loaded += 1
            if r.scheduled_at <= now:
                overdue += 1

        logger.info(f"Reloaded {loaded} pending reminders ({overdue} overdue, dispatching now)")
        return loaded

    async def poll_for_new(self, store: ReminderStore) -> int:
        """Queue pending reminders that have no job in this process yet.

        Picks up reminders inserted by other writers without a restart.

        Returns:
            Count of new reminders queued
        """
        pending = await store.list_pending()
        added = 0

        for r in pending:
            if r.id in self._scheduled_ids:
                continue
            if await self._schedule_reminder_logged(r) is not None:
                added += 1
                logger.info(f"Picked up new reminder from store: {r.id} - {r.task[:30]}")

        return added

    async def _schedule_reminder_logged(self, r: Reminder) -> Optional[str]:
        try:
            return await self.schedule(r.id, r.user_id, r.task, r.scheduled_at)
        except Exception as e:
            logger.error(f"Failed to queue reminder {r.id}: {e}")
            return None
