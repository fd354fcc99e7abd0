"""Dispatch worker: deliver a due reminder job."""

from enum import Enum
from typing import Optional

from logger import logger
from . import config
from .recurrence import RecurrenceEngine
from .scheduler import DispatchQueue
from .senders import NotificationSender, format_reminder_message
from .store import ReminderStore
from .types import DispatchJob, ReminderStatus


class DispatchOutcome(str, Enum):
    SKIPPED = "skipped"        # reminder gone or no longer pending
    DELIVERED = "delivered"
    RETRYING = "retrying"      # attempt failed, next attempt queued
    FAILED = "failed"          # attempts exhausted, reminder marked failed


class DispatchWorker:
    """Processes due jobs from the DispatchQueue.

    Per attempt: re-read the reminder, send, mark done, spawn the next
    occurrence. Any store or send error fails the attempt; the job is
    re-queued with backoff until ``max_attempts`` is reached, then the
    reminder is marked failed with the error as its reason.
    """

    def __init__(
        self,
        store: ReminderStore,
        sender: NotificationSender,
        queue: DispatchQueue,
        recurrence: RecurrenceEngine,
        max_attempts: int = config.DISPATCH_MAX_ATTEMPTS,
    ):
        self.store = store
        self.sender = sender
        self.queue = queue
        self.recurrence = recurrence
        self.max_attempts = max_attempts
        # Reminder ids being processed in this process
        self._in_flight: set[str] = set()

    async def run(self, job: DispatchJob) -> Optional[DispatchOutcome]:
        """Queue callback. Never raises."""
        try:
            return await self.process(job)
        except Exception as e:
            logger.exception(f"Unexpected error dispatching reminder {job.reminder_id}: {e}")
            return None

    async def process(self, job: DispatchJob) -> DispatchOutcome:
        if job.reminder_id in self._in_flight:
            logger.info(f"Reminder {job.reminder_id} already being dispatched, skipping duplicate pull")
            return DispatchOutcome.SKIPPED

        self._in_flight.add(job.reminder_id)
        try:
            return await self._attempt(job)
        finally:
            self._in_flight.discard(job.reminder_id)

    async def _attempt(self, job: DispatchJob) -> DispatchOutcome:
        logger.info(f"Dispatching reminder {job.reminder_id} (attempt {job.attempt}/{self.max_attempts})")

        try:
            # Read right before sending; never trust the job payload's view of status
            reminder = await self.store.get(job.reminder_id)
            if reminder is None or reminder.status != ReminderStatus.PENDING:
                status = reminder.status.value if reminder else "missing"
                logger.info(f"Reminder {job.reminder_id} is no longer pending ({status}), skipping")
                self.queue.finished(job.reminder_id)
                return DispatchOutcome.SKIPPED

            await self.sender.send(
                job.target.address,
                job.target.channel,
                format_reminder_message(reminder.task),
            )
            completed = await self.store.complete_if_pending(job.reminder_id)
        except Exception as e:
            return await self._attempt_failed(job, e)

        self.queue.finished(job.reminder_id)
        if not completed:
            logger.warning(f"Reminder {job.reminder_id} changed state during delivery, not marking done")
            return DispatchOutcome.DELIVERED

        logger.info(f"Delivered reminder {job.reminder_id} via {job.target.channel}")

        try:
            await self.recurrence.spawn_next(reminder, job.target)
        except Exception as e:
            # Delivery already happened; a retry would be a no-op
            logger.error(f"Failed to schedule next occurrence of reminder {job.reminder_id}: {e}")

        return DispatchOutcome.DELIVERED

    async def _attempt_failed(self, job: DispatchJob, error: Exception) -> DispatchOutcome:
        reason = str(error) or type(error).__name__

        if job.attempt < self.max_attempts:
            delay = self.queue.retry(job, reason)
            logger.warning(
                f"Reminder {job.reminder_id} attempt {job.attempt} failed: {reason}; "
                f"retrying in {delay:.0f}s"
            )
            return DispatchOutcome.RETRYING

        logger.error(f"Reminder {job.reminder_id} failed after {job.attempt} attempts: {reason}")
        try:
            await self.store.update_status(job.reminder_id, ReminderStatus.FAILED, reason)
        except Exception as e:
            # Still pending in the store; keep it marked as queued so polling
            # leaves it alone until the next startup reload
            logger.error(f"Could not mark reminder {job.reminder_id} failed: {e}")
            return DispatchOutcome.FAILED
        self.queue.finished(job.reminder_id)
        return DispatchOutcome.FAILED
