"""Recurrence engine: spawn the next occurrence of a delivered reminder."""

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from config import DEFAULT_TIMEZONE
from logger import logger
from .parser import is_valid_timezone
from .scheduler import DispatchQueue
from .store import ReminderStore, StoreError, UserDirectory
from .types import DeliveryTarget, RecurrenceRule, Reminder, as_utc

STEPS = {
    RecurrenceRule.DAILY: relativedelta(days=1),
    RecurrenceRule.WEEKLY: relativedelta(days=7),
    RecurrenceRule.MONTHLY: relativedelta(months=1),
}


def next_occurrence(
    scheduled_at: datetime,
    rule: RecurrenceRule,
    count: int = 1,
    timezone_name: str = "UTC",
) -> datetime:
    """Instant of the ``count``-th repetition after ``scheduled_at``.

    Steps are taken on the wall clock of ``timezone_name``, so the local
    time of day survives DST changes. Monthly steps are calendar months
    clamped to the month's length (Jan 31 -> Feb 28/29).

    Raises:
        ValueError: If ``rule`` is NONE
    """
    step = STEPS.get(RecurrenceRule.parse(rule))
    if step is None:
        raise ValueError(f"Reminder does not recur: {rule}")

    zone = ZoneInfo(timezone_name) if is_valid_timezone(timezone_name) else ZoneInfo("UTC")
    local = as_utc(scheduled_at).astimezone(zone).replace(tzinfo=None)
    stepped = (local + step * count).replace(tzinfo=zone)
    return stepped.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecurrenceEngine:
    """Creates a sibling reminder for the next occurrence and queues it.

    The delivered reminder stays ``done``; each occurrence is its own row.
    """

    def __init__(
        self,
        store: ReminderStore,
        queue: DispatchQueue,
        directory: Optional[UserDirectory] = None,
        default_timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.queue = queue
        self.directory = directory if directory is not None else queue.directory
        self.default_timezone = default_timezone
        self._clock = clock

    async def user_timezone(self, user_id: str) -> str:
        try:
            tz = await self.directory.get_timezone(user_id)
        except StoreError as e:
            logger.warning(f"Could not read timezone for user {user_id}, stepping in {self.default_timezone}: {e}")
            tz = None
        return tz or self.default_timezone

    def next_after_now(self, reminder: Reminder, timezone_name: str = "UTC") -> datetime:
        """First occurrence strictly after now; occurrences missed while down are skipped."""
        now = self._clock()
        count = 1
        candidate = next_occurrence(reminder.scheduled_at, reminder.recurrence, count, timezone_name)
        while candidate <= now:
            count += 1
            candidate = next_occurrence(reminder.scheduled_at, reminder.recurrence, count, timezone_name)
        if count > 1:
            logger.info(f"Skipped {count - 1} missed occurrence(s) of reminder {reminder.id}")
        return candidate

    async def spawn_next(
        self,
        reminder: Reminder,
        target: Optional[DeliveryTarget] = None,
    ) -> Optional[Reminder]:
        """Create and queue the next occurrence of ``reminder``.

        Args:
            reminder: The reminder that was just completed
            target: Delivery target to reuse (looked up again if None)

        Returns:
            The new reminder, or None if it does not recur
        """
        if reminder.recurrence == RecurrenceRule.NONE:
            return None

        tz = await self.user_timezone(reminder.user_id)
        scheduled_at = self.next_after_now(reminder, tz)
        sibling = await self.store.create(
            reminder.user_id,
            reminder.task,
            scheduled_at,
            reminder.recurrence,
        )
        await self.queue.schedule(sibling.id, sibling.user_id, sibling.task, sibling.scheduled_at, target)
        logger.info(
            f"Recurring reminder {reminder.id} ({reminder.recurrence.value}) "
            f"-> {sibling.id} at {scheduled_at.isoformat()}"
        )
        return sibling
