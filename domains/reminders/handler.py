"""Reminder service: turn a resolved intent into store/queue actions and a reply."""

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import DEFAULT_TIMEZONE, RAZORPAY_CHECKOUT_LINK
from logger import logger
from . import config
from .parser import is_valid_timezone
from .recurrence import RecurrenceEngine
from .resolver import IntentResolver
from .scheduler import DispatchQueue
from .store import ReminderStore, StoreError, UserDirectory
from .types import IntentResult, IntentType, RecurrenceRule, Reminder

HELP_MESSAGE = (
    "🛠️ *RemindAI Help*\n\n"
    "*Commands:*\n"
    "• *CREATE*: type your task and time naturally "
    "(e.g. 'remind me to pay bills tomorrow at 9am', 'water plants every day at 8am')\n"
    "• *LIST*: see your next 10 pending reminders\n"
    "• *DONE*: mark a reminder as completed ('done call mom', or just 'done' for the latest)\n"
    "• *TIMEZONE*: 'my timezone is Asia/Kolkata'\n"
    "• *HELP*: show this menu"
)
UNKNOWN_MESSAGE = "I couldn't understand that. Try: 'remind me to call mom tomorrow at 7pm'"
ERROR_MESSAGE = "Something went wrong on our side. Please try again in a minute."


def format_local_time(when: datetime, timezone_name: str) -> str:
    """Render an instant in the user's zone, e.g. 'Oct 19, 2026, 7:00 PM'."""
    zone = ZoneInfo(timezone_name) if is_valid_timezone(timezone_name) else ZoneInfo("UTC")
    local = when.astimezone(zone)
    hour = local.hour % 12 or 12
    return f"{local:%b} {local.day}, {local.year}, {hour}:{local:%M %p}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderService:
    """Entry point for inbound messages from any channel adapter."""

    def __init__(
        self,
        resolver: IntentResolver,
        store: ReminderStore,
        directory: UserDirectory,
        queue: DispatchQueue,
        recurrence: RecurrenceEngine,
        default_timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.store = store
        self.directory = directory
        self.queue = queue
        self.recurrence = recurrence
        self.default_timezone = default_timezone
        self._clock = clock

    async def handle_message(self, user_id: str, message: str) -> str:
        """Resolve a message and act on it.

        Args:
            user_id: Sender's user id
            message: Raw inbound text

        Returns:
            Reply text for the user
        """
        tz = await self._user_timezone(user_id)
        result = await self.resolver.resolve(message, tz)
        return await self.apply(user_id, result, tz)

    async def apply(self, user_id: str, result: IntentResult, tz: Optional[str] = None) -> str:
        """Carry out a resolved intent for a user and build the reply."""
        tz = tz or self.default_timezone
        try:
            if result.intent == IntentType.CREATE:
                return await self._create(user_id, result, tz)
            if result.intent == IntentType.LIST:
                return await self._list(user_id, tz)
            if result.intent == IntentType.DONE:
                return await self._done(user_id, result.query)
            if result.intent == IntentType.TIMEZONE:
                return await self._set_timezone(user_id, result.timezone)
            if result.intent == IntentType.BILLING:
                return f"💳 Manage your subscription: {RAZORPAY_CHECKOUT_LINK}"
            if result.intent == IntentType.HELP:
                return HELP_MESSAGE
            if result.intent == IntentType.ERASE:
                return await self._erase(user_id)
        except StoreError as e:
            logger.error(f"Failed to handle {result.intent.value} for user {user_id}: {e}")
            return ERROR_MESSAGE

        return UNKNOWN_MESSAGE

    async def _user_timezone(self, user_id: str) -> str:
        try:
            tz = await self.directory.get_timezone(user_id)
        except StoreError as e:
            logger.warning(f"Could not read timezone for user {user_id}: {e}")
            tz = None
        return tz or self.default_timezone

    async def _create(self, user_id: str, result: IntentResult, tz: str) -> str:
        reminder = await self.store.create(user_id, result.task, result.scheduled_at, result.recurrence)
        try:
            await self.queue.schedule(reminder.id, user_id, reminder.task, reminder.scheduled_at)
        except StoreError:
            # Without a delivery target the row would sit pending forever
            await self.store.cancel(reminder.id)
            raise

        reply = f"✅ Set: {reminder.task} on {format_local_time(reminder.scheduled_at, tz)}"
        if reminder.recurrence != RecurrenceRule.NONE:
            reply += f" (Repeat: {reminder.recurrence.value})"
        return reply

    async def _list(self, user_id: str, tz: str) -> str:
        reminders = await self.store.list_pending(user_id, limit=config.LIST_LIMIT)
        if not reminders:
            return "You have no pending reminders."

        lines = ["Your pending reminders:"]
        for r in reminders:
            repeat = f" 🔁 {r.recurrence.value}" if r.recurrence != RecurrenceRule.NONE else ""
            lines.append(f"• {r.task} ({format_local_time(r.scheduled_at, tz)}){repeat}")
        return "\n".join(lines)

    async def _done(self, user_id: str, query: Optional[str]) -> str:
        reminder = await self.store.find_pending(user_id, query)
        if reminder is None or not await self.store.complete_if_pending(reminder.id):
            return "I couldn't find any pending reminders matching that."

        self.queue.cancel(reminder.id)
        logger.info(f"User {user_id} marked reminder {reminder.id} done")
        await self._spawn_next(reminder)

        if query:
            return f"✅ Marked \"{reminder.task}\" as done!"
        return "✅ Marked your most recent reminder as done!"

    async def _spawn_next(self, reminder: Reminder) -> None:
        try:
            await self.recurrence.spawn_next(reminder)
        except StoreError as e:
            logger.error(f"Failed to schedule next occurrence of reminder {reminder.id}: {e}")

    async def _set_timezone(self, user_id: str, tz: str) -> str:
        if not is_valid_timezone(tz):
            return f"I don't recognise the timezone '{tz}'. Try something like 'Asia/Kolkata' or 'Europe/London'."
        await self.directory.set_timezone(user_id, tz)
        return f"✅ Timezone updated to {tz}"

    async def _erase(self, user_id: str) -> str:
        for r in await self.store.list_pending(user_id):
            self.queue.cancel(r.id)
        await self.directory.erase_user(user_id)
        return "🗑️ Your account and data have been permanently erased. Goodbye!"

    async def cancel(self, reminder_id: str) -> bool:
        """Cancel a reminder and drop its queued job.

        Returns:
            False if the reminder does not exist
        """
        reminder = await self.store.get(reminder_id)
        if reminder is None:
            return False

        await self.store.cancel(reminder_id)
        self.queue.cancel(reminder_id)
        logger.info(f"Cancelled reminder {reminder_id}")
        return True

    async def retry(self, reminder_id: str, scheduled_at: Optional[datetime] = None) -> Optional[Reminder]:
        """Put a done/failed/cancelled reminder back to pending and queue it.

        Args:
            reminder_id: Reminder to revive
            scheduled_at: New delivery time (now if None)

        Returns:
            The rescheduled reminder, or None if it does not exist
        """
        reminder = await self.store.reschedule(reminder_id, scheduled_at or self._clock())
        if reminder is None:
            return None

        await self.queue.schedule(reminder.id, reminder.user_id, reminder.task, reminder.scheduled_at)
        logger.info(f"Rescheduled reminder {reminder_id} for {reminder.scheduled_at.isoformat()}")
        return reminder


async def reload_reminders_on_startup(queue: DispatchQueue, store: ReminderStore) -> int:
    """Queue pending reminders from the store after a restart.

    Args:
        queue: Dispatch queue (worker already registered)
        store: Reminder store

    Returns:
        Count of reminders queued
    """
    try:
        return await queue.reload_pending(store)
    except StoreError as e:
        logger.error(f"Failed to reload pending reminders: {e}")
        return 0


def start_reminder_polling(
    scheduler: AsyncIOScheduler,
    queue: DispatchQueue,
    store: ReminderStore,
    interval: int = config.POLL_INTERVAL_SECONDS,
):
    """Poll the store for reminders created by other writers.

    Args:
        scheduler: APScheduler instance
        queue: Dispatch queue
        store: Reminder store
        interval: Seconds between polls
    """
    async def poll_task():
        try:
            count = await queue.poll_for_new(store)
        except StoreError as e:
            logger.warning(f"Reminder polling failed: {e}")
            return
        if count > 0:
            logger.info(f"Polling picked up {count} new reminder(s)")

    scheduler.add_job(
        poll_task,
        trigger=IntervalTrigger(seconds=interval),
        id="reminder_polling",
        name="Poll for new reminders",
        replace_existing=True,
    )
    logger.info(f"Started reminder polling (every {interval}s)")
