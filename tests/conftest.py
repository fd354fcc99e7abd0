"""Pytest configuration and fixtures."""

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, Mock, patch

import pytest

from domains.reminders.recurrence import RecurrenceEngine
from domains.reminders.scheduler import DispatchQueue
from domains.reminders.senders import SendError
from domains.reminders.store import StoreError
from domains.reminders.types import (
    DeliveryTarget,
    RecurrenceRule,
    Reminder,
    ReminderStatus,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class InMemoryReminderStore:
    """ReminderStore held in a dict."""

    def __init__(self):
        self.reminders: dict[str, Reminder] = {}
        self._ids = itertools.count(1)
        self.error: Optional[Exception] = None  # raised by every call when set
        self.get_calls = 0

    def _check(self):
        if self.error is not None:
            raise self.error

    async def create(self, user_id, task, scheduled_at, recurrence=RecurrenceRule.NONE):
        self._check()
        n = next(self._ids)
        reminder = Reminder(
            id=f"r{n}",
            user_id=user_id,
            task=task,
            scheduled_at=scheduled_at,
            recurrence=RecurrenceRule.parse(recurrence),
            created_at=NOW + timedelta(seconds=n),
        )
        self.reminders[reminder.id] = reminder
        return replace(reminder)

    async def get(self, reminder_id):
        self._check()
        self.get_calls += 1
        reminder = self.reminders.get(reminder_id)
        return replace(reminder) if reminder else None

    async def update_status(self, reminder_id, status, failure_reason=None):
        self._check()
        reminder = self.reminders[reminder_id]
        reminder.status = status
        if failure_reason is not None:
            reminder.failure_reason = failure_reason
        if status == ReminderStatus.DONE:
            reminder.done_at = NOW

    async def cancel(self, reminder_id):
        await self.update_status(reminder_id, ReminderStatus.CANCELLED)

    async def complete_if_pending(self, reminder_id):
        self._check()
        reminder = self.reminders.get(reminder_id)
        if reminder is None or reminder.status != ReminderStatus.PENDING:
            return False
        reminder.status = ReminderStatus.DONE
        reminder.done_at = NOW
        return True

    async def list_pending(self, user_id=None, limit=None):
        self._check()
        pending = [
            replace(r) for r in self.reminders.values()
            if r.status == ReminderStatus.PENDING and (user_id is None or r.user_id == user_id)
        ]
        pending.sort(key=lambda r: r.scheduled_at)
        return pending[:limit] if limit is not None else pending

    async def find_pending(self, user_id, query=None):
        self._check()
        matches = [
            r for r in self.reminders.values()
            if r.user_id == user_id
            and r.status == ReminderStatus.PENDING
            and (not query or query.lower() in r.task.lower())
        ]
        if not matches:
            return None
        return replace(max(matches, key=lambda r: r.created_at))

    async def reschedule(self, reminder_id, scheduled_at):
        self._check()
        reminder = self.reminders.get(reminder_id)
        if reminder is None:
            return None
        reminder.status = ReminderStatus.PENDING
        reminder.scheduled_at = scheduled_at
        reminder.failure_reason = None
        reminder.done_at = None
        return replace(reminder)


class InMemoryUserDirectory:
    """UserDirectory held in dicts."""

    def __init__(self):
        self.targets: dict[str, DeliveryTarget] = {}
        self.timezones: dict[str, str] = {}
        self.erased: list[str] = []

    async def get_delivery_target(self, user_id):
        if user_id not in self.targets:
            raise StoreError(f"No delivery address for user {user_id}")
        return self.targets[user_id]

    async def get_timezone(self, user_id):
        return self.timezones.get(user_id)

    async def set_timezone(self, user_id, timezone_name):
        self.timezones[user_id] = timezone_name

    async def erase_user(self, user_id):
        self.erased.append(user_id)
        self.targets.pop(user_id, None)
        self.timezones.pop(user_id, None)


class RecordingSender:
    """NotificationSender that records sends, or fails with ``error``."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: list[tuple[str, str, str]] = []
        self.attempts = 0

    async def send(self, recipient, channel, text):
        self.attempts += 1
        if self.error is not None:
            raise self.error
        self.sent.append((recipient, channel, text))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryReminderStore()


@pytest.fixture
def directory():
    directory = InMemoryUserDirectory()
    directory.targets["u1"] = DeliveryTarget(channel="telegram", address="12345")
    directory.targets["u2"] = DeliveryTarget(channel="whatsapp", address="+919800000000")
    return directory


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def failing_sender():
    return RecordingSender(error=SendError("HTTP 503: upstream unavailable"))


@pytest.fixture
def mock_scheduler():
    """Stand-in for AsyncIOScheduler; jobs are recorded, never run."""
    return Mock()


@pytest.fixture
def queue(mock_scheduler, directory):
    queue = DispatchQueue(mock_scheduler, directory, clock=lambda: NOW)
    queue.register_worker(AsyncMock())
    return queue


@pytest.fixture
def recurrence(store, queue, directory):
    return RecurrenceEngine(store, queue, directory, default_timezone="UTC", clock=lambda: NOW)


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client
