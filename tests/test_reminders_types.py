"""Tests for the intent and reminder types."""

from datetime import datetime, timedelta, timezone

import pytest

from domains.reminders.types import (
    DeliveryTarget,
    DispatchJob,
    IntentResult,
    IntentType,
    RecurrenceRule,
    Reminder,
    ReminderStatus,
)

IST = timezone(timedelta(hours=5, minutes=30))


class TestIntentResult:

    def test_create_requires_task(self):
        with pytest.raises(ValueError):
            IntentResult(IntentType.CREATE, task=" ", scheduled_at=datetime(2026, 3, 10, tzinfo=timezone.utc))

    def test_create_requires_time(self):
        with pytest.raises(ValueError):
            IntentResult(IntentType.CREATE, task="call mom")

    def test_create_normalises_to_utc(self):
        result = IntentResult(IntentType.CREATE, task="  call mom ", scheduled_at=datetime(2026, 3, 10, 19, tzinfo=IST))

        assert result.task == "call mom"
        assert result.scheduled_at == datetime(2026, 3, 10, 13, 30, tzinfo=timezone.utc)
        assert result.scheduled_at.tzinfo == timezone.utc

    def test_create_factory_degrades_to_unknown(self):
        assert IntentResult.create(None, None).intent == IntentType.UNKNOWN
        assert IntentResult.create("x", None).intent == IntentType.UNKNOWN

    def test_timezone_requires_zone(self):
        with pytest.raises(ValueError):
            IntentResult(IntentType.TIMEZONE)

    def test_payloadless_intents(self):
        assert IntentResult(IntentType.HELP).task is None


@pytest.mark.parametrize("value,rule", [
    ("daily", RecurrenceRule.DAILY),
    (" Weekly ", RecurrenceRule.WEEKLY),
    (RecurrenceRule.MONTHLY, RecurrenceRule.MONTHLY),
    (None, RecurrenceRule.NONE),
    ("yearly", RecurrenceRule.NONE),
])
def test_recurrence_parse(value, rule):
    assert RecurrenceRule.parse(value) == rule


def test_reminder_from_row():
    reminder = Reminder.from_row({
        "id": 42,
        "user_id": "u1",
        "task": "pay rent",
        "scheduled_at": "2026-04-01T09:00:00",
        "recurrence": None,
        "status": "failed",
        "failure_reason": "HTTP 403",
        "done_at": None,
        "created_at": "2026-03-10T12:00:00Z",
    })

    assert reminder.id == "42"
    assert reminder.scheduled_at == datetime(2026, 4, 1, 9, tzinfo=timezone.utc)
    assert reminder.recurrence == RecurrenceRule.NONE
    assert reminder.status == ReminderStatus.FAILED
    assert reminder.done_at is None


def test_dispatch_job_next_attempt():
    job = DispatchJob("r1", "u1", DeliveryTarget("telegram", "1"), "x", datetime(2026, 3, 10, tzinfo=timezone.utc))

    nxt = job.next_attempt("timeout")

    assert nxt.attempt == 2
    assert nxt.last_error == "timeout"
    assert job.attempt == 1
