"""Type definitions for intent resolution and reminder dispatch."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from dateutil.parser import parse as parse_datetime


class IntentType(str, Enum):
    """Classified purpose of an inbound message."""
    CREATE = "CREATE"
    LIST = "LIST"
    DONE = "DONE"
    HELP = "HELP"
    BILLING = "BILLING"
    ERASE = "ERASE"
    TIMEZONE = "TIMEZONE"
    UNKNOWN = "UNKNOWN"


class RecurrenceRule(str, Enum):
    """How a delivered reminder repeats."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Any) -> "RecurrenceRule":
        """Lenient conversion; anything unrecognised means no recurrence."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


class ReminderStatus(str, Enum):
    """Reminder lifecycle state."""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class IntentResult:
    """Canonical resolver output, discriminated by ``intent``.

    Only the fields belonging to the intent are populated:
    CREATE -> task, scheduled_at, recurrence; DONE -> query (optional);
    TIMEZONE -> timezone. The other intents carry no payload.
    """
    intent: IntentType
    task: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    recurrence: RecurrenceRule = RecurrenceRule.NONE
    query: Optional[str] = None
    timezone: Optional[str] = None

    def __post_init__(self):
        if self.intent == IntentType.CREATE:
            if not self.task or not self.task.strip():
                raise ValueError("CREATE requires a non-empty task")
            if not isinstance(self.scheduled_at, datetime):
                raise ValueError("CREATE requires scheduled_at")
            object.__setattr__(self, "task", self.task.strip())
            object.__setattr__(self, "scheduled_at", as_utc(self.scheduled_at))
        elif self.intent == IntentType.TIMEZONE and not self.timezone:
            raise ValueError("TIMEZONE requires a timezone")

    @classmethod
    def create(
        cls,
        task: Optional[str],
        scheduled_at: Optional[datetime],
        recurrence: Any = RecurrenceRule.NONE,
    ) -> "IntentResult":
        """Build a CREATE result, or UNKNOWN when task/time are unusable."""
        try:
            return cls(
                IntentType.CREATE,
                task=task,
                scheduled_at=scheduled_at,
                recurrence=RecurrenceRule.parse(recurrence),
            )
        except ValueError:
            return cls.unknown()

    @classmethod
    def unknown(cls) -> "IntentResult":
        return cls(IntentType.UNKNOWN)


@dataclass(frozen=True)
class DeliveryTarget:
    """Where a user receives notifications."""
    channel: str   # "telegram", "whatsapp" or "instagram"
    address: str   # chat id / phone number / page-scoped id


@dataclass
class Reminder:
    """A reminder row as held by the store."""
    id: str
    user_id: str
    task: str
    scheduled_at: datetime
    recurrence: RecurrenceRule = RecurrenceRule.NONE
    status: ReminderStatus = ReminderStatus.PENDING
    failure_reason: Optional[str] = None
    done_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "Reminder":
        """Build from a PostgREST row."""
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            task=row["task"],
            scheduled_at=as_utc(parse_datetime(row["scheduled_at"])),
            recurrence=RecurrenceRule.parse(row.get("recurrence")),
            status=ReminderStatus(row.get("status") or "pending"),
            failure_reason=row.get("failure_reason"),
            done_at=_optional_datetime(row.get("done_at")),
            created_at=_optional_datetime(row.get("created_at")),
        )


@dataclass(frozen=True)
class DispatchJob:
    """Payload of one queued delivery attempt.

    A job refers to its reminder by id only; the reminder may have been
    cancelled or completed since the job was queued.
    """
    reminder_id: str
    user_id: str
    target: DeliveryTarget
    task: str
    due_at: datetime
    attempt: int = 1
    last_error: Optional[str] = field(default=None, compare=False)

    def next_attempt(self, error: str) -> "DispatchJob":
        return replace(self, attempt=self.attempt + 1, last_error=error)


def _optional_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return as_utc(parse_datetime(value))
