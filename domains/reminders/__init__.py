"""Reminders domain: intent resolution and reminder dispatch.

Free text is resolved through a provider cascade (OpenAI, Gemini,
OpenRouter) with a heuristic fallback. Reminders persist in Supabase and
are delivered by APScheduler date-trigger jobs with retry and recurrence.
"""

from .types import (
    IntentType,
    IntentResult,
    RecurrenceRule,
    ReminderStatus,
    Reminder,
    DeliveryTarget,
    DispatchJob,
)
from .parser import parse_message, match_command
from .providers import ProviderError, normalize_payload
from .resolver import IntentResolver, ProviderSlot, race_with_timeout, build_default_resolver
from .store import StoreError, SupabaseReminderStore, SupabaseUserDirectory
from .senders import SendError, ChannelRouter, build_default_router, format_reminder_message
from .scheduler import DispatchQueue
from .executor import DispatchWorker, DispatchOutcome
from .recurrence import RecurrenceEngine, next_occurrence
from .handler import ReminderService, reload_reminders_on_startup, start_reminder_polling

__all__ = [
    "IntentType",
    "IntentResult",
    "RecurrenceRule",
    "ReminderStatus",
    "Reminder",
    "DeliveryTarget",
    "DispatchJob",
    "parse_message",
    "match_command",
    "ProviderError",
    "normalize_payload",
    "IntentResolver",
    "ProviderSlot",
    "race_with_timeout",
    "build_default_resolver",
    "StoreError",
    "SupabaseReminderStore",
    "SupabaseUserDirectory",
    "SendError",
    "ChannelRouter",
    "build_default_router",
    "format_reminder_message",
    "DispatchQueue",
    "DispatchWorker",
    "DispatchOutcome",
    "RecurrenceEngine",
    "next_occurrence",
    "ReminderService",
    "reload_reminders_on_startup",
    "start_reminder_polling",
]
