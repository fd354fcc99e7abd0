"""Deterministic, rule-based message parser.

Last resort of the intent cascade: no I/O, always returns an IntentResult.
Also hosts the fast-path command matcher the resolver runs before any
provider is called.
"""

import re
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from logger import logger
from .config import (
    DEFAULT_TASK,
    DONE_WORDS_PATTERN,
    FAST_PATH_COMMANDS,
    INTENT_KEYWORDS,
    TIMEZONE_ALIASES,
)
from .types import IntentResult, IntentType, RecurrenceRule

REMIND_CUE = re.compile(r"\bremind\b|\bset\s+a\s+reminder\b")
TEMPORAL_CUE = re.compile(
    r"\b(tomorrow|in\s+\d+\s*(min|hour|hr|day)|at\s+\d{1,2}|\d{1,2}(:\d{2})?\s*(am|pm)|every\s*(day|week|month)|daily|weekly|monthly)"
)

REMIND_PREFIX = re.compile(
    r"^(please\s+)?(can you\s+|could you\s+)?(set\s+a\s+reminder\s+(to|for)\s+|remind\s+me\s+(to\s+|about\s+)?)"
)
TOMORROW = re.compile(r"\btomorrow\b")

# minute > hour > day; only the first matching offset is applied
OFFSET_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("minutes", re.compile(r"\bin\s+(\d+)\s*(minutes?|mins?)\b")),
    ("hours", re.compile(r"\bin\s+(\d+)\s*(hours?|hrs?)\b")),
    ("days", re.compile(r"\bin\s+(\d+)\s*(days?)\b")),
]

AT_TIME = re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?(?![\w:])")
BARE_TIME = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b")

RECURRENCE_PATTERNS: list[tuple[RecurrenceRule, re.Pattern]] = [
    (RecurrenceRule.DAILY, re.compile(r"\b(every\s*day|daily)\b")),
    (RecurrenceRule.WEEKLY, re.compile(r"\b(every\s*week|weekly)\b")),
    (RecurrenceRule.MONTHLY, re.compile(r"\b(every\s*month|monthly)\b")),
]

IANA_ZONE = re.compile(r"\b([A-Za-z]+(?:/[A-Za-z0-9_+\-]+)+)\b")


def match_command(message: str) -> Optional[IntentResult]:
    """Match an exact command alias ("list", "/done", "madad", ...).

    Args:
        message: Raw inbound message

    Returns:
        Zero-payload IntentResult on a match, None otherwise
    """
    intent = FAST_PATH_COMMANDS.get(message.strip().lower())
    if intent is None:
        return None
    return IntentResult(IntentType(intent))


def parse_message(
    message: str,
    timezone: str = "UTC",
    now: Optional[datetime] = None,
) -> IntentResult:
    """Parse a message into an intent using fixed text rules.

    Examples:
    - "remind me to call mom tomorrow at 7pm"
    - "remind me in 20 minutes to check the oven"
    - "water the plants every day at 8am"
    - "my timezone is Asia/Kolkata"

    Args:
        message: Raw inbound message
        timezone: User's IANA timezone; clock times are read in this zone
        now: Current instant (defaults to now, UTC)

    Returns:
        IntentResult; UNKNOWN when no rule applies or no time is found
    """
    now = _as_aware(now or datetime.now(dt_timezone.utc))
    text = message.strip().lower()
    if not text:
        return IntentResult.unknown()

    if REMIND_CUE.search(text):
        return _parse_create(text, timezone, now)

    for intent, pattern in INTENT_KEYWORDS:
        if re.search(pattern, text):
            return _keyword_result(IntentType(intent), message, text)

    if TEMPORAL_CUE.search(text):
        return _parse_create(text, timezone, now)

    return IntentResult.unknown()


def _keyword_result(intent: IntentType, message: str, text: str) -> IntentResult:
    if intent == IntentType.TIMEZONE:
        zone = _find_timezone(message)
        if zone is None:
            return IntentResult.unknown()
        return IntentResult(IntentType.TIMEZONE, timezone=zone)

    if intent == IntentType.DONE:
        return IntentResult(IntentType.DONE, query=done_query(text))

    return IntentResult(intent)


def done_query(text: str) -> Optional[str]:
    """Strip done-words from a DONE message, leaving what to search for."""
    query = re.sub(DONE_WORDS_PATTERN, " ", text.lower())
    query = _clean(query)
    return query or None


def _find_timezone(message: str) -> Optional[str]:
    for candidate in IANA_ZONE.findall(message):
        if is_valid_timezone(candidate):
            return candidate

    lowered = message.lower()
    for alias, zone in TIMEZONE_ALIASES.items():
        if re.search(rf"\b{re.escape(alias)}\b", lowered):
            return zone
    return None


def _parse_create(text: str, timezone: str, now: datetime) -> IntentResult:
    zone = _zone_or_utc(timezone)

    task = REMIND_PREFIX.sub("", text)

    tomorrow = bool(TOMORROW.search(task))
    if tomorrow:
        task = TOMORROW.sub(" ", task, count=1)

    offset = None
    for unit, pattern in OFFSET_PATTERNS:
        match = pattern.search(task)
        if match:
            try:
                offset = timedelta(**{unit: int(match.group(1))})
            except OverflowError:
                logger.debug(f"Offset out of range in: {text[:60]}")
                return IntentResult.unknown()
            task = _cut(task, match)
            break

    clock = None
    match = AT_TIME.search(task) or BARE_TIME.search(task)
    if match:
        clock = _parse_clock(match.group(1), match.group(2), match.group(3))
        if clock is not None:
            task = _cut(task, match)

    recurrence = RecurrenceRule.NONE
    for rule, pattern in RECURRENCE_PATTERNS:
        if pattern.search(task):
            recurrence = rule
            task = pattern.sub(" ", task)
            break

    if not tomorrow and offset is None and clock is None:
        logger.debug(f"Heuristic parser found no time phrase in: {text[:60]}")
        return IntentResult.unknown()

    try:
        base = now + timedelta(days=1 if tomorrow else 0) + (offset or timedelta())
        scheduled_at = base
        if clock is not None:
            hour, minute = clock
            local = base.astimezone(zone).replace(hour=hour, minute=minute, second=0, microsecond=0)
            scheduled_at = local.astimezone(dt_timezone.utc)
            if scheduled_at <= now and not tomorrow:
                scheduled_at = (local + timedelta(days=1)).astimezone(dt_timezone.utc)
    except (OverflowError, ValueError):
        logger.debug(f"Time out of range in: {text[:60]}")
        return IntentResult.unknown()

    return IntentResult.create(_clean(task) or DEFAULT_TASK, scheduled_at, recurrence)


def _parse_clock(hour_str: str, minute_str: Optional[str], meridiem: Optional[str]) -> Optional[tuple[int, int]]:
    """Convert "7", "30", "pm" into (19, 30); None when out of range."""
    hour = int(hour_str)
    minute = int(minute_str) if minute_str else 0

    if meridiem:
        if hour < 1 or hour > 12:
            return None
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        return None
    return hour, minute


def _cut(text: str, match: re.Match) -> str:
    return f"{text[:match.start()]} {text[match.end():]}"


def _clean(task: str) -> str:
    task = re.sub(r"\s+", " ", task).strip()
    task = task.strip(".,;:!-–")
    task = re.sub(r"^(to|about|that)\s+", "", task)
    task = re.sub(r"\s+(at|on|in|to|by)$", "", task)
    return task.strip()


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False


def _zone_or_utc(name: str) -> ZoneInfo:
    if name and is_valid_timezone(name):
        return ZoneInfo(name)
    logger.warning(f"Unknown timezone '{name}', reading clock times as UTC")
    return ZoneInfo("UTC")


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt_timezone.utc)
    return value
