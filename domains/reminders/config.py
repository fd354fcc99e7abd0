"""Reminders domain configuration - intent cascade and dispatch policy."""

from typing import Final

# --- Intent providers (cascade order: primary, secondary, tertiary) ---
OPENAI_URL: Final[str] = "https://api.openai.com/v1/chat/completions"
OPENAI_MODEL: Final[str] = "gpt-4o-mini"
OPENAI_TIMEOUT: Final[float] = 4.0

GEMINI_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
GEMINI_MODEL: Final[str] = "gemini-2.0-flash"
GEMINI_TIMEOUT: Final[float] = 4.0

OPENROUTER_URL: Final[str] = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_MODEL: Final[str] = "mistralai/mistral-7b-instruct:free"
OPENROUTER_TIMEOUT: Final[float] = 5.0
OPENROUTER_REFERER: Final[str] = "https://remindai.com"
OPENROUTER_TITLE: Final[str] = "RemindAI"

# Consecutive provider failures before the breaker skips it
PROVIDER_FAILURE_THRESHOLD: Final[int] = 5
PROVIDER_RECOVERY_TIMEOUT: Final[float] = 60.0

# --- Dispatch ---
DISPATCH_MAX_ATTEMPTS: Final[int] = 3          # attempts in total, first one included
DISPATCH_BACKOFF_SECONDS: Final[float] = 60.0  # doubled after every failed attempt
POLL_INTERVAL_SECONDS: Final[int] = 60         # pick up externally created reminders
LIST_LIMIT: Final[int] = 10

# --- Heuristic vocabulary ---
DEFAULT_TASK: Final[str] = "Reminder"

# Exact single-message commands, checked before any provider is called
FAST_PATH_COMMANDS: Final[dict[str, str]] = {
    # LIST
    "list": "LIST", "/list": "LIST", "ls": "LIST", "reminders": "LIST",
    "my reminders": "LIST", "show reminders": "LIST", "list reminders": "LIST",
    "suchi": "LIST", "dikhao": "LIST", "सूची": "LIST",
    # DONE
    "done": "DONE", "/done": "DONE", "completed": "DONE", "finished": "DONE",
    "ho gaya": "DONE", "hogaya": "DONE", "ho gya": "DONE", "हो गया": "DONE",
    # HELP
    "help": "HELP", "/help": "HELP", "/start": "HELP", "?": "HELP",
    "madad": "HELP", "मदद": "HELP",
    # BILLING
    "billing": "BILLING", "/billing": "BILLING", "upgrade": "BILLING",
    "subscription": "BILLING", "plan": "BILLING",
    # ERASE
    "erase": "ERASE", "/erase": "ERASE", "delete my data": "ERASE",
}

# Substring vocabulary (word-bounded) for the heuristic parser, checked in this order
INTENT_KEYWORDS: Final[list[tuple[str, str]]] = [
    ("ERASE", r"\b(erase|delete my (data|account)|forget me)\b"),
    ("BILLING", r"\b(billing|subscription|subscribe|payment|upgrade|premium)\b"),
    ("TIMEZONE", r"\b(timezone|time zone)\b"),
    ("HELP", r"\b(help|commands|how do i|madad)\b"),
    ("DONE", r"\b(done|complete[d]?|finish(ed)?|mark)\b"),
    ("LIST", r"\b(list|show|pending|my reminders|my tasks)\b"),
]

# Words removed from a DONE message to leave the search query
DONE_WORDS_PATTERN: Final[str] = r"\b(done|completed?|finish(ed)?|mark(ed)?|as|with|the|i|is|have|task)\b"

# Plain-language timezone names accepted in TIMEZONE messages
TIMEZONE_ALIASES: Final[dict[str, str]] = {
    "utc": "UTC",
    "gmt": "UTC",
    "ist": "Asia/Kolkata",
    "india": "Asia/Kolkata",
    "mumbai": "Asia/Kolkata",
    "delhi": "Asia/Kolkata",
    "london": "Europe/London",
    "uk": "Europe/London",
    "dubai": "Asia/Dubai",
    "singapore": "Asia/Singapore",
    "new york": "America/New_York",
    "est": "America/New_York",
    "pst": "America/Los_Angeles",
    "california": "America/Los_Angeles",
}
