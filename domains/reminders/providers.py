"""LLM intent providers.

Each adapter wraps one external NLU call behind ``parse(message, timezone)``
and returns a canonical IntentResult. Transport errors, non-2xx responses,
missing credentials and unparseable output raise ProviderError; the resolver
treats all of them as a fall-through.
"""

import json
import re
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

import httpx
from dateutil.parser import parse as parse_datetime

from config import GEMINI_API_KEY, OPENAI_API_KEY, OPENROUTER_API_KEY
from logger import logger
from . import config
from .parser import done_query
from .types import IntentResult, IntentType

# Intent aliases seen across providers
INTENT_ALIASES = {
    "COMPLETE": IntentType.DONE,
    "COMPLETED": IntentType.DONE,
    "REMIND": IntentType.CREATE,
    "REMINDER": IntentType.CREATE,
    "SET_TIMEZONE": IntentType.TIMEZONE,
}

SYSTEM_PROMPT = """You are RemindAI Controller, an intent extraction AI for a WhatsApp/Telegram reminder bot.
Extract the user's intent, task and timing.

RULES:
1. Understand English, Hindi and Hinglish. Always write "task" in English.
2. Current UTC: {now_utc}
   User Timezone: {timezone}
   User Local Time: {now_local}
   Resolve relative times ("tomorrow 7pm", "in 10 mins") against User Local Time.
   Return "time" as a UTC ISO8601 string.
3. Recurrence is one of "none", "daily", "weekly", "monthly".

INTENTS:
- CREATE: set a reminder. Requires "task" and "time".
- LIST: show pending reminders.
- DONE: complete a reminder. Put the task keywords in "query".
- TIMEZONE: change timezone. Put the IANA name in "timezone".
- BILLING: payment or subscription questions.
- ERASE: delete the user's data.
- HELP: instructions.
- UNKNOWN: anything else.

Return ONLY valid JSON:
{{"intent": "...", "task": "...", "time": "...", "recurrence": "...", "query": "...", "timezone": "..."}}"""


class ProviderError(Exception):
    """An intent provider call failed or returned unusable output."""


class ProviderAdapter(Protocol):
    """Uniform interface of an external intent provider."""

    name: str

    async def parse(self, message: str, timezone: str) -> IntentResult:
        ...


def build_system_prompt(timezone: str, now: datetime) -> str:
    """Fill the extraction prompt with the current instant in UTC and user time."""
    try:
        local = now.astimezone(ZoneInfo(timezone))
    except Exception:
        local = now
    return SYSTEM_PROMPT.format(
        now_utc=now.isoformat(),
        timezone=timezone,
        now_local=local.strftime("%Y-%m-%d %H:%M (%A)"),
    )


def extract_json(text: str) -> dict:
    """Parse a model reply as a JSON object, tolerating ``` fences."""
    cleaned = text.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Unparseable provider output: {text[:80]!r}") from e
    if not isinstance(data, dict):
        raise ProviderError(f"Provider output is not an object: {text[:80]!r}")
    return data


def normalize_payload(data: dict, message: str, now: datetime) -> IntentResult:
    """Map a provider's JSON into the canonical IntentResult.

    Accepts:
    - {"intent", "task", "time", "recurrence", "query", "timezone"}
    - {"task", "time"} without an intent (CREATE)
    - {"intent": "COMPLETE", ...} (DONE)
    - {"delayMinutes": 30} instead of "time"

    Args:
        data: Decoded provider JSON
        message: Original user message (used to derive a DONE query)
        now: Current instant for relative delays

    Returns:
        Canonical IntentResult (UNKNOWN when CREATE fields are unusable)
    """
    raw_intent = str(data.get("intent") or "").strip().upper()
    if not raw_intent and data.get("task") and (data.get("time") or data.get("delayMinutes")):
        raw_intent = "CREATE"

    intent = INTENT_ALIASES.get(raw_intent)
    if intent is None:
        try:
            intent = IntentType(raw_intent)
        except ValueError:
            return IntentResult.unknown()

    if intent == IntentType.CREATE:
        task = data.get("task")
        scheduled_at = _scheduled_at(data, now)
        return IntentResult.create(task if isinstance(task, str) else None, scheduled_at, data.get("recurrence"))

    if intent == IntentType.DONE:
        query = data.get("query")
        if not isinstance(query, str) or not query.strip():
            query = done_query(message)
        return IntentResult(IntentType.DONE, query=query.strip() if query else None)

    if intent == IntentType.TIMEZONE:
        zone = data.get("timezone")
        if not isinstance(zone, str) or not zone.strip():
            return IntentResult.unknown()
        return IntentResult(IntentType.TIMEZONE, timezone=zone.strip())

    return IntentResult(intent)


def _scheduled_at(data: dict, now: datetime) -> Optional[datetime]:
    for key in ("time", "scheduled_at", "scheduledAt", "datetime"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            try:
                return parse_datetime(value)
            except (ValueError, OverflowError):
                return None

    delay = data.get("delayMinutes")
    if isinstance(delay, (int, float)) and not isinstance(delay, bool) and delay >= 0:
        return now + timedelta(minutes=delay)
    return None


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


class ChatCompletionsProvider:
    """Provider speaking the OpenAI chat-completions protocol (OpenAI, OpenRouter)."""

    def __init__(
        self,
        name: str,
        url: str,
        api_key: Optional[str],
        model: str,
        extra_headers: Optional[dict] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.name = name
        self.url = url
        self.api_key = api_key
        self.model = model
        self.extra_headers = extra_headers or {}
        self._clock = clock

    async def parse(self, message: str, timezone: str) -> IntentResult:
        if not self.api_key:
            raise ProviderError(f"{self.name} API key not configured")

        now = self._clock()
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                        **self.extra_headers,
                    },
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": build_system_prompt(timezone, now)},
                            {"role": "user", "content": message},
                        ],
                        "response_format": {"type": "json_object"},
                        "temperature": 0,
                    },
                    timeout=30,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name} returned no message content") from e
        if not content:
            raise ProviderError(f"{self.name} returned empty content")

        result = normalize_payload(extract_json(content), message, now)
        logger.debug(f"{self.name} parsed intent {result.intent.value}")
        return result


class GeminiProvider:
    """Provider backed by the Gemini generateContent REST endpoint."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = config.GEMINI_MODEL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.api_key = api_key
        self.model = model
        self._clock = clock

    async def parse(self, message: str, timezone: str) -> IntentResult:
        if not self.api_key:
            raise ProviderError("gemini API key not configured")

        now = self._clock()
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    config.GEMINI_URL.format(model=self.model),
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json={
                        "systemInstruction": {"parts": [{"text": build_system_prompt(timezone, now)}]},
                        "contents": [{"role": "user", "parts": [{"text": message}]}],
                        "generationConfig": {
                            "responseMimeType": "application/json",
                            "temperature": 0,
                        },
                    },
                    timeout=30,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            # The request URL carries the key, keep it out of the log
            raise ProviderError(f"gemini request failed: {type(e).__name__}") from e

        text = _gemini_text(data)
        if not text:
            raise ProviderError("gemini returned no text")

        result = normalize_payload(extract_json(text), message, now)
        logger.debug(f"gemini parsed intent {result.intent.value}")
        return result


def _gemini_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()


def openai_provider(api_key: Optional[str] = None) -> ChatCompletionsProvider:
    return ChatCompletionsProvider(
        name="openai",
        url=config.OPENAI_URL,
        api_key=api_key or OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
    )


def gemini_provider(api_key: Optional[str] = None) -> GeminiProvider:
    return GeminiProvider(api_key=api_key or GEMINI_API_KEY)


def openrouter_provider(api_key: Optional[str] = None) -> ChatCompletionsProvider:
    return ChatCompletionsProvider(
        name="openrouter",
        url=config.OPENROUTER_URL,
        api_key=api_key or OPENROUTER_API_KEY,
        model=config.OPENROUTER_MODEL,
        extra_headers={
            "HTTP-Referer": config.OPENROUTER_REFERER,
            "X-Title": config.OPENROUTER_TITLE,
        },
    )
