"""Cascading intent resolver.

Order for every message:
1. Fast-path command aliases (no provider is called)
2. Providers in sequence, each raced against its own timeout
3. Heuristic parser

A provider that raises, times out, or answers UNKNOWN is a fall-through.
``resolve`` always returns an IntentResult.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from config import DEFAULT_TIMEZONE
from logger import logger
from . import config
from .circuit_breaker import CircuitBreaker
from .parser import match_command, parse_message
from .providers import (
    ProviderAdapter,
    gemini_provider,
    openai_provider,
    openrouter_provider,
)
from .types import IntentResult, IntentType

T = TypeVar("T")


async def race_with_timeout(
    call: Callable[[], Awaitable[T]],
    timeout: float,
    fallback: T,
) -> T:
    """Run ``call`` and return its result, or ``fallback`` if it takes too long.

    The first of (call settles, timer fires) wins. On timeout the call is
    cancelled and whatever it eventually produces is discarded. Exceptions
    raised by the call before the timer fires propagate.

    Args:
        call: Zero-argument coroutine function
        timeout: Seconds to wait
        fallback: Value returned on timeout

    Returns:
        The call's result or ``fallback``
    """
    task = asyncio.ensure_future(call())
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_outcome)
    return fallback


def _discard_outcome(task: asyncio.Future) -> None:
    # Retrieve the outcome so a late failure is not reported as unhandled
    if not task.cancelled():
        task.exception()


@dataclass
class ProviderSlot:
    """One position in the cascade: an adapter, its timeout and its breaker."""
    adapter: ProviderAdapter
    timeout: float
    breaker: Optional[CircuitBreaker] = None

    def __post_init__(self):
        if self.breaker is None:
            self.breaker = CircuitBreaker(name=self.adapter.name)


class IntentResolver:
    """Resolve a free-text message into a single IntentResult."""

    def __init__(
        self,
        providers: list[ProviderSlot],
        fallback: Callable[[str, str], IntentResult] = parse_message,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.providers = providers
        self.fallback = fallback
        self.default_timezone = default_timezone

    async def resolve(self, message: str, timezone: Optional[str] = None) -> IntentResult:
        """Classify a message.

        Args:
            message: Raw inbound text
            timezone: User's IANA timezone (default timezone when None)

        Returns:
            IntentResult; never raises
        """
        timezone = timezone or self.default_timezone

        command = match_command(message)
        if command is not None:
            logger.debug(f"Fast-path command matched: {command.intent.value}")
            return command

        for slot in self.providers:
            result = await self._try_provider(slot, message, timezone)
            if result is not None:
                return result

        try:
            result = self.fallback(message, timezone)
        except Exception as e:
            logger.error(f"Heuristic parser failed: {e}")
            return IntentResult.unknown()

        logger.info(f"Resolved by heuristic parser: {result.intent.value}")
        return result

    async def _try_provider(
        self,
        slot: ProviderSlot,
        message: str,
        timezone: str,
    ) -> Optional[IntentResult]:
        name = slot.adapter.name

        if not slot.breaker.allow_request():
            logger.debug(f"Skipping provider {name}: circuit open")
            return None

        try:
            result = await race_with_timeout(
                lambda: slot.adapter.parse(message, timezone),
                slot.timeout,
                None,
            )
        except Exception as e:
            slot.breaker.record_failure()
            logger.warning(f"Provider {name} failed: {e}")
            return None

        if result is None:
            slot.breaker.record_failure()
            logger.warning(f"Provider {name} timed out after {slot.timeout}s")
            return None

        if not isinstance(result, IntentResult) or result.intent == IntentType.UNKNOWN:
            # Answered, but nothing usable; the provider itself is healthy
            slot.breaker.record_success()
            logger.info(f"Provider {name} returned UNKNOWN, falling through")
            return None

        slot.breaker.record_success()
        logger.info(f"Resolved by {name}: {result.intent.value}")
        return result


def build_default_resolver() -> IntentResolver:
    """Resolver with OpenAI, Gemini and OpenRouter in cascade order."""
    return IntentResolver(
        providers=[
            ProviderSlot(openai_provider(), config.OPENAI_TIMEOUT),
            ProviderSlot(gemini_provider(), config.GEMINI_TIMEOUT),
            ProviderSlot(openrouter_provider(), config.OPENROUTER_TIMEOUT),
        ],
    )
