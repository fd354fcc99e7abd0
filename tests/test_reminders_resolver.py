"""Tests for the cascading intent resolver."""

import asyncio
from datetime import datetime, timezone

import pytest

from domains.reminders.circuit_breaker import CircuitBreaker
from domains.reminders.parser import parse_message
from domains.reminders.providers import ProviderError
from domains.reminders.resolver import IntentResolver, ProviderSlot, race_with_timeout
from domains.reminders.types import IntentResult, IntentType

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

CREATE_RESULT = IntentResult.create("call mom", datetime(2026, 3, 11, 19, 0, tzinfo=timezone.utc))
LIST_RESULT = IntentResult(IntentType.LIST)


class FakeProvider:
    """Provider returning a fixed result, optionally after a delay or with an error."""

    def __init__(self, name, result=None, error=None, delay=0.0):
        self.name = name
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0
        self.finished = False

    async def parse(self, message, timezone):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished = True
        if self.error:
            raise self.error
        return self.result


def heuristic(message, tz):
    return parse_message(message, tz, now=NOW)


def make_resolver(*providers, timeout=0.5):
    return IntentResolver(
        providers=[ProviderSlot(p, timeout) for p in providers],
        fallback=heuristic,
        default_timezone="UTC",
    )


class TestCascade:

    @pytest.mark.asyncio
    async def test_fast_path_skips_providers(self):
        p1 = FakeProvider("p1", result=CREATE_RESULT)
        resolver = make_resolver(p1)

        result = await resolver.resolve("list")

        assert result.intent == IntentType.LIST
        assert p1.calls == 0

    @pytest.mark.asyncio
    async def test_first_provider_success_stops_cascade(self):
        p1 = FakeProvider("p1", result=CREATE_RESULT)
        p2 = FakeProvider("p2", result=LIST_RESULT)
        p3 = FakeProvider("p3", result=LIST_RESULT)
        resolver = make_resolver(p1, p2, p3)

        result = await resolver.resolve("remind me to call mom tomorrow at 7pm")

        assert result == CREATE_RESULT
        assert (p1.calls, p2.calls, p3.calls) == (1, 0, 0)

    @pytest.mark.asyncio
    async def test_error_falls_through(self):
        p1 = FakeProvider("p1", error=ProviderError("HTTP 500"))
        p2 = FakeProvider("p2", result=LIST_RESULT)
        resolver = make_resolver(p1, p2)

        result = await resolver.resolve("what have I got coming up")

        assert result == LIST_RESULT
        assert p2.calls == 1

    @pytest.mark.asyncio
    async def test_unknown_falls_through(self):
        p1 = FakeProvider("p1", result=IntentResult.unknown())
        p2 = FakeProvider("p2", result=LIST_RESULT)
        resolver = make_resolver(p1, p2)

        assert await resolver.resolve("what have I got coming up") == LIST_RESULT

    @pytest.mark.asyncio
    async def test_timeout_falls_through_and_late_result_ignored(self):
        slow = FakeProvider("slow", result=CREATE_RESULT, delay=0.3)
        fast = FakeProvider("fast", result=LIST_RESULT)
        resolver = IntentResolver(
            providers=[ProviderSlot(slow, 0.01), ProviderSlot(fast, 0.5)],
            fallback=heuristic,
        )

        result = await resolver.resolve("what have I got coming up")
        await asyncio.sleep(0.35)

        assert result == LIST_RESULT
        assert slow.calls == 1
        # Cancelled before it could finish
        assert slow.finished is False

    @pytest.mark.asyncio
    async def test_all_fail_equals_heuristic(self):
        message = "remind me to call mom tomorrow at 7pm"
        resolver = IntentResolver(
            providers=[
                ProviderSlot(FakeProvider("p1", error=ProviderError("down")), 0.5),
                ProviderSlot(FakeProvider("p2", result=CREATE_RESULT, delay=0.3), 0.01),
                ProviderSlot(FakeProvider("p3", result=IntentResult.unknown()), 0.5),
            ],
            fallback=heuristic,
        )

        result = await resolver.resolve(message, "UTC")

        assert result == heuristic(message, "UTC")
        assert result.task == "call mom"

    @pytest.mark.asyncio
    async def test_no_providers_uses_heuristic(self):
        resolver = make_resolver()

        result = await resolver.resolve("my timezone is Europe/London")

        assert result.intent == IntentType.TIMEZONE
        assert result.timezone == "Europe/London"

    @pytest.mark.asyncio
    async def test_unexpected_exception_never_escapes(self):
        def broken(message, tz):
            raise RuntimeError("boom")

        resolver = IntentResolver(
            providers=[ProviderSlot(FakeProvider("p1", error=KeyError("choices")), 0.5)],
            fallback=broken,
        )

        result = await resolver.resolve("anything")

        assert result.intent == IntentType.UNKNOWN

    @pytest.mark.asyncio
    async def test_default_timezone_passed_to_provider(self):
        seen = {}

        class Recording(FakeProvider):
            async def parse(self, message, timezone):
                seen["tz"] = timezone
                return LIST_RESULT

        resolver = IntentResolver(
            providers=[ProviderSlot(Recording("rec"), 0.5)],
            default_timezone="Asia/Kolkata",
        )

        await resolver.resolve("what's pending")

        assert seen["tz"] == "Asia/Kolkata"


class TestCircuitBreakerIntegration:

    @pytest.mark.asyncio
    async def test_open_breaker_skips_provider(self):
        p1 = FakeProvider("p1", error=ProviderError("down"))
        p2 = FakeProvider("p2", result=LIST_RESULT)
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, name="p1")
        resolver = IntentResolver(
            providers=[ProviderSlot(p1, 0.5, breaker), ProviderSlot(p2, 0.5)],
            fallback=heuristic,
        )

        for _ in range(4):
            assert await resolver.resolve("what's pending") == LIST_RESULT

        assert p1.calls == 2
        assert p2.calls == 4

    @pytest.mark.asyncio
    async def test_timeouts_count_as_failures(self):
        slow = FakeProvider("slow", result=CREATE_RESULT, delay=0.2)
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="slow")
        resolver = IntentResolver(providers=[ProviderSlot(slow, 0.01, breaker)], fallback=heuristic)

        await resolver.resolve("hello")
        await resolver.resolve("hello")

        assert slow.calls == 1
        assert breaker.get_stats()["times_opened"] == 1


class TestRaceWithTimeout:

    @pytest.mark.asyncio
    async def test_returns_result_when_fast(self):
        async def call():
            return "ok"

        assert await race_with_timeout(call, 0.5, "fallback") == "ok"

    @pytest.mark.asyncio
    async def test_returns_fallback_when_slow(self):
        async def call():
            await asyncio.sleep(1)
            return "late"

        assert await race_with_timeout(call, 0.01, "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_propagates_early_exception(self):
        async def call():
            raise ProviderError("bad json")

        with pytest.raises(ProviderError):
            await race_with_timeout(call, 0.5, None)
