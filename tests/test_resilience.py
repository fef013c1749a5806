"""
Lumina Tests - Quota Retries and Circuit Breaker
"""

import asyncio

import pytest

from conftest import FakeClock
from lumina.vision.client import VisionAPIError
from lumina.vision.resilience import (
    QuotaCircuitBreaker,
    QuotaExceededError,
    ResilientInvoker,
    is_quota_error,
)


class CountingOperation:
    """Nullary async operation that fails a configured number of times."""

    def __init__(self, error=None, failures=None, result="ok"):
        self.error = error
        self.failures = failures  # None means always fail
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None and (self.failures is None or self.calls <= self.failures):
            raise self.error
        return self.result


class TestQuotaClassifier:
    def test_status_code_429(self):
        assert is_quota_error(VisionAPIError("Too Many Requests", status_code=429))

    def test_numeric_code_429(self):
        assert is_quota_error(VisionAPIError("whatever", code=429))

    def test_message_markers(self):
        assert is_quota_error(RuntimeError("Quota exceeded for model"))
        assert is_quota_error(RuntimeError("RESOURCE_EXHAUSTED: try later"))
        assert is_quota_error(RuntimeError("HTTP 429"))

    def test_digits_inside_numbers_do_not_match(self):
        assert not is_quota_error(RuntimeError("Upload of 14290 bytes failed"))
        assert not is_quota_error(RuntimeError("request id 842957 timed out"))

    def test_other_errors(self):
        assert not is_quota_error(ValueError("boom"))
        assert not is_quota_error(VisionAPIError("Internal error", status_code=500))


class TestResilientInvoker:
    def test_quota_error_exhausts_retries(self):
        """Three attempts with 2s then 4s backoff, then QuotaExceededError."""
        clock = FakeClock()
        operation = CountingOperation(error=VisionAPIError("quota", status_code=429))
        invoker = ResilientInvoker(max_retries=2, base_delay=2.0, sleep=clock.sleep)

        with pytest.raises(QuotaExceededError) as exc_info:
            asyncio.run(invoker.invoke(operation))

        assert operation.calls == 3
        assert clock.sleeps == [2.0, 4.0]
        assert isinstance(exc_info.value.__cause__, VisionAPIError)

    def test_non_quota_error_propagates_unchanged(self):
        clock = FakeClock()
        error = ValueError("bad payload")
        operation = CountingOperation(error=error)
        invoker = ResilientInvoker(sleep=clock.sleep)

        with pytest.raises(ValueError) as exc_info:
            asyncio.run(invoker.invoke(operation))

        assert exc_info.value is error
        assert operation.calls == 1
        assert clock.sleeps == []

    def test_recovers_after_transient_quota_error(self):
        clock = FakeClock()
        operation = CountingOperation(error=RuntimeError("429"), failures=1, result=[1, 2])
        invoker = ResilientInvoker(sleep=clock.sleep)

        result = asyncio.run(invoker.invoke(operation))

        assert result == [1, 2]
        assert operation.calls == 2
        assert clock.sleeps == [2.0]

    def test_no_delay_before_first_attempt(self):
        clock = FakeClock()
        invoker = ResilientInvoker(sleep=clock.sleep)

        assert asyncio.run(invoker.invoke(CountingOperation())) == "ok"
        assert clock.sleeps == []

    def test_custom_classifier(self):
        """A backend-specific classifier replaces the default one."""
        clock = FakeClock()
        operation = CountingOperation(error=KeyError("throttled"))
        invoker = ResilientInvoker(
            max_retries=1,
            classifier=lambda e: isinstance(e, KeyError),
            sleep=clock.sleep,
        )

        with pytest.raises(QuotaExceededError):
            asyncio.run(invoker.invoke(operation))

        assert operation.calls == 2
        assert clock.sleeps == [2.0]


class TestQuotaCircuitBreaker:
    def test_initially_closed(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)

        assert not breaker.is_open()
        assert breaker.remaining() == 0

    def test_trip_opens_until_expiry(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(60)

        assert breaker.is_open()
        clock.advance(59.5)
        assert breaker.is_open()
        clock.advance(0.5)
        assert not breaker.is_open()

    def test_remaining_decreases_to_zero(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(60)

        readings = []
        for _ in range(13):
            readings.append(breaker.remaining())
            clock.advance(5.5)

        assert readings[0] == 60
        assert readings == sorted(readings, reverse=True)
        assert readings[-1] == 0

    def test_remaining_rounds_up(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(10)
        clock.advance(0.2)

        assert breaker.remaining() == 10

    def test_trip_uses_default_cooldown(self, clock):
        breaker = QuotaCircuitBreaker(default_cooldown=60.0, clock=clock)
        breaker.trip()

        assert breaker.remaining() == 60

    def test_trip_while_open_keeps_window(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(60)
        clock.advance(30)

        breaker.trip(60)
        assert breaker.remaining() == 30

        breaker.trip(5)
        assert breaker.remaining() == 30

    def test_can_trip_again_after_expiry(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(10)
        clock.advance(11)

        breaker.trip(20)
        assert breaker.remaining() == 20

    def test_wait_message_mentions_seconds(self, clock):
        breaker = QuotaCircuitBreaker(clock=clock)
        breaker.trip(42)

        assert "42s" in breaker.wait_message()
