"""
Quota Resilience

Retry with exponential backoff for rate-limited remote calls, and the
process-wide circuit breaker that suppresses AI work during a quota cooldown.
"""

import asyncio
import logging
import math
import re
import time
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUOTA_MARKERS = ("quota", "rate limit", "resource_exhausted")
STATUS_429 = re.compile(r"\b429\b")


class QuotaExceededError(Exception):
    """Raised when a rate-limited call still fails after every retry."""

    def __init__(self, message: str = "AI quota exceeded (429)."):
        super().__init__(message)


def is_quota_error(error: BaseException) -> bool:
    """
    Default classifier for quota exhaustion.

    Matches an HTTP status of 429, a numeric error code of 429, or a
    rate-limit marker in the message. A bare 429 only counts as a
    standalone number, not inside ids or byte counts.
    """
    if getattr(error, "status_code", None) == 429 or getattr(error, "status", None) == 429:
        return True
    if getattr(error, "code", None) == 429:
        return True
    message = str(error).lower()
    if STATUS_429.search(message):
        return True
    return any(marker in message for marker in QUOTA_MARKERS)


class ResilientInvoker:
    """
    Wraps a remote call with bounded exponential backoff on quota errors.

    Non-quota failures propagate unchanged on the first attempt.
    """

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 2.0,
        classifier: Callable[[BaseException], bool] = is_quota_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.classifier = classifier
        self.sleep = sleep

    async def invoke(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation, retrying quota-classified failures.

        Args:
            operation: Nullary coroutine function performing the remote call

        Returns:
            Whatever operation returns

        Raises:
            QuotaExceededError: When the retry budget is spent on quota errors
        """
        delay = self.base_delay
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.classifier(e):
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"Quota still exhausted after {attempt + 1} attempts")
                    raise QuotaExceededError() from e

                attempt += 1
                logger.warning(f"Quota exceeded (429). Retrying in {delay:g}s ({attempt}/{self.max_retries})")
                await self.sleep(delay)
                delay *= 2


class QuotaCircuitBreaker:
    """
    Process-wide cooldown after quota exhaustion.

    A single timestamp: while the clock is before cooldown_until the breaker
    is open and every AI-dependent operation must short-circuit.
    """

    def __init__(
        self,
        default_cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_cooldown = default_cooldown
        self.clock = clock
        self.cooldown_until = clock()

    def is_open(self) -> bool:
        return self.clock() < self.cooldown_until

    def trip(self, duration: Optional[float] = None) -> None:
        """
        Open the breaker for duration seconds.

        Tripping an already open breaker leaves the current window unchanged.
        """
        if self.is_open():
            logger.debug("Circuit breaker already open, ignoring trip")
            return

        duration = self.default_cooldown if duration is None else duration
        self.cooldown_until = self.clock() + duration
        logger.warning(f"AI quota exhausted, pausing AI features for {duration:g}s")

    def remaining(self) -> int:
        """Whole seconds until the breaker closes, 0 once closed."""
        left = self.cooldown_until - self.clock()
        if left <= 0:
            return 0
        return math.ceil(left)

    def wait_message(self) -> str:
        return f"AI quota reached. Wait {self.remaining()}s before using AI again."
