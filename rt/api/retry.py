"""Explicit retry policy for read-only content API calls.

Creation calls (commits, tags) are never wrapped: they are not idempotent,
and the callers pre-check existence instead.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from rt.core.result import Ok, Result

from .models import ApiError

__all__ = ["RetryPolicy", "is_transient"]

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "remote end closed connection",
    "network is unreachable",
)


def is_transient(error: ApiError) -> bool:
    """True for transport failures, rate limiting and server errors."""
    if error.status == 429 or error.status >= 500:
        return True
    if error.status == 0:
        text = error.message.lower()
        return any(marker in text for marker in _TRANSIENT_MARKERS) or not text
    return False


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry with exponential backoff (``base_interval * 2**attempt``).

    Attributes:
        attempts: Total tries, including the first one.
        base_interval: Seconds to wait after the first failure.
        is_retryable: Decides whether an error is worth another try.
        sleep: Injected for tests.
    """

    attempts: int = 3
    base_interval: float = 5.0
    is_retryable: Callable[[ApiError], bool] = is_transient
    sleep: Callable[[float], None] = time.sleep

    def delay(self, attempt: int) -> float:
        return self.base_interval * (2**attempt)

    def run[T](self, call: Callable[[], Result[T, ApiError]]) -> Result[T, ApiError]:
        attempts = max(1, self.attempts)
        result: Result[T, ApiError] = call()
        for attempt in range(attempts - 1):
            if isinstance(result, Ok) or not self.is_retryable(result.error):
                return result
            self.sleep(self.delay(attempt))
            result = call()
        return result

    @classmethod
    def none(cls) -> RetryPolicy:
        """Single attempt, no sleeping."""
        return cls(attempts=1, base_interval=0.0)

