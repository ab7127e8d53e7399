"""Retry policy for Home Graph API calls.

Exponential backoff with jitter, bounded by a maximum number of attempts.
"""

from __future__ import annotations

import random

# HTTP statuses worth retrying: throttling and transient server errors
RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class RetryPolicy:
    """Exponential backoff retry policy with jitter.

    ``max_attempts`` counts the first try, so ``max_attempts=3`` means one call
    plus at most two retries.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 10.0,
        jitter_factor: float = 0.1,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first (minimum 1)
            base_delay_seconds: Base delay for first retry (default: 0.5s)
            max_delay_seconds: Maximum delay cap (default: 10.0s)
            jitter_factor: Jitter as fraction of delay (default: 0.1 = 10%)
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor

    def get_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-indexed).

        Formula: min(base * 2 ** attempt, max) + uniform(0, delay * jitter_factor)
        """
        delay = min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)
        jitter = random.uniform(0, delay * self.jitter_factor)
        return delay + jitter

    def should_retry(self, attempt: int, status: int | None = None) -> bool:
        """Whether another try is allowed after ``attempt`` (1-indexed) failed.

        ``status`` is the HTTP status of the failed try, None for connection errors.
        """
        if attempt >= self.max_attempts:
            return False
        return status is None or status in RETRYABLE_STATUSES

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor})"
        )
