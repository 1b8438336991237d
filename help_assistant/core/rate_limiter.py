"""Simple in-memory rate limiter for the chat endpoint."""

import threading
import time
from collections import defaultdict

from help_assistant.core.errors import ErrorCode, create_error
from help_assistant.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter.

    Tracks requests per key (e.g., user id) and enforces limits.
    Buckets live in process memory, so limits apply per worker.
    """

    def __init__(self, requests_per_minute: int = 10, burst_size: int = 15):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Sustained rate limit
            burst_size: Maximum burst size
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0  # tokens per second

        # key -> (tokens, last_refill_time)
        self._buckets: dict[str, tuple[float, float]] = defaultdict(
            lambda: (float(burst_size), time.time())
        )
        self._lock = threading.Lock()

    def _refill_bucket(self, key: str) -> None:
        current_tokens, last_refill = self._buckets[key]
        now = time.time()

        elapsed = now - last_refill
        new_tokens = min(self.burst_size, current_tokens + elapsed * self.refill_rate)

        self._buckets[key] = (new_tokens, now)

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume tokens for a request.

        Args:
            key: Rate limit key (e.g., user id)
            cost: Token cost for this request (default 1.0)

        Returns:
            True if allowed

        Raises:
            AssistantError: RATE_LIMITED with a Retry-After header
        """
        with self._lock:
            self._refill_bucket(key)
            current_tokens, last_refill = self._buckets[key]

            if current_tokens >= cost:
                self._buckets[key] = (current_tokens - cost, last_refill)
                return True

            retry_after = int((cost - current_tokens) / self.refill_rate) + 1

        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {current_tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise create_error(
            ErrorCode.RATE_LIMITED,
            f"Rate limit exceeded for {key}",
            headers={"Retry-After": str(retry_after)},
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

        logger.info(f"Rate limit reset for key: {key}")
