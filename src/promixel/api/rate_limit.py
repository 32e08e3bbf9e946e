"""Per-client sliding window rate limiting for the generation endpoint.

Each client key (an IP address, or IP plus path) owns a
:class:`~promixel.core.models.RateLimitRecord`.  The request counter resets
once more than ``window_seconds`` have passed since the window started.  A
request that pushes the counter past ``max_requests`` is rejected and blocks
the key until the window ends.  Repeated upstream failures block the key for
the longer ``block_seconds`` cooldown.

State is process-local.  Running several workers gives each worker its own
limiter; a shared store with atomic increments is needed for that.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from promixel.core.models import RateLimitRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of :meth:`RateLimiter.check`.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Configured requests per window.
        remaining: Requests left in the current window.
        reset_at: Epoch seconds at which the current window ends.
        retry_after: Whole seconds to wait before retrying (0 when allowed).
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Fixed-ceiling sliding window limiter keyed by client identity."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        block_seconds: float = 600.0,
        max_consecutive_failures: int = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self.max_consecutive_failures = max_consecutive_failures
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def _blocked_decision(self, record: RateLimitRecord, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            reset_at=record.blocked_until,
            retry_after=max(1, math.ceil(record.blocked_until - now)),
        )

    def check(self, key: str) -> RateLimitDecision:
        """Count a request for ``key`` and decide whether it may proceed."""
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = RateLimitRecord(window_start=now)
                self._records[key] = record
            record.last_seen = now

            if record.blocked:
                if now < record.blocked_until:
                    return self._blocked_decision(record, now)
                # Block expired: start a fresh window.
                record.blocked = False
                record.consecutive_failures = 0
                record.request_count = 0
                record.window_start = now

            if now - record.window_start > self.window_seconds:
                record.request_count = 0
                record.window_start = now

            record.request_count += 1
            reset_at = record.window_start + self.window_seconds

            if record.request_count > self.max_requests:
                record.blocked = True
                record.blocked_until = reset_at
                logger.warning(
                    f"Rate limit exceeded for {key} "
                    f"(count={record.request_count}, limit={self.max_requests})"
                )
                return self._blocked_decision(record, now)

            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - record.request_count),
                reset_at=reset_at,
            )

    def record_failure(self, key: str) -> None:
        """Count an upstream failure; too many in a row blocks the key."""
        now = self._clock()
        with self._lock:
            record = self._records.setdefault(key, RateLimitRecord(window_start=now))
            record.consecutive_failures += 1
            record.last_seen = now
            if record.consecutive_failures >= self.max_consecutive_failures:
                record.blocked = True
                record.blocked_until = max(record.blocked_until, now + self.block_seconds)
                logger.warning(
                    f"Blocking {key} for {self.block_seconds}s after "
                    f"{record.consecutive_failures} consecutive failures"
                )

    def record_success(self, key: str) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.consecutive_failures = 0

    def sweep(self) -> int:
        """Remove idle records so memory stays bounded.  Returns the count removed."""
        now = self._clock()
        idle_after = max(self.window_seconds, self.block_seconds)
        with self._lock:
            stale = [
                key
                for key, record in self._records.items()
                if now - record.last_seen > idle_after
                and not (record.blocked and now < record.blocked_until)
            ]
            for key in stale:
                del self._records[key]
        if stale:
            logger.debug(f"Swept {len(stale)} idle rate limit records")
        return len(stale)

    def get_record(self, key: str) -> RateLimitRecord | None:
        return self._records.get(key)

    def __len__(self) -> int:
        return len(self._records)
