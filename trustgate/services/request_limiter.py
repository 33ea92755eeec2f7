"""Request Limiter — per-principal sliding window for the message API.

Invariants:
    - At most max_requests hits per principal inside any window_seconds span
    - A refused hit is not recorded (waiting out Retry-After always succeeds)
    - Each principal keeps at most max_requests timestamps; idle principals are
      swept once the table outgrows sweep_threshold

Design Decisions:
    - In-process like the reauth limiter (same window helpers): limits are per worker
"""

import logging
import time
from typing import Callable

from trustgate.core.channel_session import prune_attempts, retry_after_ms
from trustgate.core.domain_types import PrincipalId
from trustgate.core.errors import ErrorContext, RateLimitedError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_REQUESTS = 120


class PrincipalRateLimiter:
    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        sweep_threshold: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max(1, max_requests)
        self.sweep_threshold = sweep_threshold
        self._clock = clock
        self._hits: dict[str, list[float]] = {}

    def hit(self, principal_id: PrincipalId) -> None:
        """Record one request, or raise RateLimitedError when the window is full."""
        now = self._clock()
        hits = prune_attempts(self._hits.get(principal_id, []), now, self.window_seconds)
        if len(hits) >= self.max_requests:
            self._hits[principal_id] = hits
            wait_ms = retry_after_ms(hits, now, self.window_seconds)
            logger.warning(
                "Message rate limit reached", extra={"principal_id": principal_id},
            )
            raise RateLimitedError(wait_ms, ErrorContext(principal_id=principal_id))
        hits.append(now)
        self._hits[principal_id] = hits
        if len(self._hits) > self.sweep_threshold:
            self._sweep(now)

    def _sweep(self, now: float) -> None:
        for key in list(self._hits):
            if not prune_attempts(self._hits[key], now, self.window_seconds):
                del self._hits[key]

    def clear(self) -> None:
        self._hits.clear()
