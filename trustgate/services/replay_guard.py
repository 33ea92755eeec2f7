"""Replay Guard — admits each (channel, ciphertext) pair once per TTL window.

Invariants:
    - Admission is a single atomic SET NX PX on the shared cache (no check-then-set race)
    - Cache missing, unreachable, timing out or erroring -> in-process fallback, never an exception
    - admit() returns True only for the first sighting inside the window
    - Keys embed a SHA-256 digest of the ciphertext text, never the payload itself
    - release() undoes an admission whose message was never stored (shared cache AND fallback)

Design Decisions:
    - Degrade instead of fail: blocking delivery because redis blinked is worse than a
      per-process dedupe window during the outage
    - PX (milliseconds) instead of EX: fractional TTLs keep the same semantics on both paths
"""

import asyncio
import logging
import time
from typing import Callable

from redis.exceptions import RedisError

from trustgate.core.repository_protocols import ReplayCache
from trustgate.core.replay_window import ReplayFallbackStore, replay_key

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


class ReplayGuard:
    """Deduplicates ciphertext submissions per channel within a sliding TTL."""

    def __init__(
        self,
        cache: ReplayCache | None,
        fallback: ReplayFallbackStore | None = None,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        key_prefix: str = "replay",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache = cache
        self.fallback = fallback if fallback is not None else ReplayFallbackStore()
        self.default_ttl_seconds = default_ttl_seconds
        self.key_prefix = key_prefix
        self._clock = clock

    async def admit(
        self, channel_id: str, ciphertext: str, ttl_seconds: float | None = None,
    ) -> bool:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        key = replay_key(channel_id, ciphertext, self.key_prefix)

        if self.cache is not None:
            try:
                result = await self.cache.set(
                    key, "1", nx=True, px=max(1, int(ttl * 1000)),
                )
                return bool(result)
            except (RedisError, OSError, asyncio.TimeoutError) as e:
                logger.error(
                    f"Replay cache unavailable, using in-process fallback: {e}",
                    extra={"channel_id": channel_id},
                )

        return self.fallback.admit(key, self._clock(), ttl)

    async def release(self, channel_id: str, ciphertext: str) -> None:
        """Forget an admitted pair whose delivery never happened, so a retry is admitted."""
        key = replay_key(channel_id, ciphertext, self.key_prefix)
        self.fallback.discard(key)
        if self.cache is None:
            return
        try:
            await self.cache.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                f"Replay cache unavailable, admission not released: {e}",
                extra={"channel_id": channel_id},
            )

    def reset_fallback(self) -> None:
        self.fallback.clear()
