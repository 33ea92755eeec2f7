"""Revocation Oracle — checks a credential's generation against the principal's live counter.

Invariants:
    - A credential is active only while claims.generation == current generation
    - Staleness is bounded by ttl_seconds: a revocation becomes effective for every
      process within one TTL, immediately in the process that performed it
    - ttl_seconds == 0 disables caching (every check reads the store)
    - Missing principal is an AuthError (PRINCIPAL_NOT_FOUND), store outages propagate
      as DatabaseError (retryable), never as success

Design Decisions:
    - Cache is an injected GenerationCache, not a module global: tests and revocation
      events clear it explicitly
    - Bounded-staleness over per-request store reads: a small residual validity window
      in exchange for no round-trip on the hot path
"""

import logging
import time
from typing import Callable

from trustgate.core.claims import VerifiedClaims
from trustgate.core.domain_types import PrincipalId
from trustgate.core.errors import AuthError, AuthFailure, ErrorContext
from trustgate.core.generation_cache import GenerationCache
from trustgate.core.repository_protocols import PrincipalStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0


class RevocationOracle:
    """Generation-counter revocation with a short-lived per-process cache."""

    def __init__(
        self,
        store: PrincipalStore,
        cache: GenerationCache | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache = cache if cache is not None else GenerationCache()
        self.ttl_seconds = max(0.0, ttl_seconds)
        self._clock = clock

    async def current_generation(self, principal_id: PrincipalId) -> int:
        """Cached generation if fresh, otherwise read through the store."""
        now = self._clock()
        cached = self.cache.get(principal_id, now)
        if cached is not None:
            return cached

        generation = await self.store.get_generation(principal_id)
        if generation is None:
            self.cache.forget(principal_id)
            raise AuthError(
                AuthFailure.PRINCIPAL_NOT_FOUND,
                ErrorContext(principal_id=principal_id),
            )
        if self.ttl_seconds > 0:
            self.cache.put(principal_id, generation, self._clock() + self.ttl_seconds)
        return generation

    async def ensure_active(self, claims: VerifiedClaims) -> None:
        current = await self.current_generation(claims.subject)
        if claims.generation != current:
            raise AuthError(
                AuthFailure.TOKEN_REVOKED,
                ErrorContext(principal_id=claims.subject),
            )

    async def revoke(self, principal_id: PrincipalId) -> int:
        """Invalidate every credential issued so far for principal_id."""
        generation = await self.store.increment_generation(principal_id)
        self.cache.forget(principal_id)
        if generation is None:
            raise AuthError(
                AuthFailure.PRINCIPAL_NOT_FOUND,
                ErrorContext(principal_id=principal_id),
            )
        logger.info(
            "Principal credentials revoked",
            extra={"principal_id": principal_id},
        )
        return generation

    def forget(self, principal_id: PrincipalId) -> None:
        self.cache.forget(principal_id)

    def clear_cache(self) -> None:
        self.cache.clear()
