"""Prekey Bundle Broker — publishes and hands out X3DH key material exactly once per key.

Invariants:
    - publish validates before writing; the owner's bundle and policy are replaced whole
    - claim authorization: owner, allow_any_requester, allowlist, or (with a channel id)
      requester AND owner both members of that channel
    - The lowest unused one-time key is flipped by a compare-and-swap; zero rows affected
      means another claimant won and ConflictError is raised (never a reused key)
    - No one-time key left -> NoPreKeysAvailableError (signed prekey alone is not served)
    - The served key material is what the CAS consumed, not the earlier read: a republish
      between read and CAS can never hand out a rotated-out key

Design Decisions:
    - Optimistic CAS over locking the bundle: claims for different keys never wait on each other
    - claim_with_retry re-runs selection from a fresh read after a conflict; the retry
      budget is small because each conflict means another claimant made progress
"""

import logging
from dataclasses import replace

from trustgate.core.domain_types import PrincipalId
from trustgate.core.errors import (
    ConflictError, ErrorContext, ForbiddenError, NoPreKeysAvailableError,
    PayloadValidationError, ResourceNotFoundError,
)
from trustgate.core.prekeys import (
    AccessDecision, ClaimContext, ClaimedBundle, KeyLimits, PrekeyBundle,
    evaluate_access, select_one_time_key, validate_bundle,
)
from trustgate.core.repository_protocols import MembershipDirectory, PrekeyBundleStore

logger = logging.getLogger(__name__)


class PrekeyBundleBroker:
    """Stores bundles and serves single-use one-time prekeys."""

    def __init__(
        self,
        store: PrekeyBundleStore,
        membership: MembershipDirectory,
        limits: KeyLimits | None = None,
    ):
        self.store = store
        self.membership = membership
        self.limits = limits or KeyLimits()

    async def publish(self, bundle: PrekeyBundle) -> None:
        """Validate and atomically replace the owner's bundle; all one-time keys start unused."""
        problem = validate_bundle(bundle, self.limits)
        if problem is not None:
            field, message = problem
            raise PayloadValidationError(
                message, field, ErrorContext(owner_id=bundle.owner_id),
            )
        fresh = replace(
            bundle,
            one_time_prekeys=tuple(
                replace(otk, used=False) for otk in bundle.one_time_prekeys
            ),
        )
        await self.store.replace(fresh)
        logger.info(
            f"Prekey bundle published with {len(fresh.one_time_prekeys)} one-time keys",
            extra={"owner_id": bundle.owner_id},
        )

    async def claim(
        self,
        requester_id: PrincipalId,
        owner_id: PrincipalId,
        context: ClaimContext | None = None,
    ) -> ClaimedBundle:
        """Authorize, then consume the lowest unused one-time key with a single CAS."""
        context = context or ClaimContext()
        bundle = await self.store.get(owner_id)
        if bundle is None:
            raise ResourceNotFoundError("PrekeyBundle", owner_id)

        await self._authorize(requester_id, bundle, context)

        candidate = select_one_time_key(bundle.one_time_prekeys)
        if candidate is None:
            raise NoPreKeysAvailableError(owner_id)

        claimed = await self.store.consume_one_time_key(owner_id, candidate.key_id)
        if claimed is None:
            logger.info(
                "One-time prekey claimed concurrently",
                extra={"owner_id": owner_id, "key_id": candidate.key_id},
            )
            raise ConflictError(
                "One-time prekey was claimed concurrently; retry",
                ErrorContext(owner_id=owner_id),
            )

        return claimed

    async def claim_with_retry(
        self,
        requester_id: PrincipalId,
        owner_id: PrincipalId,
        context: ClaimContext | None = None,
        max_attempts: int = 3,
    ) -> ClaimedBundle:
        """claim(), re-selecting after each lost race up to max_attempts."""
        attempts = max(1, max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await self.claim(requester_id, owner_id, context)
            except ConflictError:
                if attempt == attempts:
                    raise
                logger.debug(
                    "Retrying prekey claim after conflict",
                    extra={"owner_id": owner_id, "attempt": attempt},
                )
        raise AssertionError("unreachable")

    async def _authorize(
        self, requester_id: PrincipalId, bundle: PrekeyBundle, context: ClaimContext,
    ) -> None:
        decision = evaluate_access(requester_id, bundle.owner_id, bundle.policy, context)
        if decision == AccessDecision.ALLOW:
            return
        if decision == AccessDecision.CHECK_CHANNEL and context.channel_id:
            requester_in = await self.membership.is_member(context.channel_id, requester_id)
            owner_in = requester_in and await self.membership.is_member(
                context.channel_id, bundle.owner_id,
            )
            if requester_in and owner_in:
                return
        logger.warning(
            "Prekey claim denied by bundle policy",
            extra={
                "principal_id": requester_id, "owner_id": bundle.owner_id,
                "channel_id": context.channel_id,
            },
        )
        raise ForbiddenError(
            "Not allowed to fetch this prekey bundle",
            ErrorContext(
                principal_id=requester_id, owner_id=bundle.owner_id,
                channel_id=context.channel_id,
            ),
        )
