"""Boundary Protocols — contracts between core services and their stores.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, lets tests pass plain fakes
    - consume_one_time_key is a compare-and-swap: returns None when the key was
      already used, which is the only concurrency mechanism for claims. On success
      it returns the key row it flipped and the bundle read in the same transaction
"""

from typing import Protocol

from trustgate.core.domain_types import ChannelId, KeyId, PrincipalId
from trustgate.core.prekeys import ClaimedBundle, PrekeyBundle


class PrincipalStore(Protocol):
    """Contract for principal generation counters — implemented by shell."""
    async def get_generation(self, principal_id: PrincipalId) -> int | None: ...
    async def increment_generation(self, principal_id: PrincipalId) -> int | None: ...


class MembershipDirectory(Protocol):
    """Contract for chat membership lookups — implemented by shell."""
    async def is_member(
        self, channel_id: ChannelId, principal_id: PrincipalId,
    ) -> bool: ...
    async def add_member(
        self, channel_id: ChannelId, principal_id: PrincipalId,
    ) -> None: ...


class PrekeyBundleStore(Protocol):
    """Contract for prekey bundle persistence — implemented by shell."""
    async def get(self, owner_id: PrincipalId) -> PrekeyBundle | None: ...
    async def replace(self, bundle: PrekeyBundle) -> None: ...
    async def consume_one_time_key(
        self, owner_id: PrincipalId, key_id: KeyId,
    ) -> ClaimedBundle | None: ...


class ReplayCache(Protocol):
    """Subset of the redis.asyncio client used for replay admission."""
    async def set(
        self, name: str, value: str, *, nx: bool = False, px: int | None = None,
    ) -> bool | None: ...
    async def delete(self, *names: str) -> int: ...
