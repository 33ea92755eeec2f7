"""Generation Cache — per-process TTL cache of principal generation counters.

Invariants:
    - An entry is served only while now < expires_at
    - ttl_seconds == 0 means every lookup misses (instantaneous revocation)
    - put is last-writer-wins; concurrent misses for one principal need no lock

Design Decisions:
    - Clock passed in by the caller: the cache itself never reads time (testable without sleeps)
"""

from dataclasses import dataclass

from trustgate.core.domain_types import PrincipalId


@dataclass(frozen=True)
class CachedGeneration:
    generation: int
    expires_at: float


class GenerationCache:
    """Read-mostly map principal_id -> (generation, expires_at)."""

    def __init__(self):
        self._entries: dict[PrincipalId, CachedGeneration] = {}

    def get(self, principal_id: PrincipalId, now: float) -> int | None:
        entry = self._entries.get(principal_id)
        if entry is None or entry.expires_at <= now:
            return None
        return entry.generation

    def put(self, principal_id: PrincipalId, generation: int, expires_at: float) -> None:
        self._entries[principal_id] = CachedGeneration(generation, expires_at)

    def forget(self, principal_id: PrincipalId) -> None:
        self._entries.pop(principal_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
