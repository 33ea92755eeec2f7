"""Replay Window — digest of ciphertext and the in-process fallback dedupe map.

Invariants:
    - digest is SHA-256 hex of the exact base64 text (never of plaintext)
    - A key admitted at time t is refused until t + ttl, then admitted again
    - Expired entries are swept only when size exceeds capacity (amortized O(1) admit)
    - check and insert happen without an await between them (atomic under asyncio)

Design Decisions:
    - Explicit object with clear(): injectable per ReplayGuard, no module-level Map
    - Capacity floor of 100 keeps a misconfigured 0 from sweeping on every insert
"""

import hashlib

FALLBACK_MIN_CAPACITY = 100
DEFAULT_FALLBACK_CAPACITY = 2000


def digest_ciphertext(ciphertext: str) -> str:
    return hashlib.sha256(ciphertext.encode("utf-8")).hexdigest()


def replay_key(channel_id: str, ciphertext: str, prefix: str = "replay") -> str:
    return f"{prefix}:{channel_id}:{digest_ciphertext(ciphertext)}"


class ReplayFallbackStore:
    """Bounded key -> expiry map used when the shared cache is unreachable."""

    def __init__(self, capacity: int = DEFAULT_FALLBACK_CAPACITY):
        self.capacity = max(capacity, FALLBACK_MIN_CAPACITY)
        self._expiry: dict[str, float] = {}

    def admit(self, key: str, now: float, ttl_seconds: float) -> bool:
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at > now:
            return False
        self._expiry[key] = now + ttl_seconds
        if len(self._expiry) > self.capacity:
            self.sweep(now)
        return True

    def sweep(self, now: float) -> int:
        """Drop expired entries. Returns how many were removed."""
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            del self._expiry[k]
        return len(expired)

    def discard(self, key: str) -> None:
        self._expiry.pop(key, None)

    def clear(self) -> None:
        self._expiry.clear()

    def __len__(self) -> int:
        return len(self._expiry)

    def __contains__(self, key: str) -> bool:
        return key in self._expiry
