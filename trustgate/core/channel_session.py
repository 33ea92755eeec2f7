"""Channel Session — per-connection authorization state for the real-time channel.

Invariants:
    - state transitions: UNAUTHENTICATED -> AUTHENTICATED -> (AUTHENTICATED | DISCONNECTED)
    - DISCONNECTED is terminal: no join/reauth result may be applied afterwards
    - reauth_attempts only holds timestamps inside the current window (bounded by max_attempts)
    - prune/allow helpers are PURE — the authorizer applies the mutation

Design Decisions:
    - Mutable dataclass owned by exactly one connection handler: no locking needed
    - credential kept alongside principal_id so every inbound event can be re-verified
"""

from dataclasses import dataclass, field

from trustgate.core.domain_types import (
    ChannelId, ChannelState, ConnectionId, PrincipalId,
)


@dataclass
class ChannelSession:
    """Authorization state of one real-time connection."""
    connection_id: ConnectionId
    principal_id: PrincipalId | None = None
    credential: str | None = None
    state: ChannelState = ChannelState.UNAUTHENTICATED
    reauth_attempts: list[float] = field(default_factory=list)
    joined_channels: set[ChannelId] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return self.state == ChannelState.AUTHENTICATED

    @property
    def closed(self) -> bool:
        return self.state == ChannelState.DISCONNECTED


def prune_attempts(attempts: list[float], now: float, window_seconds: float) -> list[float]:
    """Keep only attempts inside (now - window, now]."""
    return [ts for ts in attempts if now - ts <= window_seconds]


def reauth_allowed(attempts: list[float], max_attempts: int) -> bool:
    return len(attempts) < max_attempts


def retry_after_ms(attempts: list[float], now: float, window_seconds: float) -> int:
    """Time until the oldest attempt leaves the window."""
    if not attempts:
        return 0
    return max(0, int((min(attempts) + window_seconds - now) * 1000))
