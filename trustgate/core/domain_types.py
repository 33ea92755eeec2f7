"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - PrincipalId and ChannelId are canonical lowercase UUID strings
    - KeyId is a non-negative integer chosen by the key owner
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str ids (not uuid.UUID): JWT `sub` is a string and ids cross the wire unchanged
"""

import re
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

PrincipalId = NewType("PrincipalId", str)
ChannelId = NewType("ChannelId", str)
ConnectionId = NewType("ConnectionId", str)
KeyId = NewType("KeyId", int)


# ─── Enums ───────────────────────────────────────────────────────

class SigningAlgorithm(str, Enum):
    """The only algorithms a verifier may be configured with."""
    HS256 = "HS256"
    RS256 = "RS256"


class ChannelState(str, Enum):
    """Real-time connection lifecycle."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


# ─── Identifier Checks ───────────────────────────────────────────

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
)


def is_well_formed_id(value: object) -> bool:
    """True for canonical lowercase UUID strings (the only id shape we mint)."""
    return isinstance(value, str) and bool(_UUID_RE.match(value))
