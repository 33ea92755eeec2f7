"""Verified Claims — normalized view of a credential payload that passed verification.

Invariants:
    - subject resolved from `sub`, then `userId`, then `id` (first non-empty wins)
    - generation read from `gen`; an absent claim counts as generation 0
    - resolve_* functions are PURE: no clock, no IO

Design Decisions:
    - Frozen dataclass: claims flow through oracle/authorizer without being mutated
    - raw payload kept for callers needing non-standard claims
"""

from dataclasses import dataclass, field
from typing import Any

from trustgate.core.domain_types import PrincipalId

SUBJECT_CLAIMS: tuple[str, ...] = ("sub", "userId", "id")
GENERATION_CLAIM = "gen"


@dataclass(frozen=True)
class VerifiedClaims:
    """Claims of a credential whose signature, header and time window checked out."""
    subject: PrincipalId
    generation: int
    issued_at: int | None = None
    expires_at: int | None = None
    audience: str | list[str] | None = None
    issuer: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def resolve_subject(payload: dict[str, Any]) -> PrincipalId | None:
    """Pick the principal id by claim priority. None when no claim carries one."""
    for name in SUBJECT_CLAIMS:
        value = payload.get(name)
        if value is None or value == "":
            continue
        return PrincipalId(str(value))
    return None


def resolve_generation(payload: dict[str, Any]) -> int | None:
    """Generation counter, 0 when absent, None when present but not an integer."""
    value = payload.get(GENERATION_CLAIM, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def bearer_from_header(header: str | None) -> str | None:
    """Token from an `Authorization: Bearer <token>` value, None otherwise."""
    if not isinstance(header, str) or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def build_claims(payload: dict[str, Any], subject: PrincipalId, generation: int) -> VerifiedClaims:
    return VerifiedClaims(
        subject=subject,
        generation=generation,
        issued_at=payload.get("iat"),
        expires_at=payload.get("exp"),
        audience=payload.get("aud"),
        issuer=payload.get("iss"),
        raw=dict(payload),
    )
