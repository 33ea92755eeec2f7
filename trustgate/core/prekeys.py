"""Prekey Bundle Rules — pure validation, access policy and one-time-key selection.

Invariants:
    - A bundle carries exactly one identity key and one signed prekey (non-empty, opaque)
    - One-time key ids are non-negative, unique within the bundle, public keys canonical base64
    - select_one_time_key is deterministic: lowest unused key id first
    - evaluate_access never grants channel-based access by itself — it only
      reports that a membership check is needed (shell performs the IO)

Design Decisions:
    - Validation returns (field, message) instead of raising: the broker wraps it
      into PayloadValidationError, tests assert on the pure result
    - Policy travels with the bundle: a publish replaces both (no partial merge)
"""

from dataclasses import dataclass, field
from enum import Enum

from trustgate.core.base64_check import canonical_base64
from trustgate.core.domain_types import ChannelId, KeyId, PrincipalId


@dataclass(frozen=True)
class SignedPreKey:
    key_id: KeyId
    public_key: str
    signature: str


@dataclass(frozen=True)
class OneTimePreKey:
    key_id: KeyId
    public_key: str
    used: bool = False


@dataclass(frozen=True)
class BundlePolicy:
    """Who may claim one-time keys besides the owner."""
    allow_any_requester: bool = False
    allowed_requesters: frozenset[PrincipalId] = field(default_factory=frozenset)


@dataclass(frozen=True)
class PrekeyBundle:
    owner_id: PrincipalId
    identity_key: str
    signed_prekey: SignedPreKey
    one_time_prekeys: tuple[OneTimePreKey, ...]
    policy: BundlePolicy = field(default_factory=BundlePolicy)


@dataclass(frozen=True)
class ClaimContext:
    """Optional request context for a claim (e.g. the shared chat)."""
    channel_id: ChannelId | None = None


@dataclass(frozen=True)
class ClaimedBundle:
    """What a requester receives: enough to run X3DH once."""
    identity_key: str
    signed_prekey: SignedPreKey
    one_time_prekey: OneTimePreKey


class AccessDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    CHECK_CHANNEL = "check_channel"


@dataclass(frozen=True)
class KeyLimits:
    min_length: int = 16
    max_length: int = 512
    max_one_time_keys: int = 200


def validate_bundle(bundle: PrekeyBundle, limits: KeyLimits) -> tuple[str, str] | None:
    """Return (field, message) for the first problem, or None when the bundle is well-formed."""
    if not bundle.identity_key:
        return "identityKey", "identityKey is required"

    spk = bundle.signed_prekey
    if not _is_key_id(spk.key_id):
        return "signedPreKey.keyId", "keyId must be a non-negative integer"
    if not spk.public_key:
        return "signedPreKey.publicKey", "publicKey is required"
    if not spk.signature:
        return "signedPreKey.signature", "signature is required"

    if len(bundle.one_time_prekeys) > limits.max_one_time_keys:
        return (
            "oneTimePreKeys",
            f"at most {limits.max_one_time_keys} one-time prekeys per bundle",
        )

    seen: set[int] = set()
    for index, otk in enumerate(bundle.one_time_prekeys):
        if not _is_key_id(otk.key_id):
            return f"oneTimePreKeys.{index}.keyId", "keyId must be a non-negative integer"
        if otk.key_id in seen:
            return f"oneTimePreKeys.{index}.keyId", f"duplicate keyId {otk.key_id}"
        seen.add(otk.key_id)
        if not _is_key(otk.public_key, limits):
            return f"oneTimePreKeys.{index}.publicKey", "publicKey must be canonical base64"
    return None


def evaluate_access(
    requester_id: PrincipalId,
    owner_id: PrincipalId,
    policy: BundlePolicy,
    context: ClaimContext,
) -> AccessDecision:
    """Owner, open bundles and allowlisted requesters pass without IO."""
    if requester_id == owner_id:
        return AccessDecision.ALLOW
    if policy.allow_any_requester:
        return AccessDecision.ALLOW
    if requester_id in policy.allowed_requesters:
        return AccessDecision.ALLOW
    if context.channel_id:
        return AccessDecision.CHECK_CHANNEL
    return AccessDecision.DENY


def select_one_time_key(keys: tuple[OneTimePreKey, ...]) -> OneTimePreKey | None:
    """Lowest unused key id, or None when exhausted."""
    unused = [k for k in keys if not k.used]
    if not unused:
        return None
    return min(unused, key=lambda k: k.key_id)


def _is_key_id(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _is_key(value: str, limits: KeyLimits) -> bool:
    return canonical_base64(
        value, min_length=limits.min_length, max_length=limits.max_length,
    ) is not None
