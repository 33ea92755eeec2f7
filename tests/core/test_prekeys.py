"""Prekey Rules — bundle validation, access decisions and one-time key selection.

Tests:
    - validate_bundle names the first failing field
    - evaluate_access: owner, open bundle, allowlist, channel check, deny
    - select_one_time_key picks the lowest unused key id
"""

import base64

from trustgate.core.prekeys import (
    AccessDecision, BundlePolicy, ClaimContext, KeyLimits, OneTimePreKey,
    PrekeyBundle, SignedPreKey, evaluate_access, select_one_time_key,
    validate_bundle,
)

PUB = base64.b64encode(b"k" * 32).decode()
LIMITS = KeyLimits()


def _bundle(otks=None, **overrides) -> PrekeyBundle:
    fields = {
        "owner_id": "owner",
        "identity_key": PUB,
        "signed_prekey": SignedPreKey(1, PUB, PUB),
        "one_time_prekeys": tuple(otks if otks is not None else [
            OneTimePreKey(1, PUB), OneTimePreKey(2, PUB),
        ]),
    }
    fields.update(overrides)
    return PrekeyBundle(**fields)


def test_valid_bundle_passes():
    assert validate_bundle(_bundle(), LIMITS) is None


def test_empty_one_time_key_list_is_allowed():
    assert validate_bundle(_bundle(otks=[]), LIMITS) is None


def test_missing_identity_key():
    assert validate_bundle(_bundle(identity_key=""), LIMITS)[0] == "identityKey"


def test_signed_prekey_fields():
    assert validate_bundle(
        _bundle(signed_prekey=SignedPreKey(-1, PUB, PUB)), LIMITS,
    )[0] == "signedPreKey.keyId"
    assert validate_bundle(
        _bundle(signed_prekey=SignedPreKey(1, "", PUB)), LIMITS,
    )[0] == "signedPreKey.publicKey"
    assert validate_bundle(
        _bundle(signed_prekey=SignedPreKey(1, PUB, "")), LIMITS,
    )[0] == "signedPreKey.signature"


def test_one_time_key_public_key_must_be_canonical_base64():
    problem = validate_bundle(
        _bundle(otks=[OneTimePreKey(1, PUB), OneTimePreKey(2, "not base64!")]), LIMITS,
    )
    assert problem[0] == "oneTimePreKeys.1.publicKey"


def test_duplicate_and_bool_key_ids_rejected():
    dup = validate_bundle(_bundle(otks=[OneTimePreKey(3, PUB), OneTimePreKey(3, PUB)]), LIMITS)
    assert dup[0] == "oneTimePreKeys.1.keyId"
    boolean = validate_bundle(_bundle(otks=[OneTimePreKey(True, PUB)]), LIMITS)
    assert boolean[0] == "oneTimePreKeys.0.keyId"


def test_too_many_one_time_keys():
    limits = KeyLimits(max_one_time_keys=2)
    otks = [OneTimePreKey(i, PUB) for i in range(3)]
    assert validate_bundle(_bundle(otks=otks), limits)[0] == "oneTimePreKeys"


def test_owner_always_allowed():
    assert evaluate_access("o", "o", BundlePolicy(), ClaimContext()) == AccessDecision.ALLOW


def test_allow_any_and_allowlist():
    assert evaluate_access(
        "r", "o", BundlePolicy(allow_any_requester=True), ClaimContext(),
    ) == AccessDecision.ALLOW
    assert evaluate_access(
        "r", "o", BundlePolicy(allowed_requesters=frozenset({"r"})), ClaimContext(),
    ) == AccessDecision.ALLOW


def test_channel_context_requires_membership_check():
    assert evaluate_access(
        "r", "o", BundlePolicy(), ClaimContext(channel_id="c"),
    ) == AccessDecision.CHECK_CHANNEL


def test_denied_without_policy_or_channel():
    assert evaluate_access("r", "o", BundlePolicy(), ClaimContext()) == AccessDecision.DENY


def test_select_lowest_unused_key():
    keys = (
        OneTimePreKey(5, PUB), OneTimePreKey(2, PUB, used=True), OneTimePreKey(3, PUB),
    )
    assert select_one_time_key(keys).key_id == 3


def test_select_none_when_exhausted():
    assert select_one_time_key((OneTimePreKey(1, PUB, used=True),)) is None
    assert select_one_time_key(()) is None
