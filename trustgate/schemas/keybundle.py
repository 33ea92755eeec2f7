"""Key Bundle Schemas — publish payload and claim response for prekey bundles.

Invariants:
    - keyId values are strict non-negative integers (no "1" -> 1 coercion)
    - Key material stays str here; canonical base64 is checked by core/prekeys.validate_bundle
      so the error names the exact failing field (e.g. oneTimePreKeys.3.publicKey)
    - allowAnyRequester omitted -> deployment default (Settings.prekey_allow_any_default)

Design Decisions:
    - camelCase wire names via alias_generator; populate_by_name keeps tests readable
"""

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from trustgate.core.domain_types import KeyId, PrincipalId
from trustgate.core.prekeys import (
    BundlePolicy, ClaimedBundle, OneTimePreKey, PrekeyBundle, SignedPreKey,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignedPreKeyIn(_CamelModel):
    key_id: StrictInt = Field(ge=0)
    public_key: str
    signature: str


class OneTimePreKeyIn(_CamelModel):
    key_id: StrictInt = Field(ge=0)
    public_key: str


class KeyBundlePublish(_CamelModel):
    """Full replacement of the caller's bundle and access policy."""
    identity_key: str
    signed_pre_key: SignedPreKeyIn
    one_time_pre_keys: list[OneTimePreKeyIn] = Field(default_factory=list)
    allow_any_requester: bool | None = None
    allowed_requesters: list[str] = Field(default_factory=list, max_length=1000)

    def to_domain(self, owner_id: PrincipalId, allow_any_default: bool = False) -> PrekeyBundle:
        allow_any = (
            allow_any_default if self.allow_any_requester is None
            else self.allow_any_requester
        )
        return PrekeyBundle(
            owner_id=owner_id,
            identity_key=self.identity_key,
            signed_prekey=SignedPreKey(
                key_id=KeyId(self.signed_pre_key.key_id),
                public_key=self.signed_pre_key.public_key,
                signature=self.signed_pre_key.signature,
            ),
            one_time_prekeys=tuple(
                OneTimePreKey(KeyId(k.key_id), k.public_key)
                for k in self.one_time_pre_keys
            ),
            policy=BundlePolicy(
                allow_any_requester=allow_any,
                allowed_requesters=frozenset(
                    PrincipalId(p) for p in self.allowed_requesters if p
                ),
            ),
        )


class SignedPreKeyOut(_CamelModel):
    key_id: int
    public_key: str
    signature: str


class OneTimePreKeyOut(_CamelModel):
    key_id: int
    public_key: str


class ClaimedBundleResponse(_CamelModel):
    identity_key: str
    signed_pre_key: SignedPreKeyOut
    one_time_pre_key: OneTimePreKeyOut

    @classmethod
    def from_domain(cls, claimed: ClaimedBundle) -> "ClaimedBundleResponse":
        return cls(
            identity_key=claimed.identity_key,
            signed_pre_key=SignedPreKeyOut(
                key_id=claimed.signed_prekey.key_id,
                public_key=claimed.signed_prekey.public_key,
                signature=claimed.signed_prekey.signature,
            ),
            one_time_pre_key=OneTimePreKeyOut(
                key_id=claimed.one_time_prekey.key_id,
                public_key=claimed.one_time_prekey.public_key,
            ),
        )
