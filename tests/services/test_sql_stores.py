"""SQL Stores — SQLAlchemy implementations against in-memory SQLite.

Tests:
    - Generation read and server-side increment
    - Membership insert is idempotent and lookups are exact
    - Bundle replace rewrites keys and policy; CAS flips a key exactly once
    - The claimed key is the row the CAS flipped, even after a concurrent republish
"""

import base64
import uuid

from trustgate.core.prekeys import (
    BundlePolicy, OneTimePreKey, PrekeyBundle, SignedPreKey,
)
from trustgate.models.principal import Principal
from trustgate.services.prekey_broker import PrekeyBundleBroker
from trustgate.services.sql_stores import (
    SqlMembershipDirectory, SqlPrekeyBundleStore, SqlPrincipalStore,
)

PUB = base64.b64encode(b"s" * 32).decode()


async def _principal(test_db, name="alice", generation=0) -> str:
    principal = Principal(
        username=name, email=f"{name}@example.com", password_hash="x", generation=generation,
    )
    test_db.add(principal)
    await test_db.commit()
    await test_db.refresh(principal)
    return principal.id


def _bundle(owner, key_ids, requesters=frozenset()) -> PrekeyBundle:
    return PrekeyBundle(
        owner_id=owner,
        identity_key=PUB,
        signed_prekey=SignedPreKey(3, PUB, PUB),
        one_time_prekeys=tuple(OneTimePreKey(k, PUB) for k in key_ids),
        policy=BundlePolicy(allowed_requesters=requesters),
    )


async def test_generation_read_and_increment(test_db, test_session_factory):
    pid = await _principal(test_db, generation=4)
    store = SqlPrincipalStore(test_session_factory)

    assert await store.get_generation(pid) == 4
    assert await store.increment_generation(pid) == 5
    assert await store.get_generation(pid) == 5


async def test_generation_unknown_principal(test_session_factory):
    store = SqlPrincipalStore(test_session_factory)
    assert await store.get_generation(str(uuid.uuid4())) is None
    assert await store.increment_generation(str(uuid.uuid4())) is None


async def test_membership(test_db, test_session_factory):
    alice = await _principal(test_db)
    chat = str(uuid.uuid4())
    directory = SqlMembershipDirectory(test_session_factory)

    assert not await directory.is_member(chat, alice)
    await directory.add_member(chat, alice)
    await directory.add_member(chat, alice)
    assert await directory.is_member(chat, alice)
    assert not await directory.is_member(str(uuid.uuid4()), alice)


async def test_bundle_round_trip_and_replace(test_db, test_session_factory):
    owner = await _principal(test_db)
    store = SqlPrekeyBundleStore(test_session_factory)

    assert await store.get(owner) is None
    await store.replace(_bundle(owner, [2, 1], requesters=frozenset({"friend"})))
    loaded = await store.get(owner)
    assert [k.key_id for k in loaded.one_time_prekeys] == [1, 2]
    assert loaded.policy.allowed_requesters == frozenset({"friend"})
    assert loaded.signed_prekey.key_id == 3

    await store.replace(_bundle(owner, [9]))
    replaced = await store.get(owner)
    assert [k.key_id for k in replaced.one_time_prekeys] == [9]
    assert replaced.policy.allowed_requesters == frozenset()


async def test_one_time_key_flips_exactly_once(test_db, test_session_factory):
    owner = await _principal(test_db)
    store = SqlPrekeyBundleStore(test_session_factory)
    await store.replace(_bundle(owner, [1, 2]))

    claimed = await store.consume_one_time_key(owner, 1)
    assert claimed.one_time_prekey == OneTimePreKey(1, PUB, used=True)
    assert claimed.identity_key == PUB
    assert claimed.signed_prekey.key_id == 3
    assert await store.consume_one_time_key(owner, 1) is None
    assert await store.consume_one_time_key(owner, 99) is None

    keys = {k.key_id: k.used for k in (await store.get(owner)).one_time_prekeys}
    assert keys == {1: True, 2: False}


async def test_claim_after_republish_serves_stored_key(test_db, test_session_factory):
    owner = await _principal(test_db)
    rotated_pub = base64.b64encode(b"r" * 32).decode()
    rotated = PrekeyBundle(
        owner_id=owner,
        identity_key=rotated_pub,
        signed_prekey=SignedPreKey(4, rotated_pub, rotated_pub),
        one_time_prekeys=(OneTimePreKey(1, rotated_pub),),
        policy=BundlePolicy(allow_any_requester=True),
    )

    class RepublishingStore(SqlPrekeyBundleStore):
        async def get(self, owner_id):
            bundle = await super().get(owner_id)
            await self.replace(rotated)
            return bundle

    store = RepublishingStore(test_session_factory)
    await store.replace(PrekeyBundle(
        owner_id=owner, identity_key=PUB, signed_prekey=SignedPreKey(3, PUB, PUB),
        one_time_prekeys=(OneTimePreKey(1, PUB),),
        policy=BundlePolicy(allow_any_requester=True),
    ))
    broker = PrekeyBundleBroker(store, SqlMembershipDirectory(test_session_factory))

    claimed = await broker.claim(str(uuid.uuid4()), owner)

    assert claimed.one_time_prekey.public_key == rotated_pub
    assert claimed.identity_key == rotated_pub
    stored = (await SqlPrekeyBundleStore(test_session_factory).get(owner)).one_time_prekeys
    assert [(k.public_key, k.used) for k in stored] == [(rotated_pub, True)]
