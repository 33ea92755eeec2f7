"""SQL Stores — SQLAlchemy implementations of the core boundary protocols.

Invariants:
    - Each call uses its own short-lived session (no session shared across requests)
    - replace() rewrites the bundle row and every one-time key in ONE transaction
    - consume_one_time_key is a single UPDATE ... WHERE used = false RETURNING the key;
      the served public key is the row that was flipped, never an earlier read
    - increment_generation is a server-side `generation + 1` (no read-modify-write race)

Design Decisions:
    - Core-level insert/update/delete for bundles: avoids identity-map clashes between
      old and new one-time key rows with the same (owner_id, key_id)
    - Session factory injected: db_manager.session in production, a test sessionmaker in tests
"""

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trustgate.core.domain_types import ChannelId, KeyId, PrincipalId
from trustgate.core.prekeys import (
    BundlePolicy, ClaimedBundle, OneTimePreKey, PrekeyBundle, SignedPreKey,
)
from trustgate.models.chat import Chat, ChatMember
from trustgate.models.prekey_bundle import OneTimePreKeyRecord, PrekeyBundleRecord
from trustgate.models.principal import Principal

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlPrincipalStore:
    """Generation counters on the principals table."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def get_generation(self, principal_id: PrincipalId) -> int | None:
        async with self._sessions() as db:
            result = await db.execute(
                select(Principal.generation).where(Principal.id == principal_id),
            )
            return result.scalar_one_or_none()

    async def increment_generation(self, principal_id: PrincipalId) -> int | None:
        async with self._sessions() as db:
            result = await db.execute(
                update(Principal)
                .where(Principal.id == principal_id)
                .values(generation=Principal.generation + 1),
            )
            if result.rowcount == 0:
                await db.rollback()
                return None
            await db.commit()
            refreshed = await db.execute(
                select(Principal.generation).where(Principal.id == principal_id),
            )
            return refreshed.scalar_one()


class SqlMembershipDirectory:
    """Chat membership lookups over chat_members."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def is_member(self, channel_id: ChannelId, principal_id: PrincipalId) -> bool:
        async with self._sessions() as db:
            result = await db.execute(
                select(ChatMember.chat_id)
                .where(ChatMember.chat_id == channel_id)
                .where(ChatMember.principal_id == principal_id)
                .limit(1),
            )
            return result.scalar_one_or_none() is not None

    async def add_member(self, channel_id: ChannelId, principal_id: PrincipalId) -> None:
        async with self._sessions() as db:
            chat = await db.get(Chat, channel_id)
            if chat is None:
                db.add(Chat(id=channel_id))
                await db.flush()
            existing = await db.get(ChatMember, (channel_id, principal_id))
            if existing is None:
                db.add(ChatMember(chat_id=channel_id, principal_id=principal_id))
            await db.commit()


class SqlPrekeyBundleStore:
    """Prekey bundles with CAS consumption of one-time keys."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def get(self, owner_id: PrincipalId) -> PrekeyBundle | None:
        async with self._sessions() as db:
            bundle = (await db.execute(
                select(PrekeyBundleRecord).where(PrekeyBundleRecord.owner_id == owner_id),
            )).scalar_one_or_none()
            if bundle is None:
                return None
            keys = (await db.execute(
                select(OneTimePreKeyRecord)
                .where(OneTimePreKeyRecord.owner_id == owner_id)
                .order_by(OneTimePreKeyRecord.key_id),
            )).scalars().all()
            return _to_domain(bundle, keys)

    async def replace(self, bundle: PrekeyBundle) -> None:
        values = {
            "identity_key": bundle.identity_key,
            "signed_prekey_id": bundle.signed_prekey.key_id,
            "signed_prekey_public": bundle.signed_prekey.public_key,
            "signed_prekey_signature": bundle.signed_prekey.signature,
            "allow_any_requester": bundle.policy.allow_any_requester,
            "allowed_requesters": sorted(bundle.policy.allowed_requesters),
            "updated_at": datetime.now(timezone.utc),
        }
        async with self._sessions() as db:
            updated = await db.execute(
                update(PrekeyBundleRecord)
                .where(PrekeyBundleRecord.owner_id == bundle.owner_id)
                .values(**values),
            )
            if updated.rowcount == 0:
                await db.execute(
                    insert(PrekeyBundleRecord).values(owner_id=bundle.owner_id, **values),
                )
            await db.execute(
                delete(OneTimePreKeyRecord)
                .where(OneTimePreKeyRecord.owner_id == bundle.owner_id),
            )
            if bundle.one_time_prekeys:
                await db.execute(
                    insert(OneTimePreKeyRecord),
                    [
                        {
                            "owner_id": bundle.owner_id,
                            "key_id": otk.key_id,
                            "public_key": otk.public_key,
                            "used": False,
                        }
                        for otk in bundle.one_time_prekeys
                    ],
                )
            await db.commit()

    async def consume_one_time_key(
        self, owner_id: PrincipalId, key_id: KeyId,
    ) -> ClaimedBundle | None:
        async with self._sessions() as db:
            flipped = (await db.execute(
                update(OneTimePreKeyRecord)
                .where(OneTimePreKeyRecord.owner_id == owner_id)
                .where(OneTimePreKeyRecord.key_id == key_id)
                .where(OneTimePreKeyRecord.used.is_(False))
                .values(used=True)
                .returning(OneTimePreKeyRecord.key_id, OneTimePreKeyRecord.public_key)
                .execution_options(synchronize_session=False),
            )).first()
            if flipped is None:
                await db.rollback()
                return None
            bundle = (await db.execute(
                select(PrekeyBundleRecord).where(PrekeyBundleRecord.owner_id == owner_id),
            )).scalar_one()
            claimed = ClaimedBundle(
                identity_key=bundle.identity_key,
                signed_prekey=SignedPreKey(
                    key_id=KeyId(bundle.signed_prekey_id),
                    public_key=bundle.signed_prekey_public,
                    signature=bundle.signed_prekey_signature,
                ),
                one_time_prekey=OneTimePreKey(
                    KeyId(flipped.key_id), flipped.public_key, used=True,
                ),
            )
            await db.commit()
            return claimed


def _to_domain(
    bundle: PrekeyBundleRecord, keys: list[OneTimePreKeyRecord],
) -> PrekeyBundle:
    return PrekeyBundle(
        owner_id=PrincipalId(bundle.owner_id),
        identity_key=bundle.identity_key,
        signed_prekey=SignedPreKey(
            key_id=KeyId(bundle.signed_prekey_id),
            public_key=bundle.signed_prekey_public,
            signature=bundle.signed_prekey_signature,
        ),
        one_time_prekeys=tuple(
            OneTimePreKey(KeyId(k.key_id), k.public_key, k.used) for k in keys
        ),
        policy=BundlePolicy(
            allow_any_requester=bundle.allow_any_requester,
            allowed_requesters=frozenset(
                PrincipalId(p) for p in (bundle.allowed_requesters or [])
            ),
        ),
    )
