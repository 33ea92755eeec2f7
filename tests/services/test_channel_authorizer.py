"""Channel Authorizer — handshake, join, re-auth rate limiting and eviction.

Tests:
    - Handshake accepts bearer header or auth token, refuses bad/revoked credentials
    - join requires a canonical chat id and membership
    - Every event re-verifies the stored credential (revocation mid-session)
    - reauth: 5 attempts per window, 6th RATE_LIMITED; evicts channels the new
      principal does not belong to
    - Work finishing after disconnect is discarded
"""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from trustgate.core.domain_types import ChannelState, SigningAlgorithm
from trustgate.core.errors import (
    AuthError, AuthFailure, BadChannelIdError, ConnectionClosedError,
    ForbiddenError, RateLimitedError,
)
from trustgate.services.channel_authorizer import ChannelAuthorizer
from trustgate.services.credential_codec import CredentialCodec
from trustgate.services.revocation_oracle import RevocationOracle
from trustgate.services.room_registry import RoomRegistry

from tests.services.fakes import FakeMembership, FakePrincipalStore

ALICE = str(uuid.uuid4())
BOB = str(uuid.uuid4())
CHAT_1 = str(uuid.uuid4())
CHAT_2 = str(uuid.uuid4())


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def codec():
    return CredentialCodec(
        SigningAlgorithm.HS256, secret="authorizer-test-secret-long-enough-123",
    )


@pytest.fixture
def principals():
    return FakePrincipalStore({ALICE: 0, BOB: 0})


@pytest.fixture
def membership():
    return FakeMembership({(CHAT_1, ALICE), (CHAT_2, ALICE), (CHAT_1, BOB)})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rooms():
    return RoomRegistry()


@pytest.fixture
def authorizer(codec, principals, membership, rooms, clock):
    oracle = RevocationOracle(principals, ttl_seconds=0)
    return ChannelAuthorizer(codec, oracle, membership, rooms, clock=clock)


def _token(codec, subject, gen=0):
    return codec.sign({"sub": subject, "gen": gen})


# ─── Handshake ───────────────────────────────────────────────────

async def test_handshake_with_bearer_header(authorizer, codec):
    session = await authorizer.handshake(
        "c1", authorization_header=f"Bearer {_token(codec, ALICE)}",
    )
    assert session.principal_id == ALICE
    assert session.state == ChannelState.AUTHENTICATED


async def test_handshake_with_auth_token(authorizer, codec):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    assert session.principal_id == ALICE


async def test_handshake_without_token(authorizer):
    with pytest.raises(AuthError) as exc_info:
        await authorizer.handshake("c1")
    assert exc_info.value.reason == AuthFailure.NO_TOKEN


async def test_handshake_with_revoked_token(authorizer, codec, principals):
    token = _token(codec, ALICE, gen=0)
    principals.generations[ALICE] = 1
    with pytest.raises(AuthError) as exc_info:
        await authorizer.handshake("c1", auth_token=token)
    assert exc_info.value.reason == AuthFailure.TOKEN_REVOKED


# ─── Join ────────────────────────────────────────────────────────

async def test_join_member_channel(authorizer, codec, rooms):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE), sender=AsyncMock())
    assert await authorizer.join(session, CHAT_1) == CHAT_1
    assert CHAT_1 in session.joined_channels
    assert rooms.is_joined(CHAT_1, "c1")


@pytest.mark.parametrize("chat_id", [None, "", "general", 42, CHAT_1.upper()])
async def test_join_rejects_malformed_chat_id(authorizer, codec, chat_id):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    with pytest.raises(BadChannelIdError):
        await authorizer.join(session, chat_id)


async def test_join_non_member_forbidden(authorizer, codec):
    session = await authorizer.handshake("c1", auth_token=_token(codec, BOB))
    with pytest.raises(ForbiddenError):
        await authorizer.join(session, CHAT_2)
    assert session.joined_channels == set()


# ─── Per-event verification ──────────────────────────────────────

async def test_authorize_event_catches_revocation_mid_session(authorizer, codec, principals):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    await authorizer.authorize_event(session)

    principals.generations[ALICE] = 1

    with pytest.raises(AuthError) as exc_info:
        await authorizer.authorize_event(session)
    assert exc_info.value.reason == AuthFailure.TOKEN_REVOKED


# ─── Re-auth ─────────────────────────────────────────────────────

async def test_reauth_rate_limited_after_five_attempts(authorizer, codec, clock):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    for _ in range(5):
        clock.now += 1
        await authorizer.reauth(session, _token(codec, ALICE))

    clock.now += 1
    with pytest.raises(RateLimitedError) as exc_info:
        await authorizer.reauth(session, _token(codec, ALICE))
    assert exc_info.value.context.retry_after_ms == 55_000

    clock.now += 60
    await authorizer.reauth(session, _token(codec, ALICE))


async def test_reauth_failed_credential_counts_as_attempt(authorizer, codec, clock):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    for _ in range(5):
        with pytest.raises(AuthError):
            await authorizer.reauth(session, "garbage")
    with pytest.raises(RateLimitedError):
        await authorizer.reauth(session, _token(codec, ALICE))


async def test_reauth_empty_token_not_counted(authorizer, codec):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    with pytest.raises(AuthError) as exc_info:
        await authorizer.reauth(session, "")
    assert exc_info.value.reason == AuthFailure.NO_TOKEN
    assert session.reauth_attempts == []


async def test_reauth_evicts_channels_new_principal_cannot_see(authorizer, codec, rooms):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE), sender=AsyncMock())
    await authorizer.join(session, CHAT_1)
    await authorizer.join(session, CHAT_2)

    evicted = await authorizer.reauth(session, _token(codec, BOB))

    assert evicted == [CHAT_2]
    assert session.principal_id == BOB
    assert session.joined_channels == {CHAT_1}
    assert not rooms.is_joined(CHAT_2, "c1")
    assert rooms.is_joined(CHAT_1, "c1")


async def test_reauth_result_discarded_after_disconnect(codec, principals, rooms, clock):
    release = asyncio.Event()

    class SlowMembership(FakeMembership):
        async def is_member(self, channel_id, principal_id):
            await release.wait()
            return True

    oracle = RevocationOracle(principals, ttl_seconds=0)
    authorizer = ChannelAuthorizer(codec, oracle, SlowMembership(), rooms, clock=clock)
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE))
    session.joined_channels.add(CHAT_1)

    pending = asyncio.create_task(authorizer.reauth(session, _token(codec, BOB)))
    await asyncio.sleep(0)
    authorizer.disconnect(session)
    release.set()

    with pytest.raises(ConnectionClosedError):
        await pending
    assert session.principal_id == ALICE


async def test_disconnect_is_terminal(authorizer, codec, rooms):
    session = await authorizer.handshake("c1", auth_token=_token(codec, ALICE), sender=AsyncMock())
    await authorizer.join(session, CHAT_1)

    authorizer.disconnect(session)

    assert session.closed
    assert rooms.members(CHAT_1) == set()
    with pytest.raises(ConnectionClosedError):
        await authorizer.join(session, CHAT_1)
