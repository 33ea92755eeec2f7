"""Realtime Route — WebSocket handshake, events, eviction and termination.

Invariants:
    - Runs on Starlette's TestClient (own event loop thread): most tests use in-memory
      fakes; the push test enters the lifespan so HTTP and WebSocket share one loop
      and builds its own aiosqlite engine inside it

Tests:
    - Missing/invalid credential -> closed with 1008 before accept
    - join / ping acknowledged; forbidden join is an error frame, connection stays
    - reauth to another principal reports evicted channels
    - Revocation mid-session -> error frame then close 1008
    - Binary frames are BAD_FRAME, connection stays
    - A POSTed message is pushed to joined connections, not to one evicted by reauth
"""

import base64
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from trustgate.config import get_settings
from trustgate.core.domain_types import SigningAlgorithm
from trustgate.db.base import Base
from trustgate.main import app
from trustgate.models.principal import Principal
from trustgate.services.container import build_trust_services
from trustgate.services.channel_authorizer import ChannelAuthorizer
from trustgate.services.credential_codec import CredentialCodec
from trustgate.services.revocation_oracle import RevocationOracle
from trustgate.services.room_registry import RoomRegistry

from tests.services.fakes import FakeMembership, FakePrincipalStore

ALICE = str(uuid.uuid4())
BOB = str(uuid.uuid4())
CHAT_1 = str(uuid.uuid4())
CHAT_2 = str(uuid.uuid4())
CIPHER = base64.b64encode(b"pushed-ciphertext-01").decode()


@pytest.fixture
def realtime():
    codec = CredentialCodec(SigningAlgorithm.HS256, secret="realtime-test-secret-long-enough-42")
    principals = FakePrincipalStore({ALICE: 0, BOB: 0})
    membership = FakeMembership({(CHAT_1, ALICE), (CHAT_2, ALICE), (CHAT_1, BOB)})
    authorizer = ChannelAuthorizer(
        codec, RevocationOracle(principals, ttl_seconds=0), membership, RoomRegistry(),
    )
    original = getattr(app.state, "trust", None)
    app.state.trust = SimpleNamespace(authorizer=authorizer)
    yield SimpleNamespace(codec=codec, principals=principals, client=TestClient(app))
    app.state.trust = original


def _token(realtime, subject):
    return realtime.codec.sign({"sub": subject, "gen": 0})


def test_handshake_without_credential_is_refused(realtime):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with realtime.client.websocket_connect("/api/v1/ws"):
            pass
    assert exc_info.value.code == 1008


def test_handshake_with_bad_credential_is_refused(realtime):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with realtime.client.websocket_connect("/api/v1/ws?token=not-a-jwt"):
            pass
    assert exc_info.value.code == 1008


def test_join_and_ping(realtime):
    headers = {"Authorization": f"Bearer {_token(realtime, ALICE)}"}
    with realtime.client.websocket_connect("/api/v1/ws", headers=headers) as ws:
        ws.send_json({"event": "join", "data": {"chatId": CHAT_1}})
        assert ws.receive_json() == {"event": "ack", "data": {"for": "join", "chatId": CHAT_1}}

        ws.send_json({"event": "ping"})
        assert ws.receive_json()["data"]["for"] == "ping"


def test_forbidden_join_keeps_connection(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, BOB)}") as ws:
        ws.send_json({"event": "join", "data": {"chatId": CHAT_2}})
        assert ws.receive_json()["data"]["code"] == "FORBIDDEN"

        ws.send_json({"event": "join", "data": {"chatId": "lobby"}})
        assert ws.receive_json()["data"]["code"] == "BAD_CHANNEL_ID"

        ws.send_json({"event": "ping"})
        assert ws.receive_json()["event"] == "ack"


def test_unrecognized_frame(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, ALICE)}") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["data"]["code"] == "BAD_FRAME"
        ws.send_json({"event": "shout"})
        assert ws.receive_json()["data"]["code"] == "BAD_FRAME"


def test_reauth_reports_evicted_channels(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, ALICE)}") as ws:
        for chat in (CHAT_1, CHAT_2):
            ws.send_json({"event": "join", "data": {"chatId": chat}})
            ws.receive_json()

        ws.send_json({"event": "reauth", "data": {"accessToken": _token(realtime, BOB)}})
        ack = ws.receive_json()

    assert ack["data"] == {"for": "reauth", "userId": BOB, "evicted": [CHAT_2]}


def test_revocation_mid_session_terminates(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, ALICE)}") as ws:
        ws.send_json({"event": "ping"})
        ws.receive_json()

        realtime.principals.generations[ALICE] = 1
        ws.send_json({"event": "ping"})

        assert ws.receive_json() == {
            "event": "error", "data": {"code": "UNAUTHORIZED", "message": "Unauthorized"},
        }
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 1008


def test_failed_reauth_terminates(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, ALICE)}") as ws:
        ws.send_json({"event": "reauth", "data": {"accessToken": "garbage"}})
        assert ws.receive_json()["data"]["code"] == "UNAUTHORIZED"
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()


def test_binary_frame_is_rejected_without_closing(realtime):
    with realtime.client.websocket_connect(f"/api/v1/ws?token={_token(realtime, ALICE)}") as ws:
        ws.send_bytes(b"\x00\x01binary")
        assert ws.receive_json()["data"]["code"] == "BAD_FRAME"
        ws.send_json({"event": "ping"})
        assert ws.receive_json() == {"event": "ack", "data": {"for": "ping"}}


async def _create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _add_principal(sessions, name: str) -> str:
    async with sessions() as db:
        principal = Principal(
            username=name, email=f"{name}@example.com", password_hash="x", generation=0,
        )
        db.add(principal)
        await db.commit()
        await db.refresh(principal)
        return principal.id


@pytest.fixture
def live():
    """App with its lifespan running: HTTP and WebSocket calls share one event loop."""
    original = getattr(app.state, "trust", None)
    with TestClient(app) as client:
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        client.portal.call(_create_schema, engine)
        services = build_trust_services(
            get_settings(),
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )
        app.state.trust = services
        yield SimpleNamespace(client=client, services=services, call=client.portal.call)
        client.portal.call(engine.dispose)
    app.state.trust = original


def test_posted_message_is_pushed_to_joined_connections_only(live):
    services = live.services
    alice, bob, carol = (
        live.call(_add_principal, services.sessions, name) for name in ("alice", "bob", "carol")
    )
    chat = str(uuid.uuid4())
    live.call(services.membership.add_member, chat, alice)
    live.call(services.membership.add_member, chat, bob)

    def token(principal_id):
        return services.codec.sign({"sub": principal_id, "gen": 0})

    with live.client.websocket_connect(f"/api/v1/ws?token={token(alice)}") as listener, \
            live.client.websocket_connect(f"/api/v1/ws?token={token(bob)}") as evicted:
        for ws in (listener, evicted):
            ws.send_json({"event": "join", "data": {"chatId": chat}})
            assert ws.receive_json()["data"] == {"for": "join", "chatId": chat}
        evicted.send_json({"event": "reauth", "data": {"accessToken": token(carol)}})
        assert evicted.receive_json()["data"]["evicted"] == [chat]

        res = live.client.post(
            "/api/v1/messages",
            json={"chatId": chat, "encryptedPayload": CIPHER},
            headers={"Authorization": f"Bearer {token(bob)}"},
        )
        assert res.status_code == 201

        pushed = listener.receive_json()
        assert pushed == {"event": "message", "data": res.json()}
        assert pushed["data"]["senderId"] == bob
        assert pushed["data"]["encryptedPayload"] == CIPHER
        assert set(pushed["data"]) == {"id", "chatId", "senderId", "encryptedPayload", "createdAt"}

        evicted.send_json({"event": "ping"})
        assert evicted.receive_json() == {"event": "ack", "data": {"for": "ping"}}
