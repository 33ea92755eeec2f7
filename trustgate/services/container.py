"""Trust Services — the wired set of collaborators the API layer talks to.

Invariants:
    - Built once per process in the lifespan and stored on app.state.trust
    - Every cache (generation cache, replay fallback, rate windows) is owned by a service,
      never global

Design Decisions:
    - Plain dataclass over a DI framework: routes fetch it through one dependency
      and tests assemble it directly against a test session factory
"""

from dataclasses import dataclass

from trustgate.config import Settings
from trustgate.core.generation_cache import GenerationCache
from trustgate.core.prekeys import KeyLimits
from trustgate.core.replay_window import ReplayFallbackStore
from trustgate.core.repository_protocols import ReplayCache
from trustgate.services.channel_authorizer import ChannelAuthorizer
from trustgate.services.credential_codec import CredentialCodec
from trustgate.services.message_relay import MessageRelay
from trustgate.services.password_hashing import PasswordHashing
from trustgate.services.prekey_broker import PrekeyBundleBroker
from trustgate.services.replay_guard import ReplayGuard
from trustgate.services.request_limiter import PrincipalRateLimiter
from trustgate.services.revocation_oracle import RevocationOracle
from trustgate.services.room_registry import RoomRegistry
from trustgate.services.sql_stores import (
    SessionFactory, SqlMembershipDirectory, SqlPrekeyBundleStore, SqlPrincipalStore,
)


@dataclass
class TrustServices:
    settings: Settings
    sessions: SessionFactory
    codec: CredentialCodec
    oracle: RevocationOracle
    membership: SqlMembershipDirectory
    broker: PrekeyBundleBroker
    replay: ReplayGuard
    rooms: RoomRegistry
    authorizer: ChannelAuthorizer
    relay: MessageRelay
    message_limiter: PrincipalRateLimiter
    passwords: PasswordHashing


def build_trust_services(
    settings: Settings,
    sessions: SessionFactory,
    cache: ReplayCache | None = None,
) -> TrustServices:
    codec = CredentialCodec.from_settings(settings)
    principals = SqlPrincipalStore(sessions)
    membership = SqlMembershipDirectory(sessions)
    oracle = RevocationOracle(
        principals, GenerationCache(), ttl_seconds=settings.revocation_cache_ttl_seconds,
    )
    broker = PrekeyBundleBroker(
        SqlPrekeyBundleStore(sessions),
        membership,
        KeyLimits(
            min_length=settings.prekey_min_key_length,
            max_length=settings.prekey_max_key_length,
            max_one_time_keys=settings.prekey_max_one_time_keys,
        ),
    )
    replay = ReplayGuard(
        cache,
        ReplayFallbackStore(settings.replay_fallback_capacity),
        default_ttl_seconds=settings.replay_ttl_seconds,
    )
    rooms = RoomRegistry()
    authorizer = ChannelAuthorizer(
        codec, oracle, membership, rooms,
        reauth_window_seconds=settings.reauth_window_seconds,
        reauth_max_attempts=settings.reauth_max_attempts,
    )
    relay = MessageRelay(
        sessions, membership, replay, rooms,
        max_payload_length=settings.message_max_payload_length,
    )
    return TrustServices(
        settings=settings,
        sessions=sessions,
        codec=codec,
        oracle=oracle,
        membership=membership,
        broker=broker,
        replay=replay,
        rooms=rooms,
        authorizer=authorizer,
        relay=relay,
        message_limiter=PrincipalRateLimiter(
            window_seconds=settings.message_rate_limit_window_seconds,
            max_requests=settings.message_rate_limit_max_requests,
        ),
        passwords=PasswordHashing.from_settings(settings),
    )
