"""Channel Authorizer — handshake, join, re-auth and per-event checks for real-time channels.

Invariants:
    - Handshake succeeds only when codec.verify AND oracle.ensure_active pass
    - Every inbound event re-verifies the session's current credential (expiry/revocation
      mid-session is caught on the next event)
    - join requires a canonical channel id and membership of the current principal
    - reauth is rate limited (sliding window) and re-evaluates membership of every
      joined channel for the NEW principal, evicting the connection where it is not a member
    - Results computed after the connection closed are discarded (ConnectionClosedError)

Design Decisions:
    - Transport-agnostic: the WebSocket route maps AuthError to termination (close 1008);
      the authorizer only decides
    - ChannelSession is mutated only here, by the handler owning the connection
"""

import asyncio
import logging
import time
from typing import Callable

from trustgate.core.channel_session import (
    ChannelSession, prune_attempts, reauth_allowed, retry_after_ms,
)
from trustgate.core.claims import VerifiedClaims, bearer_from_header
from trustgate.core.domain_types import (
    ChannelId, ChannelState, ConnectionId, is_well_formed_id,
)
from trustgate.core.errors import (
    AuthError, AuthFailure, BadChannelIdError, ConflictError,
    ConnectionClosedError, ErrorContext, ForbiddenError, RateLimitedError,
)
from trustgate.core.repository_protocols import MembershipDirectory
from trustgate.services.credential_codec import CredentialCodec
from trustgate.services.revocation_oracle import RevocationOracle
from trustgate.services.room_registry import RoomRegistry, Sender

logger = logging.getLogger(__name__)

DEFAULT_REAUTH_WINDOW_SECONDS = 60.0
DEFAULT_REAUTH_MAX_ATTEMPTS = 5


class ChannelAuthorizer:
    """Authorizes real-time connections for their whole lifetime."""

    def __init__(
        self,
        codec: CredentialCodec,
        oracle: RevocationOracle,
        membership: MembershipDirectory,
        rooms: RoomRegistry,
        reauth_window_seconds: float = DEFAULT_REAUTH_WINDOW_SECONDS,
        reauth_max_attempts: int = DEFAULT_REAUTH_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.codec = codec
        self.oracle = oracle
        self.membership = membership
        self.rooms = rooms
        self.reauth_window_seconds = reauth_window_seconds
        self.reauth_max_attempts = reauth_max_attempts
        self._clock = clock

    async def handshake(
        self,
        connection_id: ConnectionId,
        authorization_header: str | None = None,
        auth_token: str | None = None,
        sender: Sender | None = None,
    ) -> ChannelSession:
        """Authenticate a new connection. Raises AuthError to refuse it."""
        token = bearer_from_header(authorization_header) or auth_token
        claims = await self._authenticate(token)
        session = ChannelSession(
            connection_id=connection_id,
            principal_id=claims.subject,
            credential=token,
            state=ChannelState.AUTHENTICATED,
        )
        if sender is not None:
            self.rooms.attach(connection_id, sender)
        logger.info(
            "Channel connection authenticated",
            extra={"principal_id": claims.subject, "connection_id": connection_id},
        )
        return session

    async def authorize_event(self, session: ChannelSession) -> VerifiedClaims:
        """Re-verify the session's credential before handling an inbound event."""
        self._ensure_open(session)
        claims = await self._authenticate(session.credential)
        self._ensure_open(session)
        return claims

    async def join(self, session: ChannelSession, channel_id: object) -> ChannelId:
        self._ensure_open(session)
        if not is_well_formed_id(channel_id):
            raise BadChannelIdError()
        channel = ChannelId(channel_id)
        principal = session.principal_id

        is_member = await self.membership.is_member(channel, principal)
        self._ensure_open(session)
        if session.principal_id != principal:
            raise ConflictError(
                "Principal changed while joining; retry",
                ErrorContext(channel_id=channel),
            )
        if not is_member:
            raise ForbiddenError(
                "Not a member of this chat",
                ErrorContext(principal_id=principal, channel_id=channel),
            )
        session.joined_channels.add(channel)
        self.rooms.join(channel, session.connection_id)
        return channel

    async def reauth(self, session: ChannelSession, access_token: str | None) -> list[ChannelId]:
        """Swap the connection's credential. Returns the channels it was evicted from."""
        self._ensure_open(session)
        now = self._clock()
        attempts = prune_attempts(session.reauth_attempts, now, self.reauth_window_seconds)
        session.reauth_attempts = attempts
        if not reauth_allowed(attempts, self.reauth_max_attempts):
            raise RateLimitedError(
                retry_after_ms(attempts, now, self.reauth_window_seconds),
                ErrorContext(principal_id=session.principal_id),
            )
        if not isinstance(access_token, str) or not access_token:
            raise AuthError(AuthFailure.NO_TOKEN)
        attempts.append(now)

        claims = await self._authenticate(access_token)
        self._ensure_open(session)

        channels = sorted(session.joined_channels)
        verdicts = await asyncio.gather(
            *(self.membership.is_member(ch, claims.subject) for ch in channels),
        )
        self._ensure_open(session)

        previous = session.principal_id
        session.principal_id = claims.subject
        session.credential = access_token

        evicted = [ch for ch, ok in zip(channels, verdicts) if not ok]
        for channel in evicted:
            session.joined_channels.discard(channel)
            self.rooms.leave(channel, session.connection_id)
        if evicted or previous != claims.subject:
            logger.info(
                f"Connection re-authenticated, evicted from {len(evicted)} channel(s)",
                extra={
                    "principal_id": claims.subject,
                    "connection_id": session.connection_id,
                },
            )
        return evicted

    def disconnect(self, session: ChannelSession) -> None:
        """Terminal transition: the session can no longer be mutated."""
        session.state = ChannelState.DISCONNECTED
        session.joined_channels.clear()
        session.reauth_attempts = []
        self.rooms.detach(session.connection_id)

    async def _authenticate(self, token: str | None) -> VerifiedClaims:
        claims = self.codec.verify(token)
        await self.oracle.ensure_active(claims)
        return claims

    @staticmethod
    def _ensure_open(session: ChannelSession) -> None:
        if session.closed:
            raise ConnectionClosedError(session.connection_id)
        if not session.is_authenticated:
            raise AuthError(AuthFailure.NO_TOKEN)
