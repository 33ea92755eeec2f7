"""Message Relay — accepts ciphertext envelopes for a chat and fans them out live.

Invariants:
    - Sender must be a member of the chat; non-members get ForbiddenError
    - encrypted_payload must be canonical base64 within the configured length
    - A (chat, ciphertext) pair is accepted once per replay window (ReplayDetectedError)
    - A failed write releases the replay admission: the client's retry is not a replay
    - Persist THEN broadcast: a frame is only delivered for a stored message
    - History pages are keyed on (created_at, id): equal timestamps never straddle a page gap

Design Decisions:
    - Replay admission before persistence: duplicates never reach the database
    - History reads are keyset-paginated, newest first
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select

from trustgate.core.base64_check import canonical_base64
from trustgate.core.domain_types import ChannelId, PrincipalId, is_well_formed_id
from trustgate.core.errors import (
    BadChannelIdError, ErrorContext, ForbiddenError, PayloadValidationError,
    ReplayDetectedError,
)
from trustgate.core.repository_protocols import MembershipDirectory
from trustgate.models.message import Message
from trustgate.services.replay_guard import ReplayGuard
from trustgate.services.room_registry import RoomRegistry
from trustgate.services.sql_stores import SessionFactory

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


class MessageRelay:
    """Validates, deduplicates, stores and broadcasts encrypted messages."""

    def __init__(
        self,
        sessions: SessionFactory,
        membership: MembershipDirectory,
        replay: ReplayGuard,
        rooms: RoomRegistry,
        max_payload_length: int = 65_536,
    ):
        self._sessions = sessions
        self.membership = membership
        self.replay = replay
        self.rooms = rooms
        self.max_payload_length = max_payload_length

    async def send(
        self, sender_id: PrincipalId, chat_id: object, encrypted_payload: object,
    ) -> dict[str, Any]:
        channel = await self._member_channel(sender_id, chat_id)
        payload = canonical_base64(
            encrypted_payload, min_length=4, max_length=self.max_payload_length,
        )
        if payload is None:
            raise PayloadValidationError(
                "encryptedPayload must be canonical base64", "encryptedPayload",
                ErrorContext(channel_id=channel),
            )

        if not await self.replay.admit(channel, payload):
            logger.warning(
                "Replayed ciphertext rejected",
                extra={"principal_id": sender_id, "channel_id": channel},
            )
            raise ReplayDetectedError(channel)

        try:
            frame = await self._store(channel, sender_id, payload)
        except Exception:
            await self.replay.release(channel, payload)
            logger.warning(
                "Message not stored, replay admission released",
                extra={"principal_id": sender_id, "channel_id": channel},
            )
            raise

        delivered = await self.rooms.broadcast(channel, {"event": "message", "data": frame})
        logger.info(
            f"Message relayed to {delivered} connection(s)",
            extra={"principal_id": sender_id, "channel_id": channel},
        )
        return frame

    async def history(
        self,
        reader_id: PrincipalId,
        chat_id: object,
        limit: int = DEFAULT_HISTORY_LIMIT,
        before: datetime | None = None,
        before_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Newest first. Pass the last item's createdAt and id to get the next page."""
        channel = await self._member_channel(reader_id, chat_id)
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        query = select(Message).where(Message.chat_id == channel)
        if before is not None and before_id is not None:
            query = query.where(or_(
                Message.created_at < before,
                and_(Message.created_at == before, Message.id < before_id),
            ))
        elif before is not None:
            query = query.where(Message.created_at < before)
        query = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        async with self._sessions() as db:
            rows = (await db.execute(query)).scalars().all()
            return [_to_frame(m) for m in rows]

    async def _store(
        self, channel: ChannelId, sender_id: PrincipalId, payload: str,
    ) -> dict[str, Any]:
        async with self._sessions() as db:
            message = Message(chat_id=channel, sender_id=sender_id, encrypted_payload=payload)
            db.add(message)
            await db.commit()
            await db.refresh(message)
            return _to_frame(message)

    async def _member_channel(self, principal_id: PrincipalId, chat_id: object) -> ChannelId:
        if not is_well_formed_id(chat_id):
            raise BadChannelIdError()
        channel = ChannelId(chat_id)
        if not await self.membership.is_member(channel, principal_id):
            raise ForbiddenError(
                "Not a member of this chat",
                ErrorContext(principal_id=principal_id, channel_id=channel),
            )
        return channel


def _to_frame(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "senderId": message.sender_id,
        "encryptedPayload": message.encrypted_payload,
        "createdAt": message.created_at.isoformat(),
    }
