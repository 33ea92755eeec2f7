"""Room Registry — which live connections are subscribed to which channel.

Invariants:
    - A connection receives broadcasts only for rooms it joined and still holds
    - detach() removes the connection from every room in one step
    - A failing sender never prevents delivery to the other members of the room

Design Decisions:
    - Senders are plain async callables (websocket.send_json in production): the
      registry stays transport-agnostic and testable without sockets
    - Per-process registry: fan-out across processes belongs to a pub/sub layer
"""

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from trustgate.core.domain_types import ChannelId, ConnectionId

logger = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[None]]


class RoomRegistry:
    """Maps channels to subscribed connections and fans frames out to them."""

    def __init__(self):
        self._senders: dict[ConnectionId, Sender] = {}
        self._rooms: dict[ChannelId, set[ConnectionId]] = defaultdict(set)

    def attach(self, connection_id: ConnectionId, sender: Sender) -> None:
        self._senders[connection_id] = sender

    def detach(self, connection_id: ConnectionId) -> None:
        self._senders.pop(connection_id, None)
        for channel_id in [c for c, conns in self._rooms.items() if connection_id in conns]:
            self.leave(channel_id, connection_id)

    def join(self, channel_id: ChannelId, connection_id: ConnectionId) -> None:
        self._rooms[channel_id].add(connection_id)

    def leave(self, channel_id: ChannelId, connection_id: ConnectionId) -> None:
        members = self._rooms.get(channel_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[channel_id]

    def members(self, channel_id: ChannelId) -> set[ConnectionId]:
        return set(self._rooms.get(channel_id, ()))

    def is_joined(self, channel_id: ChannelId, connection_id: ConnectionId) -> bool:
        return connection_id in self._rooms.get(channel_id, ())

    async def broadcast(self, channel_id: ChannelId, frame: dict[str, Any]) -> int:
        """Send frame to every member of the room. Returns the number delivered."""
        delivered = 0
        for connection_id in self.members(channel_id):
            sender = self._senders.get(connection_id)
            if sender is None:
                continue
            try:
                await sender(frame)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Broadcast to connection failed: {e}",
                    extra={"channel_id": channel_id, "connection_id": connection_id},
                )
        return delivered
