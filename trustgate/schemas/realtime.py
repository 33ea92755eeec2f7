"""Realtime Frames — inbound WebSocket event envelopes.

Invariants:
    - Every inbound frame is {"event": <name>, "data": {...}}; unknown events are rejected
    - data fields are optional at this layer; ChannelAuthorizer rejects bad values
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class InboundFrame(BaseModel):
    event: Literal["join", "reauth", "ping"]
    data: dict[str, Any] = Field(default_factory=dict)


def ack(event: str, **data: Any) -> dict[str, Any]:
    """Server acknowledgement frame for a handled inbound event."""
    return {"event": "ack", "data": {"for": event, **data}}
