"""Realtime Route — authenticated WebSocket for chat rooms.

Invariants:
    - Handshake credential: Authorization: Bearer header, else the `token` query param;
      a refused handshake is closed with 1008 before accept
    - Every inbound event re-verifies the connection's current credential; a reauth
      event is verified through its own new credential instead
    - AuthError or store outage while handling an event -> error frame, then close 1008
    - Other TrustGateErrors (bad chatId, forbidden, rate limited) -> error frame, connection stays
    - Binary, non-JSON or unknown frames -> BAD_FRAME error frame, connection stays
    - The session is disconnected in `finally`: in-flight results for it are discarded

Design Decisions:
    - JSON frames {"event", "data"} over a custom protocol: mirrors the HTTP error envelope
"""

import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from trustgate.api.dependencies import get_services
from trustgate.core.channel_session import ChannelSession
from trustgate.core.domain_types import ConnectionId
from trustgate.core.errors import (
    AuthError, ConnectionClosedError, InfrastructureError, TrustGateError,
)
from trustgate.schemas.realtime import InboundFrame, ack
from trustgate.services.channel_authorizer import ChannelAuthorizer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["realtime"])


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket):
    authorizer = get_services(websocket).authorizer
    connection_id = ConnectionId(str(uuid.uuid4()))
    try:
        session = await authorizer.handshake(
            connection_id,
            authorization_header=websocket.headers.get("authorization"),
            auth_token=websocket.query_params.get("token"),
            sender=websocket.send_json,
        )
    except AuthError as e:
        logger.warning(
            "Channel handshake refused",
            extra={"reason": e.reason.value, "connection_id": connection_id},
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    except InfrastructureError as e:
        logger.error(
            f"Channel handshake failed: {e.message}",
            extra={"error_code": e.code, "connection_id": connection_id},
        )
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    try:
        while True:
            frame = await _next_frame(websocket)
            if frame is None:
                await websocket.send_json({
                    "event": "error",
                    "data": {"code": "BAD_FRAME", "message": "Unrecognized frame"},
                })
                continue

            try:
                await websocket.send_json(await _handle(authorizer, session, frame))
            except ConnectionClosedError:
                break
            except (AuthError, InfrastructureError) as e:
                extra = {"error_code": e.code, "connection_id": connection_id}
                if isinstance(e, AuthError):
                    extra["reason"] = e.reason.value
                logger.warning("Channel connection terminated", extra=extra)
                await websocket.send_json(e.to_ws_event())
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                break
            except TrustGateError as e:
                await websocket.send_json(e.to_ws_event())
    except WebSocketDisconnect:
        logger.debug("Channel client disconnected", extra={"connection_id": connection_id})
    finally:
        authorizer.disconnect(session)


async def _next_frame(websocket: WebSocket) -> InboundFrame | None:
    """Next inbound event; None for binary, non-JSON or unknown frames."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(
            message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason"),
        )
    text = message.get("text")
    if text is None:
        return None
    try:
        return InboundFrame.model_validate_json(text)
    except ValidationError:
        return None


async def _handle(
    authorizer: ChannelAuthorizer, session: ChannelSession, frame: InboundFrame,
) -> dict:
    if frame.event == "reauth":
        evicted = await authorizer.reauth(session, frame.data.get("accessToken"))
        return ack("reauth", userId=session.principal_id, evicted=evicted)

    await authorizer.authorize_event(session)
    if frame.event == "join":
        channel = await authorizer.join(session, frame.data.get("chatId"))
        return ack("join", chatId=channel)
    return ack("ping")
