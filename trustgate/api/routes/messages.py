"""Message Routes — submit ciphertext to a chat and read its history.

Invariants:
    - Only chat members may post or read
    - A replayed ciphertext inside the replay window -> 409 REPLAY_DETECTED
    - Both routes share a per-principal request window -> 429 RATE_LIMITED with Retry-After
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from trustgate.api.dependencies import get_services, require_claims
from trustgate.core.claims import VerifiedClaims
from trustgate.schemas.message import MessageCreate, MessageResponse
from trustgate.services.container import TrustServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


async def rate_limited_claims(
    claims: VerifiedClaims = Depends(require_claims),
    services: TrustServices = Depends(get_services),
) -> VerifiedClaims:
    services.message_limiter.hit(claims.subject)
    return claims


@router.post(
    "", response_model=MessageResponse, response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    body: MessageCreate,
    claims: VerifiedClaims = Depends(rate_limited_claims),
    services: TrustServices = Depends(get_services),
):
    """Store a ciphertext envelope and broadcast it to the chat's live connections."""
    frame = await services.relay.send(claims.subject, body.chat_id, body.encrypted_payload)
    return MessageResponse(**frame)


@router.get(
    "/{chat_id}", response_model=list[MessageResponse], response_model_by_alias=True,
)
async def list_messages(
    chat_id: str,
    limit: int = Query(50, ge=1, le=200),
    before: datetime | None = Query(None),
    before_id: str | None = Query(None, alias="beforeId", max_length=64),
    claims: VerifiedClaims = Depends(rate_limited_claims),
    services: TrustServices = Depends(get_services),
):
    """Newest-first ciphertext history; page with the last item's createdAt (and id)."""
    frames = await services.relay.history(
        claims.subject, chat_id, limit=limit, before=before, before_id=before_id,
    )
    return [MessageResponse(**f) for f in frames]
