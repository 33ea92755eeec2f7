"""Key Bundle Routes — publish the caller's prekey bundle, claim someone else's.

Invariants:
    - Publishing always targets the caller's own bundle (owner = token subject)
    - A claim consumes exactly one one-time prekey or fails with 404/403/410/409
    - Lost CAS races are retried server-side up to prekey_claim_max_attempts,
      then surfaced as 409 for the client to retry
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status

from trustgate.api.dependencies import get_services, require_claims
from trustgate.core.claims import VerifiedClaims
from trustgate.core.domain_types import ChannelId, PrincipalId, is_well_formed_id
from trustgate.core.errors import BadChannelIdError, ResourceNotFoundError
from trustgate.core.prekeys import ClaimContext
from trustgate.schemas.keybundle import ClaimedBundleResponse, KeyBundlePublish
from trustgate.services.container import TrustServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/keybundle", tags=["keybundle"])


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
async def publish_bundle(
    body: KeyBundlePublish,
    claims: VerifiedClaims = Depends(require_claims),
    services: TrustServices = Depends(get_services),
):
    """Replace the caller's bundle, one-time keys and access policy."""
    bundle = body.to_domain(
        claims.subject, services.settings.prekey_allow_any_default,
    )
    await services.broker.publish(bundle)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{owner_id}", response_model=ClaimedBundleResponse, response_model_by_alias=True,
)
async def claim_bundle(
    owner_id: str,
    chat_id: str | None = Query(None, alias="chatId"),
    claims: VerifiedClaims = Depends(require_claims),
    services: TrustServices = Depends(get_services),
):
    """Claim the owner's identity key, signed prekey and one fresh one-time prekey."""
    if not is_well_formed_id(owner_id):
        raise ResourceNotFoundError("PrekeyBundle", owner_id)
    if chat_id is not None and not is_well_formed_id(chat_id):
        raise BadChannelIdError()

    claimed = await services.broker.claim_with_retry(
        claims.subject,
        PrincipalId(owner_id),
        ClaimContext(channel_id=ChannelId(chat_id) if chat_id else None),
        max_attempts=services.settings.prekey_claim_max_attempts,
    )
    return ClaimedBundleResponse.from_domain(claimed)
