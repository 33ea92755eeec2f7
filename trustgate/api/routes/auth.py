"""Auth Routes — registration, login and revoke-all-sessions.

Invariants:
    - Issued tokens carry sub = principal id and gen = current generation
    - Login failures are a generic 401 whether the email or the password was wrong,
      and both paths run one argon2 verification
    - logout-all bumps the generation: every token issued before it stops verifying
      (immediately in this process, within the revocation TTL elsewhere)
    - The access_token cookie is httpOnly and SameSite=strict

Design Decisions:
    - Duplicate username/email detected up front AND at commit (IntegrityError):
      the unique constraints decide concurrent registrations
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trustgate.api.dependencies import ACCESS_COOKIE, get_services, require_claims
from trustgate.core.claims import GENERATION_CLAIM, VerifiedClaims
from trustgate.core.errors import AuthError, AuthFailure, PrincipalExistsError
from trustgate.infrastructure.database import get_db
from trustgate.models.principal import Principal
from trustgate.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from trustgate.services.container import TrustServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _issue(services: TrustServices, response: Response, principal: Principal) -> TokenResponse:
    token = services.codec.sign(
        {"sub": principal.id, GENERATION_CLAIM: principal.generation},
    )
    response.set_cookie(
        ACCESS_COOKIE,
        token,
        max_age=services.codec.expires_in_seconds,
        httponly=True,
        secure=services.settings.access_cookie_secure,
        samesite="strict",
    )
    return TokenResponse(token=token, user_id=principal.id)


@router.post(
    "/register", response_model=TokenResponse, response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    services: TrustServices = Depends(get_services),
):
    """Create a principal and sign them in."""
    existing = await db.execute(
        select(Principal.id).where(
            or_(Principal.username == body.username, Principal.email == body.email),
        ),
    )
    if existing.first() is not None:
        raise PrincipalExistsError()

    principal = Principal(
        username=body.username,
        email=body.email,
        password_hash=await services.passwords.hash_password(body.password),
        generation=0,
    )
    db.add(principal)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise PrincipalExistsError()
    await db.refresh(principal)
    logger.info("Principal registered", extra={"principal_id": principal.id})
    return _issue(services, response, principal)


@router.post("/login", response_model=TokenResponse, response_model_by_alias=True)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    services: TrustServices = Depends(get_services),
):
    """Exchange email + password for an access token."""
    result = await db.execute(select(Principal).where(Principal.email == body.email))
    principal = result.scalar_one_or_none()
    stored_hash = principal.password_hash if principal is not None else None
    if not await services.passwords.verify_password(stored_hash, body.password):
        raise AuthError(AuthFailure.BAD_CREDENTIALS)
    return _issue(services, response, principal)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(
    claims: VerifiedClaims = Depends(require_claims),
    services: TrustServices = Depends(get_services),
):
    """Revoke every credential issued to the caller so far."""
    await services.oracle.revoke(claims.subject)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(ACCESS_COOKIE)
    return response
