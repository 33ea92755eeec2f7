"""API Dependencies — service container lookup and bearer authentication.

Invariants:
    - Credential lookup order: Authorization: Bearer, then the access_token cookie
    - A request reaches a protected route only after codec.verify AND oracle.ensure_active
    - Auth failure reasons are logged here and never rendered (AuthError body is generic)

Design Decisions:
    - HTTPConnection parameter: the same dependency serves HTTP routes and tests
"""

import logging

from fastapi import Depends
from starlette.requests import HTTPConnection

from trustgate.core.claims import VerifiedClaims, bearer_from_header
from trustgate.core.errors import AuthError, ConfigError
from trustgate.services.container import TrustServices

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"


def get_services(conn: HTTPConnection) -> TrustServices:
    services = getattr(conn.app.state, "trust", None)
    if services is None:
        raise ConfigError("Trust services not initialized")
    return services


def credential_from_request(conn: HTTPConnection) -> str | None:
    token = bearer_from_header(conn.headers.get("authorization"))
    if token:
        return token
    return conn.cookies.get(ACCESS_COOKIE) or None


async def require_claims(
    conn: HTTPConnection,
    services: TrustServices = Depends(get_services),
) -> VerifiedClaims:
    """Verified, non-revoked claims of the caller (raises AuthError otherwise)."""
    try:
        claims = services.codec.verify(credential_from_request(conn))
        await services.oracle.ensure_active(claims)
    except AuthError as e:
        logger.warning(
            "Request credential refused",
            extra={"reason": e.reason.value, "path": conn.url.path},
        )
        raise
    return claims
