"""Credential Codec — signs and verifies bearer JWTs with a pinned algorithm and key id.

Invariants:
    - The algorithm comes from configuration only; the token header is checked against it,
      never used to pick a key (blocks RS256 -> HS256 public-key-as-secret confusion)
    - Header alg and kid are compared BEFORE any signature work
    - kid must match exactly: configured-but-missing and present-but-unconfigured both fail
    - Clock tolerance applies symmetrically to exp and nbf/iat
    - Every refusal is an AuthError carrying an AuthFailure reason

Design Decisions:
    - One verifier configured by settings instead of per-route variants (HS256-only, RS256-only,
      dual): removes the class of bugs where a route trusts whatever alg the header names
    - PyJWT for the cryptographic work, mapped exception-by-exception to AuthFailure
    - ensure_ready() validates key material at startup (ConfigError is fatal in lifespan)
"""

import logging
import time
from typing import Any, Callable

import jwt
from jwt.algorithms import get_default_algorithms

from trustgate.config import Settings
from trustgate.core.claims import (
    VerifiedClaims, build_claims, resolve_generation, resolve_subject,
)
from trustgate.core.domain_types import SigningAlgorithm
from trustgate.core.errors import AuthError, AuthFailure, ConfigError

logger = logging.getLogger(__name__)


class CredentialCodec:
    """Issues and verifies access tokens for one configured algorithm/key."""

    def __init__(
        self,
        algorithm: SigningAlgorithm,
        *,
        secret: str = "",
        private_key: str = "",
        public_key: str = "",
        key_id: str = "",
        audience: str = "",
        issuer: str = "",
        expires_in_seconds: int = 900,
        clock_tolerance_seconds: int = 120,
        clock: Callable[[], float] = time.time,
    ):
        try:
            self.algorithm = SigningAlgorithm(algorithm)
        except ValueError:
            raise ConfigError(f"Unsupported JWT algorithm: {algorithm}")
        self._secret = secret
        self._private_key = private_key
        self._public_key = public_key
        self.key_id = key_id or None
        self.audience = audience or None
        self.issuer = issuer or None
        self.expires_in_seconds = expires_in_seconds
        self.clock_tolerance_seconds = max(0, clock_tolerance_seconds)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialCodec":
        return cls(
            settings.jwt_algorithm,
            secret=settings.jwt_secret,
            private_key=settings.jwt_private_key,
            public_key=settings.jwt_public_key,
            key_id=settings.jwt_key_id,
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            expires_in_seconds=settings.jwt_expires_in_seconds,
            clock_tolerance_seconds=settings.jwt_clock_tolerance_seconds,
        )

    # ─── Key material ────────────────────────────────────────────

    def _signing_key(self) -> str:
        if self.algorithm == SigningAlgorithm.HS256:
            if not self._secret:
                raise ConfigError("JWT_SECRET not configured")
            return self._secret
        if not self._private_key:
            raise ConfigError("JWT_PRIVATE_KEY not configured")
        return self._private_key

    def _verification_key(self) -> str:
        if self.algorithm == SigningAlgorithm.HS256:
            if not self._secret:
                raise ConfigError("JWT_SECRET not configured")
            return self._secret
        if not self._public_key:
            raise ConfigError("JWT_PUBLIC_KEY not configured")
        return self._public_key

    def ensure_ready(self) -> None:
        """Fail fast when signing/verification material is missing or unparsable."""
        algorithms = get_default_algorithms()
        impl = algorithms.get(self.algorithm.value)
        if impl is None:
            raise ConfigError(
                f"{self.algorithm.value} unavailable (install the cryptography package)",
            )
        for key in (self._signing_key(), self._verification_key()):
            try:
                impl.prepare_key(key)
            except (jwt.InvalidKeyError, ValueError, TypeError) as e:
                raise ConfigError(f"Unusable {self.algorithm.value} key material: {e}")

    # ─── Sign ────────────────────────────────────────────────────

    def sign(
        self,
        claims: dict[str, Any],
        *,
        expires_in: int | None = None,
        audience: str | None = None,
        issuer: str | None = None,
        not_before: int | None = None,
    ) -> str:
        """Sign claims with the configured algorithm and key id."""
        key = self._signing_key()
        now = int(self._clock())
        payload = dict(claims)
        if "sub" in payload and payload["sub"] is not None:
            payload["sub"] = str(payload["sub"])
        payload.setdefault("iat", now)
        lifetime = self.expires_in_seconds if expires_in is None else expires_in
        if "exp" not in payload and lifetime and lifetime > 0:
            payload["exp"] = now + lifetime
        aud = audience or self.audience
        if aud and "aud" not in payload:
            payload["aud"] = aud
        iss = issuer or self.issuer
        if iss and "iss" not in payload:
            payload["iss"] = iss
        if not_before is not None:
            payload["nbf"] = not_before
        headers = {"kid": self.key_id} if self.key_id else None
        return jwt.encode(payload, key, algorithm=self.algorithm.value, headers=headers)

    # ─── Verify ──────────────────────────────────────────────────

    def verify(self, token: str | None) -> VerifiedClaims:
        """Verify header pinning, signature and time window; return normalized claims."""
        if not token:
            raise AuthError(AuthFailure.NO_TOKEN)

        self._check_header(token)
        payload = self._decode(token)

        subject = resolve_subject(payload)
        if subject is None:
            raise AuthError(AuthFailure.NO_SUBJECT)
        generation = resolve_generation(payload)
        if generation is None:
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
        return build_claims(payload, subject, generation)

    def _check_header(self, token: str) -> None:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise AuthError(AuthFailure.DECODE_FAILED)
        if not isinstance(header, dict):
            raise AuthError(AuthFailure.DECODE_FAILED)

        if header.get("alg") != self.algorithm.value:
            raise AuthError(AuthFailure.UNEXPECTED_ALGORITHM)

        kid = header.get("kid")
        if self.key_id:
            if kid != self.key_id:
                raise AuthError(AuthFailure.UNEXPECTED_KEY_ID)
        elif kid:
            raise AuthError(AuthFailure.UNEXPECTED_KEY_ID)

    def _decode(self, token: str) -> dict[str, Any]:
        key = self._verification_key()
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[self.algorithm.value],
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.clock_tolerance_seconds,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError(AuthFailure.EXPIRED)
        except jwt.ImmatureSignatureError:
            raise AuthError(AuthFailure.NOT_YET_VALID)
        except jwt.InvalidSignatureError:
            raise AuthError(AuthFailure.BAD_SIGNATURE)
        except (
            jwt.InvalidAudienceError, jwt.InvalidIssuerError,
            jwt.MissingRequiredClaimError,
        ):
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
        except jwt.InvalidKeyError as e:
            raise ConfigError(f"Verification key rejected by {self.algorithm.value}: {e}")
        except jwt.DecodeError:
            raise AuthError(AuthFailure.DECODE_FAILED)
        except jwt.InvalidTokenError:
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
