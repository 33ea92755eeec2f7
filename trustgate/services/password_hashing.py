"""Password Hashing — Argon2id hashes for principal registration and login.

Invariants:
    - Plaintext passwords are never logged or stored
    - verify_password returns False for mismatches AND unparsable hashes (no exception leaks)
    - Hashing runs in a worker thread: argon2 is CPU/memory bound and would stall the event loop
    - An unknown principal costs one argon2 verification too (login timing does not reveal accounts)

Design Decisions:
    - argon2-cffi PasswordHasher with explicit cost parameters from Settings
      (tests lower them; production keeps the library defaults)
"""

import asyncio
import logging
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from trustgate.config import Settings

logger = logging.getLogger(__name__)


class PasswordHashing:
    """Async facade over argon2-cffi."""

    def __init__(self, time_cost: int = 3, memory_cost: int = 65_536, parallelism: int = 4):
        self._hasher = PasswordHasher(
            time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism,
        )
        self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(16))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHashing":
        return cls(
            time_cost=settings.password_time_cost,
            memory_cost=settings.password_memory_cost_kib,
            parallelism=settings.password_parallelism,
        )

    async def hash_password(self, password: str) -> str:
        return await asyncio.to_thread(self._hasher.hash, password)

    async def verify_password(self, password_hash: str | None, password: str) -> bool:
        """Check a password; with no stored hash, burn one verification and return False."""
        if password_hash is None:
            await self._verify_against_dummy(password)
            return False
        try:
            return await asyncio.to_thread(self._hasher.verify, password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning(f"Password hash could not be verified: {e}")
            return False

    async def _verify_against_dummy(self, password: str) -> None:
        try:
            await asyncio.to_thread(self._hasher.verify, self._dummy_hash, password)
        except VerifyMismatchError:
            pass
