"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - jwt_algorithm is one of SigningAlgorithm; anything else fails at load time

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - PEM keys accept literal "\\n" escapes: single-line env vars are the norm in PaaS dashboards
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from trustgate.core.domain_types import SigningAlgorithm

DEFAULT_CLOCK_TOLERANCE_SECONDS = 120


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://trustgate:trustgate@db:5432/trustgate"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout_seconds: int = 10

    # Shared cache — empty string disables redis (replay guard runs on the fallback map)
    redis_url: str = "redis://127.0.0.1:6379/0"
    redis_socket_timeout_seconds: float = 2.0

    # Credentials
    jwt_algorithm: SigningAlgorithm = SigningAlgorithm.HS256
    jwt_secret: str = ""
    jwt_private_key: str = ""
    jwt_public_key: str = ""
    jwt_key_id: str = ""
    jwt_audience: str = ""
    jwt_issuer: str = ""
    jwt_expires_in_seconds: int = 900
    jwt_clock_tolerance_seconds: int = DEFAULT_CLOCK_TOLERANCE_SECONDS

    @field_validator("jwt_algorithm", mode="before")
    @classmethod
    def upper_algorithm(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("jwt_private_key", "jwt_public_key", mode="before")
    @classmethod
    def normalize_multiline(cls, v):
        return v.replace("\\n", "\n") if isinstance(v, str) else v

    @field_validator("jwt_clock_tolerance_seconds", mode="before")
    @classmethod
    def default_negative_tolerance(cls, v):
        try:
            parsed = int(v)
        except (TypeError, ValueError):
            return DEFAULT_CLOCK_TOLERANCE_SECONDS
        return parsed if parsed >= 0 else DEFAULT_CLOCK_TOLERANCE_SECONDS

    # Revocation
    revocation_cache_ttl_seconds: float = 30.0

    # Replay
    replay_ttl_seconds: int = 600
    replay_fallback_capacity: int = 2000

    # Prekeys
    prekey_min_key_length: int = 16
    prekey_max_key_length: int = 512
    prekey_max_one_time_keys: int = 200
    prekey_claim_max_attempts: int = 3
    prekey_allow_any_default: bool = False

    # Passwords (argon2id)
    password_time_cost: int = 3
    password_memory_cost_kib: int = 65_536
    password_parallelism: int = 4

    # Messages
    message_max_payload_length: int = 65_536
    message_rate_limit_window_seconds: float = 60.0
    message_rate_limit_max_requests: int = 120

    # Realtime
    reauth_window_seconds: float = 60.0
    reauth_max_attempts: int = 5

    # API
    cors_origins: list[str] = ["http://localhost:5173"]
    access_cookie_secure: bool = True

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
