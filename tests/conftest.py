"""Root conftest — shared test configuration."""

import os

# Tests never touch real infrastructure or real secrets
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("ACCESS_COOKIE_SECURE", "false")
# Cheap argon2 parameters: hashing cost is not under test
os.environ.setdefault("PASSWORD_TIME_COST", "1")
os.environ.setdefault("PASSWORD_MEMORY_COST_KIB", "1024")
os.environ.setdefault("PASSWORD_PARALLELISM", "1")
