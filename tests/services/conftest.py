"""Service test fixtures — async DB, wired trust services and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - app.state.trust holds services built on the test session factory
      (ASGITransport does not run the lifespan)
    - db_manager patched so readiness probes hit the test engine

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
    - No redis: replay admission runs on the in-process fallback window
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from trustgate.config import get_settings
from trustgate.db.base import Base
from trustgate.infrastructure.database import get_db, DatabaseSessionManager
from trustgate.models.principal import Principal
from trustgate.services.container import build_trust_services
import trustgate.infrastructure.database as db_module
from trustgate.main import app


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def services(test_session_factory):
    """Trust services wired to the test database, no shared cache."""
    return build_trust_services(get_settings(), test_session_factory, cache=None)


@pytest.fixture
async def client(test_engine, test_session_factory, services):
    """FastAPI test client with DB dependency and services overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    original_trust = getattr(app.state, "trust", None)
    app.state.trust = services

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    app.state.trust = original_trust
    db_module.db_manager = original_manager


@pytest.fixture
def make_principal(test_session_factory, services):
    """Insert a principal and return (id, bearer headers)."""
    async def _make(name: str | None = None, generation: int = 0):
        name = name or f"user-{uuid.uuid4().hex[:8]}"
        async with test_session_factory() as db:
            principal = Principal(
                username=name, email=f"{name}@example.com",
                password_hash="not-a-real-hash", generation=generation,
            )
            db.add(principal)
            await db.commit()
            await db.refresh(principal)
        token = services.codec.sign({"sub": principal.id, "gen": generation})
        return principal.id, {"Authorization": f"Bearer {token}"}
    return _make
