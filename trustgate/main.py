"""TrustGate API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TrustGateError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Signing material validated on startup: misconfiguration aborts boot (ConfigError)

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Services built once and stored on app.state.trust; routes reach them via Depends
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trustgate.api.error_handlers import register_error_handlers
from trustgate.api.routes import auth, health, keybundle, messages, realtime
from trustgate.config import get_settings
from trustgate.infrastructure.cache import close_cache, init_cache
from trustgate.infrastructure.database import init_db
from trustgate.infrastructure.observability import setup_logging
from trustgate.services.container import build_trust_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout_seconds,
    )
    cache = init_cache(settings.redis_url, settings.redis_socket_timeout_seconds)
    services = build_trust_services(settings, manager.session, cache)
    services.codec.ensure_ready()
    app.state.trust = services
    logger.info(f"TrustGate API started ({settings.jwt_algorithm.value})")
    yield
    logger.info("TrustGate API shutting down")
    await close_cache()
    await manager.dispose()


app = FastAPI(
    title="TrustGate API", version="1.0.0", lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(keybundle.router)
app.include_router(messages.router)
app.include_router(realtime.router)
