"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the database is unreachable (readiness)
    - Shared cache status is reported but never fails readiness: replay checks
      degrade to the in-process window while redis is down

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
"""

import logging
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

import trustgate.infrastructure.cache as cache_module
import trustgate.infrastructure.database as db_module
from trustgate.infrastructure.cache import cache_health_check

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "trustgate-api",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness probe — database connectivity plus shared cache status."""
    manager = db_module.db_manager
    db_ok = await manager.health_check() if manager else False
    client = cache_module.cache_client
    if client is None:
        cache_state = "disabled"
    else:
        cache_state = "healthy" if await cache_health_check(client) else "degraded"

    if not db_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "database_unavailable",
                "checks": {"database": "unavailable", "cache": cache_state},
            },
        )
    return {"status": "ready", "checks": {"database": "healthy", "cache": cache_state}}
