"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the remote store is unreachable (readiness)

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
    - Readiness reports queue depth: a growing queue on a ready node is worth alerting on
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from matchsync.runtime import MatchSyncRuntime, get_runtime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {"status": "healthy", "service": "matchsync-api", "version": "1.0.0"}


@router.get("/ready")
async def readiness_check(rt: MatchSyncRuntime = Depends(get_runtime)):
    """Readiness probe — includes remote store connectivity."""
    remote_ok = await rt.store.is_reachable()
    if not remote_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "remote_store_unavailable"},
        )
    return {
        "status": "ready",
        "checks": {"remote_store": "healthy"},
        "pending_actions": len(rt.queue),
    }
