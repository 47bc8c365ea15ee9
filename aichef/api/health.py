"""
Health endpoints.

/healthz is a dependency-free liveness check; /readyz pings the entitlement
store the handlers depend on.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aichef.api.deps import get_store
from aichef.core.store import DocumentStore

logger = logging.getLogger("aichef")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(store: DocumentStore = Depends(get_store)):
    """Readiness check: entitlement store reachable."""
    try:
        if store.ping():
            return {"status": "ok"}
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
    return JSONResponse(status_code=503, content={"status": "error", "detail": "store unreachable"})
