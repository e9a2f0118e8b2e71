"""
Health endpoints.

Lightweight checks for operational monitoring without exposing secrets.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from buddy.api.deps import get_services
from buddy.features.gamification.container import GamificationServices

logger = logging.getLogger("buddy")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(services: GamificationServices = Depends(get_services)):
    """Readiness check: store connectivity."""
    store_ok = services.store.ping()
    if not store_ok:
        logger.warning("readyz.store_unavailable")
        return JSONResponse(status_code=503, content={"ready": False, "store": type(services.store).__name__})
    return {"ready": True, "store": type(services.store).__name__}
