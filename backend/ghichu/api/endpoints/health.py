"""
Health check endpoints for the Ghichu API.

Reports process status together with note store cache and sweeper state.
"""

from datetime import datetime, timezone
from typing import Any, Dict
import time

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ...core.config import get_settings
from ...services.note_store import NoteStore
from ..dependencies import get_note_store

# Track process start time for uptime calculation
PROCESS_START_TIME = time.time()

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(store: NoteStore = Depends(get_note_store)) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns a simple health status for load balancers and monitoring systems.
    The status is "degraded" while the storage backend is unreachable.
    """
    settings = get_settings()
    backend_health = await store.repositories.health_check()
    status = "healthy" if backend_health.get("status") == "healthy" else "degraded"
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
        "uptime_seconds": round(time.time() - PROCESS_START_TIME, 1),
        "store": store.stats(),
        "backend_health": backend_health,
    }


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of sweeper metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
