"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter

from investigation.config import get_settings

router = APIRouter(tags=["Health"])


def _status(status: str) -> dict:
    return {
        "status": status,
        "service": get_settings().service_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Service health status
    """
    return _status("healthy")


@router.get("/ready")
async def readiness_check() -> dict:
    """Readiness probe endpoint.

    Returns:
        Readiness status
    """
    return _status("ready")


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe endpoint.

    Returns:
        Liveness status
    """
    return _status("alive")
