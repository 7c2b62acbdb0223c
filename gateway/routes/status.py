"""Health check and status endpoints."""

from fastapi import APIRouter, Request

from gateway.auth.dependencies import get_services
from gateway.config import settings

router = APIRouter(tags=["Health"])


@router.get("/status")
async def get_status(request: Request) -> dict:
    """
    Health check endpoint for monitoring and load balancers.

    Unauthenticated and cheap: reads in-memory counters only.

    Returns:
        Status, version, uptime and delivery/rate-limit gauges
    """
    services = get_services(request)
    return {
        "status": "ok",
        "version": settings.api_version,
        "uptime_seconds": services.uptime_seconds,
        "webhooks": {
            "running": services.engine.running,
            **services.engine.stats(),
        },
        "rate_limits": {
            "active_counters": services.rate_limiter.active_counters,
        },
    }
