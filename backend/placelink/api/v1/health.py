import logging

from fastapi import APIRouter
from fastapi.responses import Response

from placelink.config import settings
from placelink.core.metrics import get_metrics, get_metrics_content_type
from placelink.services.browser import browser_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/health",
    summary="Liveness check",
    description="Returns HTTP 200 while the process is running, with the state of the shared browser.",
)
async def liveness():
    """Liveness check; the lazily launched browser is reported, not checked."""
    return {
        "status": "healthy",
        "browser": {
            "connected": browser_session.is_connected,
            "active_pages": browser_session.active_pages,
        },
    }


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose application metrics in Prometheus exposition format. Returns HTTP 404 if metrics collection is disabled in the application configuration.",
)
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.METRICS_ENABLED:
        return Response(content="Metrics disabled", status_code=404)

    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
