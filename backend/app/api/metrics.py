"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Request, Response

from app.monitoring.metrics import rooms_active
from app.monitoring.registry import registry
from app.services.sessions import services_for


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics(request: Request) -> Response:
    """Expose room and relay metrics for Prometheus scraping."""

    rooms_active.set(len(services_for(request).registry))
    return Response(content=registry.render(), media_type="text/plain; version=0.0.4")
