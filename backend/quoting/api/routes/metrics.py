"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - upstream_latency_ms{upstream, outcome}
    - upstream_errors_total{upstream, reason}
    - place_match_results_total{tier}
    - itinerary_mutations_total{action, outcome}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
