"""
Prometheus metrics endpoint.

Example:
    GET /metrics

    Response:
        # HELP reservation_sync_transitions_total Reservation status transition attempts
        # TYPE reservation_sync_transitions_total counter
        reservation_sync_transitions_total{from_status="tentative",origin="internal",outcome="applied",to_status="confirmed"} 3.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """Expose every registered metric in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
