"""
Prometheus scrape endpoint.

Example:
    GET /metrics

    Response:
        # HELP booking_webhook_events_total Payment gateway webhook events processed
        # TYPE booking_webhook_events_total counter
        booking_webhook_events_total{event_type="payment_intent.succeeded",outcome="applied"} 12.0
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
