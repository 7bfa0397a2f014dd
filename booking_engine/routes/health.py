"""
Liveness and readiness probes.

Readiness requires a reachable database and a configured payment gateway;
without either, checkouts and webhooks would fail.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from booking_engine.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from booking_engine.db.engine import check_engine_health
from booking_engine.dependencies import get_db_engine

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """
    Liveness probe. 200 while the process is serving requests.

    Example:
        >>> GET /health
        {"status": "ok"}
    """
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check(db: Engine = Depends(get_db_engine)) -> JSONResponse:
    """
    Readiness probe.

    Returns:
        200 {"status": "ready", "checks": {...}} when every check passes,
        503 {"status": "not ready", "checks": {...}} otherwise.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"database": "ok", "payment_gateway": "ok"}}
    """
    checks = {
        "database": "ok" if check_engine_health(db) else "failed",
        "payment_gateway": "ok" if STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET else "unconfigured",
    }
    if all(value == "ok" for value in checks.values()):
        return JSONResponse(content={"status": "ready", "checks": checks})

    logger.error("readiness_check_failed", checks=checks)
    return JSONResponse(status_code=503, content={"status": "not ready", "checks": checks})
