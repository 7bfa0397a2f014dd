"""
Machine-to-machine routes for channel managers: import, sync and lookup of
reservations made on external channels. All require ``X-API-Key``.
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine, require_api_key
from booking_engine.errors import BookingError
from booking_engine.schemas.external_bookings import (
    BulkImportPayload,
    ExternalBookingPatch,
    ExternalBookingPayload,
)
from booking_engine.services.external_bookings import (
    bulk_import,
    find_by_external_id,
    import_booking,
    list_external_bookings,
    revenue_by_source,
    sync_booking,
)
from booking_engine.schemas.reservations import (
    ExternalBookingPage,
    ReservationResponse,
    SourceRevenue,
)

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ReservationResponse)
def import_external_booking(
    payload: ExternalBookingPayload, db: Engine = Depends(get_db_engine)
) -> dict[str, Any]:
    """
    Import one channel reservation as CONFIRMED.

    Returns:
        201 with the reservation.
        409 if (source, external_id) was already imported, naming the existing id.
        400 if the dates clash with a held reservation.
    """
    try:
        return import_booking(db, payload)
    except BookingError:
        raise
    except Exception as e:
        logger.exception(
            "external_import_failed",
            source=payload.source.value,
            external_id=payload.external_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bulk")
def bulk_import_external_bookings(
    payload: BulkImportPayload, db: Engine = Depends(get_db_engine)
) -> dict[str, Any]:
    """Import a batch; per-item failures are reported, never raised."""
    return bulk_import(db, payload.bookings)


@router.get("/revenue-by-source", response_model=dict[str, SourceRevenue])
def revenue_report(db: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    return revenue_by_source(db)


@router.get("", response_model=ExternalBookingPage)
def list_bookings(
    source: Optional[str] = Query(None, description="Filter by channel"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return list_external_bookings(db, source=source, page=page, limit=limit)


@router.get("/{source}/{external_id}", response_model=ReservationResponse)
def lookup_booking(source: str, external_id: str, db: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    return find_by_external_id(db, source, external_id)


@router.patch("/{reservation_id}", response_model=ReservationResponse)
def sync_external_booking(
    reservation_id: str, patch: ExternalBookingPatch, db: Engine = Depends(get_db_engine)
) -> dict[str, Any]:
    """Apply changes reported by the channel (dates, price, guest, status)."""
    try:
        return sync_booking(db, reservation_id, patch)
    except BookingError:
        raise
    except Exception as e:
        logger.exception("external_sync_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
