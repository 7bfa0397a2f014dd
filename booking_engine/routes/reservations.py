"""Guest and owner reservation actions: cancellation and stay progression."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Body, Depends
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_current_user, get_db_engine
from booking_engine.schemas.payments import CancelReservationRequest
from booking_engine.schemas.reservations import CancellationResponse, ReservationResponse
from booking_engine.services.refunds import cancel_reservation
from booking_engine.services.stays import advance_stay

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/{reservation_id}/cancel", response_model=CancellationResponse)
def cancel(
    reservation_id: str,
    payload: Optional[CancelReservationRequest] = Body(None),
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Cancel a reservation (guest, owner or admin).

    Returns the cancelled reservation and the refund owed under the
    property's cancellation policy; the refund itself is issued separately.
    """
    reason = payload.reason if payload else None
    return cancel_reservation(db, actor, reservation_id, reason)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
def check_in(
    reservation_id: str,
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return advance_stay(db, actor, reservation_id, "check_in")


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
def complete(
    reservation_id: str,
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return advance_stay(db, actor, reservation_id, "complete")


@router.post("/{reservation_id}/no-show", response_model=ReservationResponse)
def no_show(
    reservation_id: str,
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return advance_stay(db, actor, reservation_id, "no_show")
