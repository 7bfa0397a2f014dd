"""Owner-side stay progression: check-in, completion and no-show."""

from typing import Any, Callable

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_engine.db.readers.properties import get_property
from booking_engine.db.readers.reservations import get_reservation
from booking_engine.errors import NotFoundError
from booking_engine.services import state_machine
from booking_engine.services.access import ensure_owner_or_admin

logger = structlog.get_logger(__name__)

Transition = Callable[[Connection, dict[str, Any]], dict[str, Any]]

STAY_TRANSITIONS: dict[str, Transition] = {
    "check_in": state_machine.check_in,
    "complete": state_machine.complete,
    "no_show": state_machine.mark_no_show,
}


def advance_stay(
    engine: Engine, actor: dict[str, Any], reservation_id: str, action: str
) -> dict[str, Any]:
    """
    Apply a stay transition on behalf of the property owner or an admin.

    Args:
        engine: SQLAlchemy engine
        actor: Acting user
        reservation_id: Reservation to move
        action: check_in, complete or no_show

    Returns:
        dict[str, Any]: The updated reservation

    Raises:
        NotFoundError: Unknown reservation
        ForbiddenError: Actor is not the owner or an admin
        InvalidTransitionError: Not allowed from the current status
    """
    transition = STAY_TRANSITIONS[action]
    with engine.begin() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found", reservation_id=reservation_id)
        property_ = get_property(conn, reservation["property_id"]) or {"id": reservation["property_id"]}
        ensure_owner_or_admin(actor, property_)
        updated = transition(conn, reservation)

    logger.info("stay_advanced", reservation_id=reservation_id, action=action, actor_id=actor["id"])
    return updated
