"""
Availability conflict checking for a property's calendar.

``has_conflict`` answers the question on its own; ``assert_available`` is the
form used inside a calendar-mutating transaction, after
``lock_property_calendar`` has serialized writers for the property.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.engine import Connection

from booking_engine.db.readers.reservations import find_overlapping_reservation_ids
from booking_engine.db.writers.properties import lock_property_calendar
from booking_engine.errors import BookingError, ConflictError, ValidationError


def validate_stay_dates(check_in: date, check_out: date) -> None:
    """
    Reject empty or inverted stays.

    Raises:
        ValidationError: If check_out is not after check_in
    """
    if check_out <= check_in:
        raise ValidationError(
            "check_out must be after check_in",
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
        )


def find_conflicts(
    conn: Connection,
    property_id: str,
    check_in: date,
    check_out: date,
    exclude_id: Optional[str] = None,
) -> list[str]:
    """Ids of CONFIRMED or CHECKED_IN reservations overlapping [check_in, check_out)."""
    return find_overlapping_reservation_ids(conn, property_id, check_in, check_out, exclude_id)


def has_conflict(conn: Connection, property_id: str, check_in: date, check_out: date) -> bool:
    """
    Whether a CONFIRMED or CHECKED_IN reservation overlaps [check_in, check_out).

    Args:
        conn: Active SQLAlchemy connection
        property_id: Property to check
        check_in: First night requested
        check_out: Departure day (exclusive)

    Returns:
        bool: True if the dates are taken
    """
    return bool(find_conflicts(conn, property_id, check_in, check_out))


def assert_available(
    conn: Connection,
    property_id: str,
    check_in: date,
    check_out: date,
    exclude_id: Optional[str] = None,
    error_cls: type[BookingError] = ConflictError,
) -> None:
    """
    Lock the property calendar and fail if the dates are taken.

    The lock is held until the caller's transaction ends, so the insert or
    status change that follows is atomic with this check.

    Args:
        conn: Connection inside an open transaction
        property_id: Property to check
        check_in: First night requested
        check_out: Departure day (exclusive)
        exclude_id: Reservation to ignore (when moving its own dates)
        error_cls: Error raised on a clash (ConflictError for checkout,
            BadRequestError for channel imports)

    Raises:
        NotFoundError: If the property does not exist
        error_cls: If the dates clash, with the clashing reservation ids
    """
    validate_stay_dates(check_in, check_out)
    lock_property_calendar(conn, property_id)

    clashing = find_conflicts(conn, property_id, check_in, check_out, exclude_id=exclude_id)
    if clashing:
        raise error_cls(
            f"Property is not available for the selected dates "
            f"(conflicts with {', '.join(clashing)})",
            property_id=property_id,
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
            conflicting_reservation_ids=clashing,
        )
