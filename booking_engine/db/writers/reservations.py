from typing import Any, Optional

import structlog
from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from booking_engine.errors import ValidationError
from booking_engine.models.base import new_id
from booking_engine.models.enums import PaymentStatus, ReservationStatus
from booking_engine.models.payments import PaymentAttempt
from booking_engine.models.reservations import Reservation
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

OVERLAP_CONSTRAINT = "excl_reservations_no_overlap"
EXTERNAL_ID_CONSTRAINT = "uq_reservations_source_external_id"

# Columns only services/state_machine.py may write
STATE_COLUMNS = frozenset({"status", "payment_status"})
REVENUE_COLUMNS = frozenset({"platform_fee", "owner_revenue"})


def is_overlap_violation(exc: IntegrityError) -> bool:
    """True if the PostgreSQL no-overlap exclusion constraint rejected the write."""
    return OVERLAP_CONSTRAINT in str(exc.orig)


def is_external_id_violation(exc: IntegrityError) -> bool:
    """True if the (source, external_id) unique constraint rejected the write."""
    message = str(exc.orig)
    return EXTERNAL_ID_CONSTRAINT in message or (
        "reservations.source" in message and "reservations.external_id" in message
    )


def insert_reservation(conn: Connection, values: dict[str, Any]) -> str:
    """
    Insert a reservation row.

    Args:
        conn (Connection): Connection inside an open transaction.
        values (dict[str, Any]): Column values; ``id`` is generated when absent.

    Returns:
        str: The reservation id.
    """
    now = utc_now()
    row = {"id": new_id(), "created_at": now, "updated_at": now, **values}
    conn.execute(insert(Reservation).values(**row))
    logger.debug(
        "reservation_inserted",
        reservation_id=row["id"],
        property_id=row.get("property_id"),
        status=row.get("status"),
    )
    return str(row["id"])


def delete_pending_reservation(conn: Connection, reservation_id: str) -> bool:
    """
    Delete a reservation that never left PENDING/PENDING, with its attempts.

    Used only to compensate a failed checkout. A reservation that a webhook has
    already moved on is left untouched.

    Args:
        conn (Connection): Connection inside an open transaction.
        reservation_id (str): Reservation to remove.

    Returns:
        bool: True if the reservation was deleted.
    """
    result = conn.execute(
        delete(Reservation).where(
            Reservation.id == reservation_id,
            Reservation.status == ReservationStatus.PENDING.value,
            Reservation.payment_status == PaymentStatus.PENDING.value,
        )
    )
    if result.rowcount == 0:
        return False

    conn.execute(delete(PaymentAttempt).where(PaymentAttempt.reservation_id == reservation_id))
    return True


def compare_and_set_state(
    conn: Connection,
    reservation_id: str,
    expected_status: str,
    expected_payment_status: str,
    values: dict[str, Any],
) -> bool:
    """
    Update a reservation only if its (status, payment_status) is still as read.

    Args:
        conn (Connection): Connection inside an open transaction.
        reservation_id (str): Reservation to update.
        expected_status (str): Status the caller observed.
        expected_payment_status (str): Payment status the caller observed.
        values (dict[str, Any]): Columns to write.

    Returns:
        bool: False if another writer changed the state first.
    """
    result = conn.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == expected_status,
            Reservation.payment_status == expected_payment_status,
        )
        .values(**values, updated_at=utc_now())
    )
    return result.rowcount == 1


def update_reservation_fields(
    conn: Connection, reservation_id: str, data: dict[str, Any]
) -> Optional[int]:
    """
    Patch non-state columns of a reservation.

    Args:
        conn (Connection): Connection inside an open transaction.
        reservation_id (str): Reservation to update.
        data (dict[str, Any]): Columns to write; must not contain state or revenue columns.

    Returns:
        Optional[int]: Number of rows updated.

    Raises:
        ValidationError: If ``data`` contains status, payment_status or the
            platform fee / owner revenue split.
    """
    forbidden = (STATE_COLUMNS | REVENUE_COLUMNS) & data.keys()
    if forbidden:
        raise ValidationError(
            "Status and revenue fields are written by the state machine only",
            fields=sorted(forbidden),
        )

    result = conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(**data, updated_at=utc_now())
    )
    return result.rowcount
