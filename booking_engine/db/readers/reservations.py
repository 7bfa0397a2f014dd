from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from booking_engine.models.enums import BLOCKING_STATUSES, REVENUE_STATUSES, BookingSource
from booking_engine.models.reservations import Reservation


def get_reservation(
    conn: Connection, reservation_id: str, for_update: bool = False
) -> Optional[dict[str, Any]]:
    """
    Fetch a reservation by id.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        reservation_id (str): Internal reservation id.
        for_update (bool): Take a row lock (SELECT ... FOR UPDATE) where supported.

    Returns:
        Optional[dict[str, Any]]: Reservation columns or None if not found.
    """
    stmt = select(Reservation).where(Reservation.id == reservation_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def find_overlapping_reservation_ids(
    conn: Connection,
    property_id: str,
    check_in: date,
    check_out: date,
    exclude_id: Optional[str] = None,
) -> list[str]:
    """
    Return ids of reservations holding any night of [check_in, check_out).

    Only CONFIRMED and CHECKED_IN reservations hold dates. Intervals are
    half-open: a stay ending on day N does not clash with one starting on day N.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property to check.
        check_in (date): Requested first night.
        check_out (date): Requested departure day (exclusive).
        exclude_id (Optional[str]): Reservation to ignore (when moving its own dates).

    Returns:
        list[str]: Clashing reservation ids, oldest check-in first.
    """
    stmt = (
        select(Reservation.id)
        .where(
            Reservation.property_id == property_id,
            Reservation.status.in_([s.value for s in BLOCKING_STATUSES]),
            Reservation.check_in < check_out,
            Reservation.check_out > check_in,
        )
        .order_by(Reservation.check_in)
    )
    if exclude_id is not None:
        stmt = stmt.where(Reservation.id != exclude_id)
    return [row[0] for row in conn.execute(stmt)]


def find_by_external_id(
    conn: Connection, source: str, external_id: str
) -> Optional[dict[str, Any]]:
    """
    Look up a channel reservation by its (source, external_id) pair.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        source (str): Booking source (e.g. "BOOKING_COM").
        external_id (str): Reservation id on the external channel.

    Returns:
        Optional[dict[str, Any]]: Reservation columns or None.
    """
    row = (
        conn.execute(
            select(Reservation).where(
                Reservation.source == source, Reservation.external_id == external_id
            )
        )
        .mappings()
        .first()
    )
    return dict(row) if row else None


def list_external_reservations(
    conn: Connection, source: Optional[str] = None, offset: int = 0, limit: int = 10
) -> tuple[list[dict[str, Any]], int]:
    """
    Page through channel (non-DIRECT) reservations, newest first.

    Returns:
        tuple: (rows for the page, total matching rows)
    """
    condition = (
        Reservation.source == source
        if source
        else Reservation.source != BookingSource.DIRECT.value
    )
    total = conn.execute(select(func.count()).select_from(Reservation).where(condition)).scalar_one()
    rows = (
        conn.execute(
            select(Reservation)
            .where(condition)
            .order_by(Reservation.created_at.desc(), Reservation.id)
            .offset(offset)
            .limit(limit)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows], total


def get_revenue_rows(conn: Connection) -> list[dict[str, Any]]:
    """
    Fetch the money columns of every reservation that counts as revenue.

    Returns:
        list[dict[str, Any]]: source, total_price, commission_amount, net_revenue, currency
    """
    rows = conn.execute(
        select(
            Reservation.source,
            Reservation.total_price,
            Reservation.commission_amount,
            Reservation.net_revenue,
            Reservation.currency,
        ).where(Reservation.status.in_([s.value for s in REVENUE_STATUSES]))
    ).mappings()
    return [dict(r) for r in rows]
