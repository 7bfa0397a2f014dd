from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from booking_engine.models.enums import AttemptStatus
from booking_engine.models.payments import PaymentAttempt
from booking_engine.models.properties import Property
from booking_engine.models.reservations import Reservation


def get_payment_attempt(conn: Connection, attempt_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a payment attempt by internal id.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        attempt_id (str): Payment attempt id.

    Returns:
        Optional[dict[str, Any]]: Attempt columns or None.
    """
    row = (
        conn.execute(select(PaymentAttempt).where(PaymentAttempt.id == attempt_id))
        .mappings()
        .first()
    )
    return dict(row) if row else None


def find_payment_attempt(
    conn: Connection,
    session_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> Optional[dict[str, Any]]:
    """
    Resolve the attempt a gateway object belongs to.

    Either identifier may be missing depending on the event kind; the first
    attempt matching any provided identifier is returned.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        session_id (Optional[str]): Gateway checkout session id.
        payment_intent_id (Optional[str]): Gateway payment intent id.

    Returns:
        Optional[dict[str, Any]]: Attempt columns or None.
    """
    conditions = []
    if session_id:
        conditions.append(PaymentAttempt.gateway_session_id == session_id)
    if payment_intent_id:
        conditions.append(PaymentAttempt.gateway_payment_intent_id == payment_intent_id)
    if not conditions:
        return None

    row = (
        conn.execute(
            select(PaymentAttempt)
            .where(or_(*conditions))
            .order_by(PaymentAttempt.created_at)
            .limit(1)
        )
        .mappings()
        .first()
    )
    return dict(row) if row else None


def list_attempts_for_reservation(conn: Connection, reservation_id: str) -> list[dict[str, Any]]:
    """Return all payment attempts of a reservation, oldest first."""
    rows = conn.execute(
        select(PaymentAttempt)
        .where(PaymentAttempt.reservation_id == reservation_id)
        .order_by(PaymentAttempt.created_at)
    ).mappings()
    return [dict(r) for r in rows]


def get_owner_payouts(conn: Connection, owner_id: str) -> list[dict[str, Any]]:
    """
    List completed payments on an owner's properties with the revenue split.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        owner_id (str): Property owner user id.

    Returns:
        list[dict[str, Any]]: One row per completed attempt, newest first.
    """
    rows = conn.execute(
        select(
            PaymentAttempt.id,
            PaymentAttempt.reservation_id,
            Reservation.property_id,
            Property.title.label("property_title"),
            PaymentAttempt.amount,
            PaymentAttempt.currency,
            Reservation.owner_revenue,
            Reservation.platform_fee,
            PaymentAttempt.processed_at,
            PaymentAttempt.created_at,
        )
        .join(Reservation, Reservation.id == PaymentAttempt.reservation_id)
        .join(Property, Property.id == Reservation.property_id)
        .where(
            Property.owner_id == owner_id,
            PaymentAttempt.status == AttemptStatus.COMPLETED.value,
        )
        .order_by(PaymentAttempt.created_at.desc())
    ).mappings()
    return [dict(r) for r in rows]
