"""
Reservation lifecycle and payment state machine.

This module is the only writer of ``reservations.status`` and
``reservations.payment_status``. Every change is validated against the edge
tables below and written as a compare-and-swap on the (status,
payment_status) pair the caller read, so two concurrent writers can never
both apply a transition from the same state.

Reservation status:
    PENDING -> CONFIRMED | CANCELLED
    CONFIRMED -> CHECKED_IN | CANCELLED | NO_SHOW
    CHECKED_IN -> COMPLETED | CANCELLED | NO_SHOW
    COMPLETED, CANCELLED, NO_SHOW are terminal

Payment status:
    PENDING -> COMPLETED | FAILED
    COMPLETED -> REFUNDED | PARTIALLY_REFUNDED
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection

from booking_engine.config import DEFAULT_PLATFORM_FEE_PERCENTAGE
from booking_engine.db.readers.reservations import find_overlapping_reservation_ids
from booking_engine.db.writers.reservations import compare_and_set_state
from booking_engine.errors import InvalidTransitionError
from booking_engine.metrics import revenue_splits_applied, state_transitions
from booking_engine.models.enums import PaymentStatus, ReservationStatus
from booking_engine.services.pricing import revenue_split
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

RS = ReservationStatus
PS = PaymentStatus

RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    RS.PENDING: frozenset({RS.CONFIRMED, RS.CANCELLED}),
    RS.CONFIRMED: frozenset({RS.CHECKED_IN, RS.CANCELLED, RS.NO_SHOW}),
    RS.CHECKED_IN: frozenset({RS.COMPLETED, RS.CANCELLED, RS.NO_SHOW}),
    RS.COMPLETED: frozenset(),
    RS.CANCELLED: frozenset(),
    RS.NO_SHOW: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PS.PENDING: frozenset({PS.COMPLETED, PS.FAILED}),
    PS.COMPLETED: frozenset({PS.REFUNDED, PS.PARTIALLY_REFUNDED}),
    PS.FAILED: frozenset(),
    PS.REFUNDED: frozenset(),
    PS.PARTIALLY_REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in RESERVATION_TRANSITIONS.items() if not targets)

DATES_TAKEN_REASON = "dates_no_longer_available"


def can_transition_status(current: str, target: str) -> bool:
    return RS(target) in RESERVATION_TRANSITIONS[RS(current)]


def can_transition_payment(current: str, target: str) -> bool:
    return PS(target) in PAYMENT_TRANSITIONS[PS(current)]


def ensure_status_transition(current: str, target: str) -> None:
    """
    Raises:
        InvalidTransitionError: If current -> target is not a reservation edge
    """
    if not can_transition_status(current, target):
        raise InvalidTransitionError(
            f"Reservation cannot move from {current} to {target}",
            field="status",
            current=str(RS(current).value),
            target=str(RS(target).value),
        )


def ensure_payment_transition(current: str, target: str) -> None:
    """
    Raises:
        InvalidTransitionError: If current -> target is not a payment edge
    """
    if not can_transition_payment(current, target):
        raise InvalidTransitionError(
            f"Payment cannot move from {current} to {target}",
            field="payment_status",
            current=str(PS(current).value),
            target=str(PS(target).value),
        )


@dataclass(frozen=True)
class ConfirmationResult:
    """Result of applying a successful payment to a reservation."""

    reservation: dict[str, Any]
    confirmed: bool
    conflicting_reservation_ids: tuple[str, ...] = ()


def _apply(
    conn: Connection,
    reservation: dict[str, Any],
    transition: str,
    status: Optional[ReservationStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    **values: Any,
) -> dict[str, Any]:
    """
    Validate and write a transition, returning the updated reservation dict.

    Raises:
        InvalidTransitionError: If an edge is not allowed or the stored state
            changed since ``reservation`` was read
    """
    current_status = reservation["status"]
    current_payment = reservation["payment_status"]

    if status is not None:
        ensure_status_transition(current_status, status)
        values["status"] = status.value
    if payment_status is not None:
        ensure_payment_transition(current_payment, payment_status)
        values["payment_status"] = payment_status.value

    if not compare_and_set_state(
        conn, reservation["id"], current_status, current_payment, values
    ):
        raise InvalidTransitionError(
            "Reservation state changed concurrently",
            reservation_id=reservation["id"],
            expected_status=current_status,
            expected_payment_status=current_payment,
        )

    state_transitions.labels(transition=transition).inc()
    logger.info(
        "reservation_transition",
        transition=transition,
        reservation_id=reservation["id"],
        from_status=current_status,
        to_status=values.get("status", current_status),
        from_payment_status=current_payment,
        to_payment_status=values.get("payment_status", current_payment),
    )
    return {**reservation, **values}


def confirm_payment(
    conn: Connection, reservation: dict[str, Any], property_: dict[str, Any]
) -> ConfirmationResult:
    """
    Apply a completed payment: PENDING -> CONFIRMED, payment PENDING -> COMPLETED.

    Computes and persists the platform fee / owner revenue split. The caller
    must hold the property calendar lock: the dates are re-checked here
    because a PENDING reservation does not hold them. If another reservation
    was confirmed for overlapping dates in the meantime, the payment is still
    recorded as COMPLETED but the reservation is CANCELLED so it can be
    refunded, and no revenue split is written.

    Args:
        conn: Connection inside an open transaction (calendar locked)
        reservation: Reservation row as read in this transaction
        property_: Property row (for the platform fee percentage)

    Returns:
        ConfirmationResult
    """
    clashing = find_overlapping_reservation_ids(
        conn,
        reservation["property_id"],
        reservation["check_in"],
        reservation["check_out"],
        exclude_id=reservation["id"],
    )
    if clashing:
        updated = _apply(
            conn,
            reservation,
            "confirm_payment_dates_taken",
            status=RS.CANCELLED,
            payment_status=PS.COMPLETED,
            cancellation_reason=DATES_TAKEN_REASON,
            cancelled_at=utc_now(),
        )
        logger.warning(
            "reservation_paid_but_dates_taken",
            reservation_id=reservation["id"],
            property_id=reservation["property_id"],
            conflicting_reservation_ids=clashing,
        )
        return ConfirmationResult(updated, confirmed=False, conflicting_reservation_ids=tuple(clashing))

    fee_percentage = property_.get("service_fee_percentage")
    if fee_percentage is None:
        fee_percentage = DEFAULT_PLATFORM_FEE_PERCENTAGE
    split = revenue_split(reservation["total_price"], fee_percentage)

    updated = _apply(
        conn,
        reservation,
        "confirm_payment",
        status=RS.CONFIRMED,
        payment_status=PS.COMPLETED,
        platform_fee=split.platform_fee,
        owner_revenue=split.owner_revenue,
    )
    revenue_splits_applied.inc()
    return ConfirmationResult(updated, confirmed=True)


def record_late_payment(conn: Connection, reservation: dict[str, Any]) -> dict[str, Any]:
    """
    Payment PENDING -> COMPLETED on a reservation that is no longer PENDING.

    Happens when the guest pays after the checkout was cancelled or expired.
    The money is recorded so it can be refunded; no revenue split is written.
    """
    return _apply(conn, reservation, "late_payment", payment_status=PS.COMPLETED)


def fail_payment(conn: Connection, reservation: dict[str, Any]) -> dict[str, Any]:
    """Payment PENDING -> FAILED. The reservation status is left as is."""
    return _apply(conn, reservation, "fail_payment", payment_status=PS.FAILED)


def record_refund(
    conn: Connection,
    reservation: dict[str, Any],
    full: bool,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """
    Payment COMPLETED -> REFUNDED (full) or PARTIALLY_REFUNDED.

    A full refund also cancels a reservation that still holds its dates,
    which frees the date range. Terminal reservations keep their status.
    """
    values: dict[str, Any] = {}
    status: Optional[ReservationStatus] = None

    if full and reservation["status"] in (RS.CONFIRMED.value, RS.CHECKED_IN.value):
        status = RS.CANCELLED
        values["cancelled_at"] = utc_now()
        values["cancellation_reason"] = reason or "refunded"

    return _apply(
        conn,
        reservation,
        "refund" if full else "partial_refund",
        status=status,
        payment_status=PS.REFUNDED if full else PS.PARTIALLY_REFUNDED,
        **values,
    )


def cancel(
    conn: Connection, reservation: dict[str, Any], reason: Optional[str] = None
) -> dict[str, Any]:
    """PENDING | CONFIRMED | CHECKED_IN -> CANCELLED."""
    return _apply(
        conn,
        reservation,
        "cancel",
        status=RS.CANCELLED,
        cancellation_reason=reason,
        cancelled_at=utc_now(),
    )


def check_in(conn: Connection, reservation: dict[str, Any]) -> dict[str, Any]:
    """CONFIRMED -> CHECKED_IN."""
    return _apply(conn, reservation, "check_in", status=RS.CHECKED_IN)


def complete(conn: Connection, reservation: dict[str, Any]) -> dict[str, Any]:
    """CHECKED_IN -> COMPLETED."""
    return _apply(conn, reservation, "complete", status=RS.COMPLETED)


def mark_no_show(conn: Connection, reservation: dict[str, Any]) -> dict[str, Any]:
    """CONFIRMED | CHECKED_IN -> NO_SHOW."""
    return _apply(conn, reservation, "no_show", status=RS.NO_SHOW)


def transition_status(
    conn: Connection,
    reservation: dict[str, Any],
    target: ReservationStatus,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """
    Move a reservation to ``target`` through the matching operation.

    Used where the target arrives as data (channel sync, owner tooling).
    CONFIRMED is not reachable this way: only a completed payment confirms.

    Raises:
        InvalidTransitionError: If the edge is not allowed
    """
    if target.value == reservation["status"]:
        return reservation
    if target == RS.CANCELLED:
        return cancel(conn, reservation, reason)
    if target == RS.CHECKED_IN:
        return check_in(conn, reservation)
    if target == RS.COMPLETED:
        return complete(conn, reservation)
    if target == RS.NO_SHOW:
        return mark_no_show(conn, reservation)
    raise InvalidTransitionError(
        f"Reservation cannot be moved to {target.value} directly",
        current=reservation["status"],
        target=target.value,
    )
