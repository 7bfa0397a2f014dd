"""
Refunds, guest/owner cancellations, payment reads and owner payouts.

Refunds move money through the payment gateway first and then record the
result through the state machine. The gateway call is made outside any
datastore transaction and carries an idempotency key derived from the
payment attempt, so a retried request never refunds twice. A
``charge.refunded`` webhook for the same refund may be applied before or
after the local write; whichever comes second finds the payment already
refunded.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from booking_engine.db.readers.payments import get_owner_payouts, get_payment_attempt
from booking_engine.db.readers.properties import get_property
from booking_engine.db.readers.reservations import get_reservation
from booking_engine.db.writers.payments import update_payment_attempt
from booking_engine.db.writers.properties import lock_property_calendar
from booking_engine.errors import (
    BadRequestError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from booking_engine.models.enums import AttemptStatus, PaymentStatus
from booking_engine.network.gateway import PaymentGateway
from booking_engine.services import state_machine
from booking_engine.services.access import ensure_owner_or_admin, ensure_participant
from booking_engine.services.pricing import ZERO, calculate_refund, round_money, to_decimal
from booking_engine.utils.datetime import utc_now, utc_today

logger = structlog.get_logger(__name__)


def _load(engine: Engine, attempt_id: str) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    """Read a payment attempt with its reservation and property."""
    with engine.connect() as conn:
        attempt = get_payment_attempt(conn, attempt_id)
        if attempt is None:
            raise NotFoundError("Payment not found", payment_id=attempt_id)
        reservation = get_reservation(conn, attempt["reservation_id"])
        if reservation is None:
            raise NotFoundError("Reservation not found", reservation_id=attempt["reservation_id"])
        property_ = get_property(conn, reservation["property_id"])
        if property_ is None:
            raise NotFoundError("Property not found", property_id=reservation["property_id"])
    return attempt, reservation, property_


def refund_payment(
    engine: Engine,
    gateway: PaymentGateway,
    actor: dict[str, Any],
    payment_attempt_id: str,
    amount: Optional[Decimal] = None,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """
    Refund all or part of a completed payment.

    A full refund moves the payment to REFUNDED and cancels the reservation,
    freeing its dates. A partial refund moves it to PARTIALLY_REFUNDED.

    Args:
        engine: SQLAlchemy engine
        gateway: Payment gateway adapter
        actor: Acting user (must own the property or be an admin)
        payment_attempt_id: Payment attempt to refund
        amount: Amount to refund; the whole payment when omitted
        reason: Reason stored on the payment and the cancellation

    Returns:
        dict[str, Any]: The updated payment attempt

    Raises:
        NotFoundError: Unknown payment
        ForbiddenError: Actor is not the owner or an admin
        InvalidTransitionError: Payment is not COMPLETED
        ValidationError: Amount exceeds the payment
        BadRequestError: No captured payment on the gateway side
        GatewayError / GatewayTimeoutError: Provider failure (nothing recorded)
    """
    attempt, reservation, property_ = _load(engine, payment_attempt_id)
    ensure_owner_or_admin(actor, property_)

    if attempt["status"] != AttemptStatus.COMPLETED.value:
        raise InvalidTransitionError(
            "Only completed payments can be refunded",
            payment_id=payment_attempt_id,
            current=attempt["status"],
        )

    paid = to_decimal(attempt["amount"])
    refund_amount = round_money(to_decimal(amount)) if amount is not None else paid
    if refund_amount <= ZERO or refund_amount > paid:
        raise ValidationError(
            "Refund amount must be positive and at most the amount paid",
            amount=str(refund_amount),
            paid=str(paid),
        )
    if not attempt["gateway_payment_intent_id"] and not attempt["gateway_charge_id"]:
        raise BadRequestError("Payment has no captured charge to refund", payment_id=payment_attempt_id)

    full = refund_amount == paid
    refund = gateway.create_refund(
        attempt["gateway_payment_intent_id"],
        refund_amount,
        reason=reason,
        idempotency_key=f"refund-{payment_attempt_id}-{refund_amount}",
        charge_id=attempt["gateway_charge_id"],
    )

    target = PaymentStatus.REFUNDED if full else PaymentStatus.PARTIALLY_REFUNDED
    with engine.begin() as conn:
        lock_property_calendar(conn, reservation["property_id"])
        current = get_reservation(conn, reservation["id"])
        if current is None:
            raise NotFoundError("Reservation not found", reservation_id=reservation["id"])
        if current["payment_status"] == PaymentStatus.FAILED.value:
            # Captured after a decline; the reservation never recorded the payment
            logger.warning(
                "refund_of_payment_captured_after_failure",
                payment_id=payment_attempt_id,
                reservation_id=reservation["id"],
            )
        # A charge.refunded webhook may have recorded it already
        elif current["payment_status"] != target.value:
            state_machine.record_refund(conn, current, full=full, reason=reason)
        update_payment_attempt(
            conn,
            payment_attempt_id,
            {
                "status": target.value,
                "gateway_refund_id": refund.refund_id,
                "refund_amount": refund_amount,
                "refund_reason": reason,
                "refunded_at": utc_now(),
            },
        )
        updated = get_payment_attempt(conn, payment_attempt_id)

    logger.info(
        "payment_refunded",
        payment_id=payment_attempt_id,
        reservation_id=reservation["id"],
        refund_id=refund.refund_id,
        amount=str(refund_amount),
        full=full,
        actor_id=actor["id"],
    )
    return updated or attempt


def cancel_reservation(
    engine: Engine, actor: dict[str, Any], reservation_id: str, reason: Optional[str] = None
) -> dict[str, Any]:
    """
    Cancel a reservation and quote the refund owed under the property's policy.

    No money moves here; the owner issues the refund through ``refund_payment``.

    Args:
        engine: SQLAlchemy engine
        actor: Guest of the reservation, property owner, or admin
        reservation_id: Reservation to cancel
        reason: Cancellation reason

    Returns:
        dict: ``reservation`` and ``refund_quote`` (None when nothing was paid)

    Raises:
        NotFoundError: Unknown reservation
        ForbiddenError: Actor has no rights over the reservation
        InvalidTransitionError: Reservation is already terminal
    """
    with engine.begin() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found", reservation_id=reservation_id)
        property_ = get_property(conn, reservation["property_id"]) or {"id": reservation["property_id"]}
        ensure_participant(actor, reservation, property_)

        updated = state_machine.cancel(conn, reservation, reason)

    quote = None
    if reservation["payment_status"] == PaymentStatus.COMPLETED.value:
        refund = calculate_refund(
            reservation["total_price"],
            utc_today(),
            reservation["check_in"],
            property_.get("cancellation_policy") or "MODERATE",
        )
        quote = {
            "policy": property_.get("cancellation_policy"),
            "days_until_check_in": refund.days_until_check_in,
            "refund_percentage": refund.refund_percentage,
            "refund_amount": refund.refund_amount,
            "processing_fee": refund.processing_fee,
            "net_refund": refund.net_refund,
        }

    logger.info(
        "reservation_cancelled",
        reservation_id=reservation_id,
        actor_id=actor["id"],
        reason=reason,
        net_refund=str(quote["net_refund"]) if quote else None,
    )
    return {"reservation": updated, "refund_quote": quote}


def get_payment(engine: Engine, actor: dict[str, Any], payment_attempt_id: str) -> dict[str, Any]:
    """
    Read a payment attempt with a summary of its reservation.

    Raises:
        NotFoundError: Unknown payment
        ForbiddenError: Actor is not the guest, the owner or an admin
    """
    attempt, reservation, property_ = _load(engine, payment_attempt_id)
    ensure_participant(actor, reservation, property_)
    return {
        **attempt,
        "reservation": {
            "id": reservation["id"],
            "property_id": reservation["property_id"],
            "property_title": property_.get("title"),
            "check_in": reservation["check_in"],
            "check_out": reservation["check_out"],
            "status": reservation["status"],
            "payment_status": reservation["payment_status"],
        },
    }


def owner_payouts(engine: Engine, owner_id: str) -> dict[str, Any]:
    """
    List completed payments on an owner's properties with totals.

    Returns:
        dict: payments, total_paid, total_owner_revenue, total_platform_fee
    """
    with engine.connect() as conn:
        rows = get_owner_payouts(conn, owner_id)

    return {
        "payments": rows,
        "total_paid": round_money(sum((to_decimal(r["amount"]) for r in rows), ZERO)),
        "total_owner_revenue": round_money(sum((to_decimal(r["owner_revenue"]) for r in rows), ZERO)),
        "total_platform_fee": round_money(sum((to_decimal(r["platform_fee"]) for r in rows), ZERO)),
    }
