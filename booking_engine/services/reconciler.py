"""
Webhook reconciliation: apply authenticated payment gateway events to
reservations and payment attempts exactly once.

The gateway delivers at least once, in any order, and possibly concurrently.
Each event is applied in a single transaction that:

1. resolves the payment attempt (by session id, payment intent id, or the
   ``reservation_id`` metadata, creating a placeholder attempt if the checkout
   flow has not recorded one yet),
2. locks the property calendar and re-reads the reservation,
3. applies the state machine transition, and
4. writes the event id to the webhook ledger.

A second delivery of the same event id is a DUPLICATE without side effects,
either because the ledger already has it or because the ledger insert loses
the primary-key race. Events that would need an edge outside the state graph
are REJECTED: acknowledged and logged, because redelivery cannot make them
valid. Anything else that fails propagates so the gateway retries.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from booking_engine.db.readers.payments import (
    find_payment_attempt,
    get_payment_attempt,
    list_attempts_for_reservation,
)
from booking_engine.db.readers.properties import get_property
from booking_engine.db.readers.reservations import get_reservation
from booking_engine.db.readers.webhook_events import webhook_event_exists
from booking_engine.db.writers.payments import insert_payment_attempt, update_payment_attempt
from booking_engine.db.writers.properties import lock_property_calendar
from booking_engine.db.writers.webhook_events import record_webhook_event
from booking_engine.metrics import webhook_events
from booking_engine.models.enums import AttemptStatus, PaymentStatus, ReservationStatus
from booking_engine.network.gateway import GatewayEvent, from_minor_units
from booking_engine.services import state_machine
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"

HANDLED_EVENTS = frozenset(
    {CHECKOUT_COMPLETED, CHECKOUT_EXPIRED, PAYMENT_SUCCEEDED, PAYMENT_FAILED, CHARGE_REFUNDED}
)

EXPIRED_REASON = "checkout_expired"


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REJECTED = "rejected"


def _gateway_ids(event: GatewayEvent) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Extract (session id, payment intent id, charge id) from an event object."""
    obj = event.data
    if event.type.startswith("checkout.session."):
        return obj.get("id"), obj.get("payment_intent"), None
    if event.type.startswith("payment_intent."):
        return None, obj.get("id"), obj.get("latest_charge")
    if event.type.startswith("charge."):
        return None, obj.get("payment_intent"), obj.get("id")
    return None, None, None


def _resolve_attempt(conn: Connection, event: GatewayEvent) -> Optional[dict[str, Any]]:
    """
    Find the payment attempt an event belongs to, creating one if needed.

    Returns:
        Optional[dict[str, Any]]: The attempt, or None if the event cannot be
            traced to any reservation.
    """
    session_id, payment_intent_id, _ = _gateway_ids(event)
    attempt = find_payment_attempt(conn, session_id=session_id, payment_intent_id=payment_intent_id)
    if attempt is not None:
        return attempt

    reservation_id = event.reservation_id
    if not reservation_id:
        return None
    reservation = get_reservation(conn, reservation_id)
    if reservation is None:
        return None

    # Session created before its payment intent existed: attach the intent id
    if session_id is None and payment_intent_id:
        for candidate in reversed(list_attempts_for_reservation(conn, reservation_id)):
            if candidate["gateway_payment_intent_id"] is None:
                update_payment_attempt(
                    conn, candidate["id"], {"gateway_payment_intent_id": payment_intent_id}
                )
                return {**candidate, "gateway_payment_intent_id": payment_intent_id}

    attempt_id = insert_payment_attempt(
        conn,
        {
            "reservation_id": reservation_id,
            "amount": reservation["total_price"],
            "currency": reservation["currency"],
            "status": AttemptStatus.PENDING.value,
            "gateway_session_id": session_id,
            "gateway_payment_intent_id": payment_intent_id,
        },
    )
    logger.info(
        "payment_attempt_placeholder_created",
        reservation_id=reservation_id,
        attempt_id=attempt_id,
        event_type=event.type,
    )
    return get_payment_attempt(conn, attempt_id)


def _mark_attempt_paid(conn: Connection, event: GatewayEvent, attempt: dict[str, Any]) -> None:
    _, payment_intent_id, charge_id = _gateway_ids(event)
    update_payment_attempt(
        conn,
        attempt["id"],
        {
            "status": AttemptStatus.COMPLETED.value,
            "processed_at": utc_now(),
            "gateway_payment_intent_id": attempt["gateway_payment_intent_id"] or payment_intent_id,
            "gateway_charge_id": attempt["gateway_charge_id"] or charge_id,
        },
    )


def _apply_success(
    conn: Connection, event: GatewayEvent, reservation: dict[str, Any], attempt: dict[str, Any]
) -> WebhookOutcome:
    if event.type == CHECKOUT_COMPLETED and event.data.get("payment_status") not in (None, "paid"):
        # Delayed payment methods: wait for payment_intent.succeeded
        return WebhookOutcome.IGNORED

    payment_status = reservation["payment_status"]
    if payment_status in (
        PaymentStatus.COMPLETED.value,
        PaymentStatus.REFUNDED.value,
        PaymentStatus.PARTIALLY_REFUNDED.value,
    ):
        return WebhookOutcome.DUPLICATE
    if payment_status == PaymentStatus.FAILED.value:
        if attempt["status"] == AttemptStatus.COMPLETED.value:
            return WebhookOutcome.DUPLICATE
        # Declined card retried inside the same checkout: FAILED -> COMPLETED is
        # not a payment edge, so only the attempt records the captured money.
        _mark_attempt_paid(conn, event, attempt)
        logger.warning(
            "payment_captured_after_failure",
            reservation_id=reservation["id"],
            attempt_id=attempt["id"],
            status=reservation["status"],
        )
        return WebhookOutcome.APPLIED
    if payment_status != PaymentStatus.PENDING.value:
        return WebhookOutcome.REJECTED

    if reservation["status"] == ReservationStatus.PENDING.value:
        property_ = get_property(conn, reservation["property_id"]) or {}
        state_machine.confirm_payment(conn, reservation, property_)
    else:
        state_machine.record_late_payment(conn, reservation)
        logger.warning(
            "payment_received_for_inactive_reservation",
            reservation_id=reservation["id"],
            status=reservation["status"],
        )

    _mark_attempt_paid(conn, event, attempt)
    return WebhookOutcome.APPLIED


def _apply_failure(
    conn: Connection, reservation: dict[str, Any], attempt: dict[str, Any]
) -> WebhookOutcome:
    payment_status = reservation["payment_status"]
    if payment_status == PaymentStatus.FAILED.value:
        return WebhookOutcome.DUPLICATE
    if payment_status != PaymentStatus.PENDING.value:
        return WebhookOutcome.REJECTED

    state_machine.fail_payment(conn, reservation)
    update_payment_attempt(
        conn, attempt["id"], {"status": AttemptStatus.FAILED.value, "processed_at": utc_now()}
    )
    return WebhookOutcome.APPLIED


def _apply_refund(
    conn: Connection, event: GatewayEvent, reservation: dict[str, Any], attempt: dict[str, Any]
) -> WebhookOutcome:
    charged = event.data.get("amount") or 0
    refunded = event.data.get("amount_refunded") or 0
    full = refunded >= charged
    payment_status = reservation["payment_status"]

    if payment_status == PaymentStatus.REFUNDED.value:
        return WebhookOutcome.DUPLICATE
    if payment_status == PaymentStatus.PARTIALLY_REFUNDED.value:
        return WebhookOutcome.REJECTED if full else WebhookOutcome.DUPLICATE
    if payment_status != PaymentStatus.COMPLETED.value:
        return WebhookOutcome.REJECTED

    state_machine.record_refund(conn, reservation, full=full, reason="refunded_by_gateway")
    _, _, charge_id = _gateway_ids(event)
    update_payment_attempt(
        conn,
        attempt["id"],
        {
            "status": (
                AttemptStatus.REFUNDED.value if full else AttemptStatus.PARTIALLY_REFUNDED.value
            ),
            "refund_amount": from_minor_units(refunded),
            "refunded_at": utc_now(),
            "gateway_charge_id": attempt["gateway_charge_id"] or charge_id,
        },
    )
    return WebhookOutcome.APPLIED


def _apply_expiry(
    conn: Connection, reservation: dict[str, Any], attempt: dict[str, Any]
) -> WebhookOutcome:
    if attempt["status"] == AttemptStatus.PENDING.value:
        update_payment_attempt(conn, attempt["id"], {"status": AttemptStatus.EXPIRED.value})

    if (
        reservation["status"] == ReservationStatus.PENDING.value
        and reservation["payment_status"] == PaymentStatus.PENDING.value
    ):
        state_machine.cancel(conn, reservation, EXPIRED_REASON)
        return WebhookOutcome.APPLIED
    if reservation["status"] == ReservationStatus.CANCELLED.value:
        return WebhookOutcome.DUPLICATE
    # Paid through another attempt; nothing to undo
    return WebhookOutcome.IGNORED


def _apply_event(conn: Connection, event: GatewayEvent) -> tuple[WebhookOutcome, Optional[str]]:
    attempt = _resolve_attempt(conn, event)
    if attempt is None:
        logger.warning("webhook_unmatched", event_id=event.id, event_type=event.type)
        return WebhookOutcome.IGNORED, None

    reservation = get_reservation(conn, attempt["reservation_id"])
    if reservation is None:
        return WebhookOutcome.IGNORED, None

    lock_property_calendar(conn, reservation["property_id"])
    reservation = get_reservation(conn, reservation["id"])
    if reservation is None:
        return WebhookOutcome.IGNORED, None

    if event.type in (CHECKOUT_COMPLETED, PAYMENT_SUCCEEDED):
        outcome = _apply_success(conn, event, reservation, attempt)
    elif event.type == PAYMENT_FAILED:
        outcome = _apply_failure(conn, reservation, attempt)
    elif event.type == CHARGE_REFUNDED:
        outcome = _apply_refund(conn, event, reservation, attempt)
    else:
        outcome = _apply_expiry(conn, reservation, attempt)
    return outcome, reservation["id"]


def _log_outcome(event: GatewayEvent, outcome: WebhookOutcome, reservation_id: Optional[str]) -> None:
    webhook_events.labels(event_type=event.type, outcome=outcome.value).inc()
    context = {"event_id": event.id, "event_type": event.type, "reservation_id": reservation_id}
    if outcome == WebhookOutcome.REJECTED:
        logger.error("webhook_rejected", **context)
    elif outcome == WebhookOutcome.APPLIED:
        logger.info("webhook_applied", **context)
    else:
        logger.info("webhook_not_applied", outcome=outcome.value, **context)


def reconcile_event(engine: Engine, event: GatewayEvent) -> WebhookOutcome:
    """
    Apply one authenticated gateway event.

    Args:
        engine: SQLAlchemy engine
        event: Event returned by ``PaymentGateway.construct_event``

    Returns:
        WebhookOutcome: APPLIED, DUPLICATE, IGNORED or REJECTED

    Raises:
        Exception: Any datastore failure, so the gateway redelivers the event
    """
    if event.type not in HANDLED_EVENTS:
        _log_outcome(event, WebhookOutcome.IGNORED, None)
        return WebhookOutcome.IGNORED

    with engine.connect() as conn:
        if webhook_event_exists(conn, event.id):
            _log_outcome(event, WebhookOutcome.DUPLICATE, None)
            return WebhookOutcome.DUPLICATE

    try:
        with engine.begin() as conn:
            outcome, reservation_id = _apply_event(conn, event)
            if reservation_id is not None:
                record_webhook_event(conn, event.id, event.type, outcome.value, reservation_id)
    except IntegrityError:
        with engine.connect() as conn:
            if not webhook_event_exists(conn, event.id):
                raise
        outcome, reservation_id = WebhookOutcome.DUPLICATE, None

    _log_outcome(event, outcome, reservation_id)
    return outcome
