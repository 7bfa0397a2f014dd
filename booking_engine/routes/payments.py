"""Checkout, payment gateway webhook, refund and payout routes."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_current_user, get_db_engine, get_payment_gateway
from booking_engine.errors import BookingError, ForbiddenError, SignatureInvalidError
from booking_engine.metrics import webhook_events
from booking_engine.network.gateway import PaymentGateway
from booking_engine.schemas.checkout import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    CheckoutStatusResponse,
)
from booking_engine.schemas.payments import OwnerPayoutsResponse, PaymentResponse, RefundRequest
from booking_engine.services.access import is_admin
from booking_engine.services.checkout import create_checkout_session, get_checkout_status
from booking_engine.services.reconciler import reconcile_event
from booking_engine.services.refunds import get_payment, owner_payouts, refund_payment

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/checkout-session",
    status_code=status.HTTP_201_CREATED,
    response_model=CheckoutSessionResponse,
)
def start_checkout(
    payload: CheckoutSessionRequest,
    db: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutSessionResponse:
    """
    Reserve the dates and open a hosted checkout session.

    Returns:
        201 with session_url, session_id and reservation_id.
        409 if the dates are taken, 502/504 if the payment provider failed.
    """
    try:
        session = create_checkout_session(db, gateway, payload)
        return CheckoutSessionResponse(
            session_url=session.session_url,
            session_id=session.session_id,
            reservation_id=session.reservation_id,
        )
    except BookingError:
        raise
    except Exception as e:
        logger.exception("checkout_failed", property_id=payload.property_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/checkout-session/{session_id}", response_model=CheckoutStatusResponse)
def checkout_status(session_id: str, db: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    """Status poll for the checkout success page. Never changes state."""
    return get_checkout_status(db, session_id)


@router.post("/webhook")
async def receive_payment_webhook(
    request: Request,
    db: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> JSONResponse:
    """
    Receive signed payment gateway events.

    Returns:
        200 {"status": "accepted", "outcome": ...} once the event is applied,
            recognised as a duplicate, ignored or rejected.
        400 on a bad signature (the gateway should not retry).
        500 on any other failure so the gateway redelivers.
    """
    payload = await request.body()
    try:
        event = gateway.construct_event(payload, request.headers.get("Stripe-Signature"))
    except SignatureInvalidError as e:
        webhook_events.labels(event_type="unknown", outcome="signature_invalid").inc()
        logger.warning("webhook_signature_rejected", reason=e.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=e.to_dict())

    logger.info("webhook_received", event_id=event.id, event_type=event.type)

    try:
        outcome = await run_in_threadpool(reconcile_event, db, event)
    except Exception as e:
        webhook_events.labels(event_type=event.type, outcome="error").inc()
        logger.exception(
            "webhook_processing_failed", event_id=event.id, event_type=event.type, error=str(e)
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    return JSONResponse(content={"status": "accepted", "outcome": outcome.value})


@router.get("/owner/payouts", response_model=OwnerPayoutsResponse)
def list_owner_payouts(
    owner_id: Optional[str] = Query(None, description="Owner to report on (admins only)"),
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Completed payments on the caller's properties, with owner revenue totals."""
    target = owner_id or actor["id"]
    if target != actor["id"] and not is_admin(actor):
        raise ForbiddenError("Only admins can read another owner's payouts", owner_id=target)
    return owner_payouts(db, target)


@router.get("/{payment_id}", response_model=PaymentResponse)
def read_payment(
    payment_id: str,
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return get_payment(db, actor, payment_id)


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
def refund(
    payment_id: str,
    payload: RefundRequest,
    actor: dict[str, Any] = Depends(get_current_user),
    db: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, Any]:
    """
    Refund a completed payment in full (no amount) or in part.

    Only the property owner or an admin may refund.
    """
    try:
        return refund_payment(db, gateway, actor, payment_id, payload.amount, payload.reason)
    except BookingError:
        raise
    except Exception as e:
        logger.exception("refund_failed", payment_id=payment_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
