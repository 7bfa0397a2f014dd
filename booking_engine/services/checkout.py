"""
Direct booking checkout: reserve dates as PENDING, then hand the guest to
the payment provider's hosted checkout.

The flow spans two short transactions around one gateway call; no datastore
transaction is held while waiting on the provider. If the gateway call or the
attempt bookkeeping fails, the PENDING reservation is deleted again so nothing
lingers from a checkout the guest never saw.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from booking_engine.db.readers.payments import find_payment_attempt
from booking_engine.db.readers.properties import get_property
from booking_engine.db.readers.reservations import get_reservation
from booking_engine.db.writers.payments import insert_payment_attempt, update_payment_attempt
from booking_engine.db.writers.reservations import delete_pending_reservation, insert_reservation
from booking_engine.db.writers.users import resolve_guest
from booking_engine.errors import (
    BadRequestError,
    BookingError,
    ConflictError,
    GatewayError,
    GatewayTimeoutError,
    NotFoundError,
    ValidationError,
)
from booking_engine.metrics import checkout_failures, reservations_created
from booking_engine.models.enums import (
    AttemptStatus,
    BookingSource,
    PaymentStatus,
    PropertyStatus,
    ReservationStatus,
)
from booking_engine.network.gateway import GatewaySession, PaymentGateway
from booking_engine.schemas.checkout import CheckoutSessionRequest
from booking_engine.services.availability import assert_available, validate_stay_dates
from booking_engine.services.pricing import calculate_price
from booking_engine.utils.datetime import nights_between

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_url: str
    session_id: str
    reservation_id: str


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, GatewayTimeoutError):
        return "gateway_timeout"
    if isinstance(exc, GatewayError):
        return "gateway_error"
    if isinstance(exc, ConflictError):
        return "dates_unavailable"
    if isinstance(exc, BookingError):
        return exc.kind.value
    return "internal_error"


def _reserve_pending(engine: Engine, request: CheckoutSessionRequest, guest: dict[str, Any]) -> dict[str, Any]:
    """
    Insert the PENDING reservation under the property calendar lock.

    Returns:
        dict[str, Any]: reservation_id, total_price, currency, property title and nights
    """
    with engine.begin() as conn:
        property_ = get_property(conn, request.property_id)
        if property_ is None:
            raise NotFoundError("Property not found", property_id=request.property_id)
        if property_["status"] != PropertyStatus.ACTIVE.value:
            raise BadRequestError(
                "Property is not available for booking", property_id=request.property_id
            )
        max_guests = property_.get("max_guests")
        if max_guests is not None and request.guest_count > max_guests:
            raise ValidationError(
                f"Property accepts at most {max_guests} guests",
                guest_count=request.guest_count,
                max_guests=max_guests,
            )

        assert_available(conn, request.property_id, request.check_in, request.check_out)

        nights = nights_between(request.check_in, request.check_out)
        price = calculate_price(
            property_["base_price"],
            nights,
            cleaning_fee=property_["cleaning_fee"],
            service_fee_percentage=property_["service_fee_percentage"],
            tax_rate_percentage=property_["tax_rate"],
            currency=property_["currency"],
        )

        reservation_id = insert_reservation(
            conn,
            {
                "property_id": request.property_id,
                "guest_id": guest["id"],
                "check_in": request.check_in,
                "check_out": request.check_out,
                "guest_count": request.guest_count,
                "guest_name": request.guest_name or guest.get("name"),
                "guest_email": guest["email"],
                "guest_phone": request.guest_phone or guest.get("phone"),
                "special_requests": request.special_requests,
                "status": ReservationStatus.PENDING.value,
                "payment_status": PaymentStatus.PENDING.value,
                "base_price": price.subtotal,
                "cleaning_fee": price.cleaning_fee,
                "service_fee": price.service_fee,
                "taxes": price.taxes,
                "discount": price.discount,
                "total_price": price.total_price,
                "currency": price.currency,
                "source": BookingSource.DIRECT.value,
            },
        )

    return {
        "reservation_id": reservation_id,
        "total_price": price.total_price,
        "currency": price.currency,
        "title": property_["title"],
        "nights": nights,
    }


def _record_attempt(
    engine: Engine, reservation_id: str, session: GatewaySession, pending: dict[str, Any]
) -> str:
    """
    Record the payment attempt for a new gateway session.

    A webhook for the session can arrive before this runs and create a
    placeholder attempt; that row is adopted instead of inserting a second one.

    Returns:
        str: The attempt id.
    """
    values = {
        "reservation_id": reservation_id,
        "amount": pending["total_price"],
        "currency": pending["currency"],
        "status": AttemptStatus.PENDING.value,
        "gateway_session_id": session.session_id,
        "gateway_payment_intent_id": session.payment_intent_id,
    }
    try:
        with engine.begin() as conn:
            return insert_payment_attempt(conn, values)
    except IntegrityError as exc:
        with engine.begin() as conn:
            existing = find_payment_attempt(
                conn, session_id=session.session_id, payment_intent_id=session.payment_intent_id
            )
            if existing is None:
                raise exc
            update_payment_attempt(
                conn,
                existing["id"],
                {
                    "gateway_session_id": existing["gateway_session_id"] or session.session_id,
                    "gateway_payment_intent_id": existing["gateway_payment_intent_id"]
                    or session.payment_intent_id,
                },
            )
        logger.info(
            "payment_attempt_adopted", reservation_id=reservation_id, attempt_id=existing["id"]
        )
        return str(existing["id"])


def create_checkout_session(
    engine: Engine, gateway: PaymentGateway, request: CheckoutSessionRequest
) -> CheckoutSession:
    """
    Reserve the dates as PENDING and open a hosted checkout session.

    Args:
        engine: SQLAlchemy engine
        gateway: Payment gateway adapter
        request: Validated checkout request

    Returns:
        CheckoutSession: Hosted checkout URL, gateway session id and reservation id

    Raises:
        ValidationError: Bad dates or too many guests
        NotFoundError: Unknown property
        BadRequestError: Property is not bookable
        ConflictError: Dates are taken (details carry the clashing reservation ids)
        GatewayTimeoutError: Provider timed out (retryable; nothing was kept)
        GatewayError: Provider failed (nothing was kept)
    """
    try:
        validate_stay_dates(request.check_in, request.check_out)
        guest = resolve_guest(engine, request.guest_email, request.guest_name, request.guest_phone)
        pending = _reserve_pending(engine, request, guest)
    except BookingError as exc:
        checkout_failures.labels(reason=_failure_reason(exc)).inc()
        raise

    reservation_id = pending["reservation_id"]
    reservations_created.labels(
        source=BookingSource.DIRECT.value, status=ReservationStatus.PENDING.value
    ).inc()

    try:
        session = gateway.create_checkout_session(
            reservation_id,
            pending["total_price"],
            pending["currency"],
            description=f"{pending['title']} ({pending['nights']} nights)",
            customer_email=guest["email"],
        )
        _record_attempt(engine, reservation_id, session, pending)
    except Exception as exc:
        checkout_failures.labels(reason=_failure_reason(exc)).inc()
        with engine.begin() as conn:
            removed = delete_pending_reservation(conn, reservation_id)
        logger.warning(
            "checkout_compensated",
            reservation_id=reservation_id,
            reservation_removed=removed,
            error=str(exc),
        )
        raise

    logger.info(
        "checkout_session_started",
        reservation_id=reservation_id,
        property_id=request.property_id,
        session_id=session.session_id,
        total_price=str(pending["total_price"]),
    )
    return CheckoutSession(
        session_url=session.session_url,
        session_id=session.session_id,
        reservation_id=reservation_id,
    )


def get_checkout_status(engine: Engine, session_id: str) -> dict[str, Any]:
    """
    Read where a checkout session stands, without changing anything.

    Args:
        engine: SQLAlchemy engine
        session_id: Gateway checkout session id

    Returns:
        dict: session_id, reservation_id, status, payment_status, attempt_status

    Raises:
        NotFoundError: If no attempt or reservation matches the session
    """
    with engine.connect() as conn:
        attempt = find_payment_attempt(conn, session_id=session_id)
        if attempt is None:
            raise NotFoundError("Checkout session not found", session_id=session_id)
        reservation = get_reservation(conn, attempt["reservation_id"])
    if reservation is None:
        raise NotFoundError("Reservation not found", reservation_id=attempt["reservation_id"])

    return {
        "session_id": session_id,
        "reservation_id": reservation["id"],
        "status": reservation["status"],
        "payment_status": reservation["payment_status"],
        "attempt_status": attempt["status"],
    }
