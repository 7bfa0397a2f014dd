"""
Payment gateway adapter.

The core talks to the payment provider through the ``PaymentGateway``
protocol: create a hosted checkout session, refund a captured payment, and
authenticate an incoming webhook. ``StripeGateway`` implements it on the
Stripe SDK; tests substitute an in-memory fake.

Provider failures are translated here into the booking engine's error kinds:
connection problems and timeouts become ``GatewayTimeoutError`` (retryable),
every other provider error ``GatewayError``, and a bad webhook signature
``SignatureInvalidError``.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol

import stripe
import structlog

from booking_engine.config import (
    CHECKOUT_CANCEL_URL,
    CHECKOUT_SUCCESS_URL,
    GATEWAY_MAX_RETRIES,
    GATEWAY_TIMEOUT_SECONDS,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE,
)
from booking_engine.errors import GatewayError, GatewayTimeoutError, SignatureInvalidError
from booking_engine.metrics import gateway_latency, gateway_requests
from booking_engine.services.pricing import CENT, HUNDRED

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GatewaySession:
    session_id: str
    session_url: str
    payment_intent_id: Optional[str] = None


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    amount: Decimal
    status: str


@dataclass(frozen=True)
class GatewayEvent:
    """An authenticated webhook event, reduced to what reconciliation needs."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.data.get("metadata") or {}

    @property
    def reservation_id(self) -> Optional[str]:
        return self.metadata.get("reservation_id")


class PaymentGateway(Protocol):
    def create_checkout_session(
        self,
        reservation_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        customer_email: Optional[str] = None,
    ) -> GatewaySession: ...

    def create_refund(
        self,
        payment_intent_id: Optional[str],
        amount: Decimal,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        charge_id: Optional[str] = None,
    ) -> GatewayRefund: ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent: ...


def to_minor_units(amount: Decimal) -> int:
    """Convert a cent-rounded amount to the provider's integer minor units."""
    return int((amount.quantize(CENT) * HUNDRED).to_integral_value())


def from_minor_units(amount: Optional[int]) -> Decimal:
    return (Decimal(amount or 0) / HUNDRED).quantize(CENT)


def _translate_error(operation: str, err: stripe.StripeError) -> GatewayError:
    """
    Map a Stripe SDK error to a booking engine gateway error.

    Args:
        operation (str): Gateway operation name (for logs and metrics).
        err (stripe.StripeError): Error raised by the SDK.

    Returns:
        GatewayError: GatewayTimeoutError for network failures, GatewayError otherwise.
    """
    if isinstance(err, stripe.APIConnectionError):
        gateway_requests.labels(operation=operation, status="timeout").inc()
        logger.warning("gateway_unreachable", operation=operation, error=str(err))
        return GatewayTimeoutError(
            "Payment provider did not respond in time", operation=operation
        )

    gateway_requests.labels(operation=operation, status="error").inc()
    logger.error(
        "gateway_request_failed",
        operation=operation,
        error=str(err),
        http_status=getattr(err, "http_status", None),
        code=getattr(err, "code", None),
    )
    return GatewayError(
        "Payment provider rejected the request",
        operation=operation,
        provider_code=getattr(err, "code", None),
    )


class StripeGateway:
    """
    ``PaymentGateway`` backed by Stripe Checkout.

    Network calls are bounded by ``GATEWAY_TIMEOUT_SECONDS`` and retried by the
    SDK up to ``GATEWAY_MAX_RETRIES`` times; every mutating call carries an
    idempotency key so that retries never create a second session or refund.
    """

    def __init__(
        self,
        api_key: str = STRIPE_SECRET_KEY,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        max_retries: int = GATEWAY_MAX_RETRIES,
        tolerance: int = STRIPE_WEBHOOK_TOLERANCE,
        success_url: str = CHECKOUT_SUCCESS_URL,
        cancel_url: str = CHECKOUT_CANCEL_URL,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.success_url = success_url
        self.cancel_url = cancel_url

        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = max_retries

    def create_checkout_session(
        self,
        reservation_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        customer_email: Optional[str] = None,
    ) -> GatewaySession:
        """
        Create a hosted checkout session for a reservation total.

        The reservation id is attached as metadata to both the session and its
        payment intent, so every later event can be traced back to it, and is
        used as the idempotency key.

        Args:
            reservation_id (str): PENDING reservation being paid.
            amount (Decimal): Total to charge.
            currency (str): ISO currency code.
            description (str): Line item name shown to the guest.
            customer_email (Optional[str]): Prefills the checkout form.

        Returns:
            GatewaySession: Session id, hosted URL and payment intent id if known.

        Raises:
            GatewayTimeoutError: If the provider could not be reached in time.
            GatewayError: If the provider rejected the request.
        """
        operation = "create_checkout_session"
        metadata = {"reservation_id": reservation_id}
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": description},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "client_reference_id": reservation_id,
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email

        start_time = time.time()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=reservation_id,
                **params,
            )
        except stripe.StripeError as err:
            raise _translate_error(operation, err) from err
        finally:
            gateway_latency.labels(operation=operation).observe(time.time() - start_time)

        gateway_requests.labels(operation=operation, status="success").inc()
        if not getattr(session, "id", None) or not getattr(session, "url", None):
            raise GatewayError("Payment provider returned an incomplete session", operation=operation)

        logger.info(
            "checkout_session_created", reservation_id=reservation_id, session_id=session.id
        )
        return GatewaySession(
            session_id=session.id,
            session_url=session.url,
            payment_intent_id=getattr(session, "payment_intent", None),
        )

    def create_refund(
        self,
        payment_intent_id: Optional[str],
        amount: Decimal,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        charge_id: Optional[str] = None,
    ) -> GatewayRefund:
        """
        Refund all or part of a captured payment.

        Args:
            payment_intent_id (Optional[str]): Payment intent that was captured.
            amount (Decimal): Amount to refund.
            reason (Optional[str]): Free-text reason stored as metadata.
            idempotency_key (Optional[str]): Key that makes retries safe.
            charge_id (Optional[str]): Charge to refund when no payment intent is known.

        Returns:
            GatewayRefund: Refund id, refunded amount and provider status.

        Raises:
            GatewayTimeoutError: If the provider could not be reached in time.
            GatewayError: If the provider rejected the refund.
        """
        operation = "create_refund"
        params: dict[str, Any] = {
            "amount": to_minor_units(amount),
            "reason": "requested_by_customer",
            "metadata": {"reason": reason or ""},
        }
        if payment_intent_id:
            params["payment_intent"] = payment_intent_id
        else:
            params["charge"] = charge_id
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        start_time = time.time()
        try:
            refund = stripe.Refund.create(api_key=self.api_key, **params)
        except stripe.StripeError as err:
            raise _translate_error(operation, err) from err
        finally:
            gateway_latency.labels(operation=operation).observe(time.time() - start_time)

        gateway_requests.labels(operation=operation, status="success").inc()
        logger.info(
            "refund_created",
            payment_intent_id=payment_intent_id,
            charge_id=charge_id,
            refund_id=refund.id,
        )
        return GatewayRefund(
            refund_id=refund.id,
            amount=from_minor_units(getattr(refund, "amount", None)),
            status=getattr(refund, "status", None) or "pending",
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """
        Authenticate a webhook body against its ``Stripe-Signature`` header.

        Args:
            payload (bytes): Raw request body, exactly as received.
            signature (Optional[str]): ``Stripe-Signature`` header value.

        Returns:
            GatewayEvent: The verified event.

        Raises:
            SignatureInvalidError: On a missing, stale or forged signature, or
                a body that is not a gateway event.
        """
        if not signature or not self.webhook_secret:
            raise SignatureInvalidError("Missing webhook signature")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as err:
            logger.warning("webhook_body_not_utf8")
            raise SignatureInvalidError("Webhook body is not valid UTF-8") from err

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as err:
            logger.warning("webhook_signature_invalid", error=str(err))
            raise SignatureInvalidError("Invalid webhook signature") from err

        try:
            raw = json.loads(body)
            event = GatewayEvent(
                id=raw["id"],
                type=raw["type"],
                data=raw.get("data", {}).get("object") or {},
            )
        except (ValueError, KeyError, AttributeError) as err:
            raise SignatureInvalidError("Webhook body is not a valid event") from err

        return event
