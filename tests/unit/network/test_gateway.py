"""
Unit tests for the Stripe gateway adapter. The Stripe SDK is patched; no
network calls are made.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import stripe

from booking_engine.errors import GatewayError, GatewayTimeoutError, SignatureInvalidError
from booking_engine.network.gateway import StripeGateway, from_minor_units, to_minor_units

SECRET = "whsec_unit_test"


def _signature(body: str, secret: str = SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.{body}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(
        api_key="sk_test_unit",
        webhook_secret=SECRET,
        success_url="https://example.com/ok",
        cancel_url="https://example.com/cancel",
    )


@pytest.mark.unit
def test_minor_unit_conversion() -> None:
    assert to_minor_units(Decimal("471.20")) == 47120
    assert to_minor_units(Decimal("0.01")) == 1
    assert from_minor_units(47120) == Decimal("471.20")
    assert from_minor_units(None) == Decimal("0.00")


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.checkout.Session.create")
def test_create_checkout_session_sends_metadata_and_idempotency_key(
    mock_create: Mock, gateway: StripeGateway
) -> None:
    """
    Test that the session carries the reservation id as metadata on the session
    and the payment intent, and as the idempotency key.

    Args:
        mock_create (Mock): Mocked stripe.checkout.Session.create call.
    """
    mock_create.return_value = SimpleNamespace(
        id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123", payment_intent=None
    )

    session = gateway.create_checkout_session(
        "res-1", Decimal("471.20"), "EUR", "Seaside Villa (3 nights)", customer_email="g@example.com"
    )

    assert session.session_id == "cs_test_123"
    assert session.session_url.endswith("cs_test_123")
    assert session.payment_intent_id is None

    kwargs = mock_create.call_args.kwargs
    assert kwargs["idempotency_key"] == "res-1"
    assert kwargs["metadata"] == {"reservation_id": "res-1"}
    assert kwargs["payment_intent_data"] == {"metadata": {"reservation_id": "res-1"}}
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 47120
    assert kwargs["line_items"][0]["price_data"]["currency"] == "eur"
    assert kwargs["customer_email"] == "g@example.com"
    assert kwargs["success_url"] == "https://example.com/ok"


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.checkout.Session.create")
def test_create_checkout_session_connection_error_is_timeout(
    mock_create: Mock, gateway: StripeGateway
) -> None:
    mock_create.side_effect = stripe.APIConnectionError("connection reset")

    with pytest.raises(GatewayTimeoutError) as exc_info:
        gateway.create_checkout_session("res-1", Decimal("10.00"), "EUR", "Stay")

    assert exc_info.value.retryable is True


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.checkout.Session.create")
def test_create_checkout_session_provider_error(mock_create: Mock, gateway: StripeGateway) -> None:
    mock_create.side_effect = stripe.InvalidRequestError("bad currency", param="currency")

    with pytest.raises(GatewayError) as exc_info:
        gateway.create_checkout_session("res-1", Decimal("10.00"), "XXX", "Stay")

    assert not isinstance(exc_info.value, GatewayTimeoutError)
    assert exc_info.value.retryable is False


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.checkout.Session.create")
def test_create_checkout_session_incomplete_response(mock_create: Mock, gateway: StripeGateway) -> None:
    mock_create.return_value = SimpleNamespace(id="cs_test_123", url=None)

    with pytest.raises(GatewayError):
        gateway.create_checkout_session("res-1", Decimal("10.00"), "EUR", "Stay")


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.Refund.create")
def test_create_refund_by_payment_intent(mock_create: Mock, gateway: StripeGateway) -> None:
    mock_create.return_value = SimpleNamespace(id="re_123", amount=23560, status="succeeded")

    refund = gateway.create_refund(
        "pi_123", Decimal("235.60"), reason="guest cancelled", idempotency_key="refund-a-235.60"
    )

    assert refund.refund_id == "re_123"
    assert refund.amount == Decimal("235.60")
    assert refund.status == "succeeded"
    kwargs = mock_create.call_args.kwargs
    assert kwargs["payment_intent"] == "pi_123"
    assert kwargs["amount"] == 23560
    assert kwargs["idempotency_key"] == "refund-a-235.60"
    assert "charge" not in kwargs


@pytest.mark.unit
@patch("booking_engine.network.gateway.stripe.Refund.create")
def test_create_refund_falls_back_to_charge(mock_create: Mock, gateway: StripeGateway) -> None:
    mock_create.return_value = SimpleNamespace(id="re_456", amount=1000, status="pending")

    gateway.create_refund(None, Decimal("10.00"), charge_id="ch_123")

    kwargs = mock_create.call_args.kwargs
    assert kwargs["charge"] == "ch_123"
    assert "payment_intent" not in kwargs
    assert "idempotency_key" not in kwargs


@pytest.mark.unit
def test_construct_event_accepts_valid_signature(gateway: StripeGateway) -> None:
    body = json.dumps(
        {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "metadata": {"reservation_id": "res-9"}}},
        }
    )

    event = gateway.construct_event(body.encode(), _signature(body))

    assert event.id == "evt_1"
    assert event.type == "checkout.session.completed"
    assert event.reservation_id == "res-9"


@pytest.mark.unit
def test_construct_event_rejects_wrong_secret(gateway: StripeGateway) -> None:
    body = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(body.encode(), _signature(body, secret="whsec_other"))


@pytest.mark.unit
def test_construct_event_rejects_tampered_body(gateway: StripeGateway) -> None:
    body = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": {"object": {"amount": 100}}})
    signature = _signature(body)
    tampered = body.replace("100", "1")

    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(tampered.encode(), signature)


@pytest.mark.unit
def test_construct_event_rejects_stale_timestamp(gateway: StripeGateway) -> None:
    body = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(body.encode(), _signature(body, timestamp=int(time.time()) - 3600))


@pytest.mark.unit
def test_construct_event_rejects_missing_signature(gateway: StripeGateway) -> None:
    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(b"{}", None)


@pytest.mark.unit
def test_construct_event_rejects_signed_non_event(gateway: StripeGateway) -> None:
    body = json.dumps({"hello": "world"})

    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(body.encode(), _signature(body))


@pytest.mark.unit
def test_construct_event_rejects_body_that_is_not_utf8(gateway: StripeGateway) -> None:
    with pytest.raises(SignatureInvalidError):
        gateway.construct_event(b"\xff\xfe{not utf8", "t=1,v1=abc")
