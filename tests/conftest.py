"""
Shared fixtures: a temporary SQLite database built from the models, seeded
users and a property, an in-memory payment gateway, and an API client wired
to both through dependency overrides.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Generator, Optional
from unittest.mock import patch

# Configuration is read at import time
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALLOWED_ORIGINS", "*")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("EXTERNAL_API_KEY", "test-api-key")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import insert  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from booking_engine.db.engine import build_engine  # noqa: E402
from booking_engine.db.readers.payments import get_payment_attempt  # noqa: E402
from booking_engine.db.readers.properties import get_property  # noqa: E402
from booking_engine.db.readers.reservations import get_reservation  # noqa: E402
from booking_engine.db.writers.payments import insert_payment_attempt  # noqa: E402
from booking_engine.db.writers.reservations import insert_reservation  # noqa: E402
from booking_engine.dependencies import get_db_engine, get_payment_gateway  # noqa: E402
from booking_engine.errors import BookingError  # noqa: E402
from booking_engine.main import app  # noqa: E402
from booking_engine.models.base import Base, new_id  # noqa: E402
from booking_engine.models.enums import (  # noqa: E402
    AttemptStatus,
    BookingSource,
    PaymentStatus,
    ReservationStatus,
    UserRole,
)
from booking_engine.models.payments import PaymentAttempt  # noqa: E402, F401
from booking_engine.models.properties import Property  # noqa: E402
from booking_engine.models.reservations import Reservation  # noqa: E402, F401
from booking_engine.models.users import User  # noqa: E402
from booking_engine.models.webhook_events import WebhookEvent  # noqa: E402, F401
from booking_engine.network.gateway import (  # noqa: E402
    GatewayEvent,
    GatewayRefund,
    GatewaySession,
    StripeGateway,
)
from booking_engine.utils.datetime import utc_now  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
API_KEY = "test-api-key"


class FakeGateway:
    """
    In-memory ``PaymentGateway``.

    Records every call. Set ``checkout_error`` or ``refund_error`` to make the
    next calls raise. Webhook authentication is the real Stripe check.
    """

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        self.sessions: list[dict[str, Any]] = []
        self.refunds: list[dict[str, Any]] = []
        self.checkout_error: Optional[BookingError] = None
        self.refund_error: Optional[BookingError] = None
        self._verifier = StripeGateway(api_key="sk_test_dummy", webhook_secret=webhook_secret)

    def create_checkout_session(
        self,
        reservation_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        customer_email: Optional[str] = None,
    ) -> GatewaySession:
        if self.checkout_error is not None:
            raise self.checkout_error

        session_id = f"cs_test_{len(self.sessions) + 1}_{reservation_id[:8]}"
        self.sessions.append(
            {
                "session_id": session_id,
                "reservation_id": reservation_id,
                "amount": amount,
                "currency": currency,
                "description": description,
                "customer_email": customer_email,
            }
        )
        return GatewaySession(
            session_id=session_id, session_url=f"https://checkout.example.com/pay/{session_id}"
        )

    def create_refund(
        self,
        payment_intent_id: Optional[str],
        amount: Decimal,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        charge_id: Optional[str] = None,
    ) -> GatewayRefund:
        if self.refund_error is not None:
            raise self.refund_error

        refund_id = f"re_test_{len(self.refunds) + 1}"
        self.refunds.append(
            {
                "refund_id": refund_id,
                "payment_intent_id": payment_intent_id,
                "charge_id": charge_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        return GatewayRefund(refund_id=refund_id, amount=amount, status="succeeded")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        return self._verifier.construct_event(payload, signature)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs webhook bodies."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"), f"{ts}.{payload.decode('utf-8')}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={digest}"


def _insert_user(engine: Engine, email: str, role: UserRole, name: str) -> dict[str, Any]:
    row = {
        "id": new_id(),
        "email": email,
        "name": name,
        "phone": None,
        "role": role.value,
        "is_active": True,
        "created_at": utc_now(),
    }
    with engine.begin() as conn:
        conn.execute(insert(User).values(**row))
    return row


@pytest.fixture
def db_engine(tmp_path: Any) -> Generator[Engine, None, None]:
    """Fresh SQLite file database with every table created from the models."""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'booking_engine.db'}")
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def owner(db_engine: Engine) -> dict[str, Any]:
    return _insert_user(db_engine, "owner@example.com", UserRole.OWNER, "Olivia Owner")


@pytest.fixture
def admin(db_engine: Engine) -> dict[str, Any]:
    return _insert_user(db_engine, "admin@example.com", UserRole.ADMIN, "Ada Admin")


@pytest.fixture
def guest(db_engine: Engine) -> dict[str, Any]:
    return _insert_user(db_engine, "guest@example.com", UserRole.USER, "Gus Guest")


@pytest.fixture
def stranger(db_engine: Engine) -> dict[str, Any]:
    return _insert_user(db_engine, "stranger@example.com", UserRole.USER, "Sam Stranger")


@pytest.fixture
def make_property(db_engine: Engine, owner: dict[str, Any]) -> Callable[..., dict[str, Any]]:
    """
    Factory for properties owned by ``owner``.

    Defaults: 100/night, cleaning 50, service fee 10%, tax 24%, MODERATE policy.
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        now = utc_now()
        row = {
            "id": new_id(),
            "owner_id": owner["id"],
            "title": "Seaside Villa",
            "status": "ACTIVE",
            "base_price": Decimal("100.00"),
            "cleaning_fee": Decimal("50.00"),
            "service_fee_percentage": Decimal("10"),
            "tax_rate": Decimal("24"),
            "currency": "EUR",
            "cancellation_policy": "MODERATE",
            "max_guests": 4,
            "calendar_version": 0,
            "created_at": now,
            "updated_at": now,
            **overrides,
        }
        with db_engine.begin() as conn:
            conn.execute(insert(Property).values(**row))
            return get_property(conn, row["id"]) or row

    return _make


@pytest.fixture
def property_(make_property: Callable[..., dict[str, Any]]) -> dict[str, Any]:
    return make_property()


@pytest.fixture
def make_reservation(
    db_engine: Engine, property_: dict[str, Any], guest: dict[str, Any]
) -> Callable[..., dict[str, Any]]:
    """
    Factory inserting a reservation row directly, bypassing checkout.

    Defaults to a PENDING/PENDING direct stay of 3 nights priced 471.20.
    """

    def _make(
        check_in: date = date(2030, 6, 1),
        check_out: date = date(2030, 6, 4),
        status: ReservationStatus = ReservationStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        **overrides: Any,
    ) -> dict[str, Any]:
        values = {
            "property_id": property_["id"],
            "guest_id": guest["id"],
            "check_in": check_in,
            "check_out": check_out,
            "guest_count": 2,
            "guest_name": guest["name"],
            "guest_email": guest["email"],
            "status": status.value,
            "payment_status": payment_status.value,
            "base_price": Decimal("300.00"),
            "cleaning_fee": Decimal("50.00"),
            "service_fee": Decimal("30.00"),
            "taxes": Decimal("91.20"),
            "discount": Decimal("0.00"),
            "total_price": Decimal("471.20"),
            "currency": "EUR",
            "source": BookingSource.DIRECT.value,
            **overrides,
        }
        with db_engine.begin() as conn:
            reservation_id = insert_reservation(conn, values)
            return get_reservation(conn, reservation_id) or values

    return _make


@pytest.fixture
def make_attempt(db_engine: Engine) -> Callable[..., dict[str, Any]]:
    """Factory inserting a payment attempt for a reservation."""

    def _make(
        reservation: dict[str, Any],
        status: AttemptStatus = AttemptStatus.PENDING,
        **overrides: Any,
    ) -> dict[str, Any]:
        values = {
            "reservation_id": reservation["id"],
            "amount": reservation["total_price"],
            "currency": reservation["currency"],
            "status": status.value,
            "gateway_session_id": f"cs_test_{reservation['id'][:8]}",
            **overrides,
        }
        with db_engine.begin() as conn:
            attempt_id = insert_payment_attempt(conn, values)
            return get_payment_attempt(conn, attempt_id) or values

    return _make


@pytest.fixture
def make_event() -> Callable[..., GatewayEvent]:
    """Factory for authenticated gateway events with fresh ids."""
    counter = {"n": 0}

    def _make(event_type: str, obj: dict[str, Any], event_id: Optional[str] = None) -> GatewayEvent:
        counter["n"] += 1
        return GatewayEvent(id=event_id or f"evt_test_{counter['n']}", type=event_type, data=obj)

    return _make


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def signed_webhook() -> Callable[..., tuple[bytes, dict[str, str]]]:
    """Factory returning (body, headers) for a webhook POST signed with the test secret."""

    def _make(
        event_type: str, obj: dict[str, Any], event_id: str = "evt_test_webhook"
    ) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(
            {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
        ).encode("utf-8")
        return body, {"Stripe-Signature": sign_payload(body), "Content-Type": "application/json"}

    return _make


@pytest.fixture
def client(db_engine: Engine, fake_gateway: FakeGateway) -> Generator[TestClient, None, None]:
    """API client bound to the temporary database and the fake gateway."""
    app.dependency_overrides[get_db_engine] = lambda: db_engine
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def api_headers() -> Generator[dict[str, str], None, None]:
    """``X-API-Key`` headers for the machine-to-machine routes."""
    with patch("booking_engine.dependencies.EXTERNAL_API_KEY", API_KEY):
        yield {"X-API-Key": API_KEY}
