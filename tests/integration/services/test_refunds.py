"""
Integration tests for refunds, cancellations, payment reads and owner payouts.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable

import pytest
from sqlalchemy.engine import Engine

from booking_engine.db.readers.reservations import get_reservation
from booking_engine.errors import (
    BadRequestError,
    ForbiddenError,
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from booking_engine.models.enums import AttemptStatus, PaymentStatus, ReservationStatus
from booking_engine.services import state_machine
from booking_engine.services.refunds import (
    cancel_reservation,
    get_payment,
    owner_payouts,
    refund_payment,
)
from booking_engine.services.stays import advance_stay
from booking_engine.utils.datetime import utc_today


@pytest.fixture
def paid(
    make_reservation: Callable[..., dict[str, Any]], make_attempt: Callable[..., dict[str, Any]]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """CONFIRMED reservation paid in full through one completed attempt."""
    reservation = make_reservation(
        status=ReservationStatus.CONFIRMED,
        payment_status=PaymentStatus.COMPLETED,
        platform_fee=Decimal("47.12"),
        owner_revenue=Decimal("424.08"),
    )
    attempt = make_attempt(
        reservation,
        status=AttemptStatus.COMPLETED,
        gateway_payment_intent_id="pi_test_paid",
        gateway_charge_id="ch_test_paid",
    )
    return reservation, attempt


def _reservation(engine: Engine, reservation_id: str) -> dict[str, Any]:
    with engine.connect() as conn:
        row = get_reservation(conn, reservation_id)
    assert row is not None
    return row


@pytest.mark.integration
def test_full_refund_cancels_reservation(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    reservation, attempt = paid

    updated = refund_payment(db_engine, fake_gateway, owner, attempt["id"], reason="guest request")

    assert updated["status"] == "REFUNDED"
    assert updated["refund_amount"] == Decimal("471.20")
    assert updated["gateway_refund_id"] == "re_test_1"
    assert updated["refund_reason"] == "guest request"

    stored = _reservation(db_engine, reservation["id"])
    assert stored["status"] == "CANCELLED"
    assert stored["payment_status"] == "REFUNDED"

    call = fake_gateway.refunds[0]
    assert call["payment_intent_id"] == "pi_test_paid"
    assert call["amount"] == Decimal("471.20")
    assert call["idempotency_key"] == f"refund-{attempt['id']}-471.20"


@pytest.mark.integration
def test_partial_refund_keeps_reservation(
    db_engine: Engine,
    fake_gateway: Any,
    admin: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    reservation, attempt = paid

    updated = refund_payment(db_engine, fake_gateway, admin, attempt["id"], amount=Decimal("100"))

    assert updated["status"] == "PARTIALLY_REFUNDED"
    assert updated["refund_amount"] == Decimal("100.00")
    stored = _reservation(db_engine, reservation["id"])
    assert stored["status"] == "CONFIRMED"
    assert stored["payment_status"] == "PARTIALLY_REFUNDED"


@pytest.mark.integration
def test_refund_after_gateway_webhook_does_not_reapply(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    """Test that a refund already recorded by a charge.refunded webhook is not applied twice."""
    reservation, attempt = paid
    with db_engine.begin() as conn:
        state_machine.record_refund(conn, reservation, full=True, reason="refunded_by_gateway")

    updated = refund_payment(db_engine, fake_gateway, owner, attempt["id"])

    assert updated["status"] == "REFUNDED"
    assert _reservation(db_engine, reservation["id"])["cancellation_reason"] == "refunded_by_gateway"


@pytest.mark.integration
def test_refund_by_stranger_is_forbidden(
    db_engine: Engine,
    fake_gateway: Any,
    stranger: dict[str, Any],
    guest: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    _, attempt = paid

    for actor in (stranger, guest):
        with pytest.raises(ForbiddenError):
            refund_payment(db_engine, fake_gateway, actor, attempt["id"])

    assert fake_gateway.refunds == []


@pytest.mark.integration
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("471.21"), Decimal("-5")])
def test_refund_amount_out_of_range(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
    amount: Decimal,
) -> None:
    _, attempt = paid

    with pytest.raises(ValidationError):
        refund_payment(db_engine, fake_gateway, owner, attempt["id"], amount=amount)

    assert fake_gateway.refunds == []


@pytest.mark.integration
def test_refund_of_pending_payment_is_invalid(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
    make_attempt: Callable[..., dict[str, Any]],
) -> None:
    attempt = make_attempt(make_reservation())

    with pytest.raises(InvalidTransitionError):
        refund_payment(db_engine, fake_gateway, owner, attempt["id"])


@pytest.mark.integration
def test_refund_without_gateway_charge_is_bad_request(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
    make_attempt: Callable[..., dict[str, Any]],
) -> None:
    reservation = make_reservation(
        status=ReservationStatus.CONFIRMED, payment_status=PaymentStatus.COMPLETED
    )
    attempt = make_attempt(reservation, status=AttemptStatus.COMPLETED)

    with pytest.raises(BadRequestError):
        refund_payment(db_engine, fake_gateway, owner, attempt["id"])


@pytest.mark.integration
def test_refund_by_charge_when_intent_unknown(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
    make_attempt: Callable[..., dict[str, Any]],
) -> None:
    reservation = make_reservation(
        status=ReservationStatus.CONFIRMED, payment_status=PaymentStatus.COMPLETED
    )
    attempt = make_attempt(reservation, status=AttemptStatus.COMPLETED, gateway_charge_id="ch_only")

    refund_payment(db_engine, fake_gateway, owner, attempt["id"])

    assert fake_gateway.refunds[0]["payment_intent_id"] is None
    assert fake_gateway.refunds[0]["charge_id"] == "ch_only"


@pytest.mark.integration
def test_gateway_failure_leaves_payment_untouched(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    reservation, attempt = paid
    fake_gateway.refund_error = GatewayError("card network down")

    with pytest.raises(GatewayError):
        refund_payment(db_engine, fake_gateway, owner, attempt["id"])

    stored = _reservation(db_engine, reservation["id"])
    assert stored["status"] == "CONFIRMED"
    assert stored["payment_status"] == "COMPLETED"


@pytest.mark.integration
def test_refund_unknown_payment(db_engine: Engine, fake_gateway: Any, owner: dict[str, Any]) -> None:
    with pytest.raises(NotFoundError):
        refund_payment(db_engine, fake_gateway, owner, "missing")


@pytest.mark.integration
def test_guest_cancellation_quotes_refund(
    db_engine: Engine,
    guest: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
) -> None:
    """Test a MODERATE cancellation ten days out: full refund less the 3% fee."""
    check_in = utc_today() + timedelta(days=10)
    reservation = make_reservation(
        check_in=check_in,
        check_out=check_in + timedelta(days=3),
        status=ReservationStatus.CONFIRMED,
        payment_status=PaymentStatus.COMPLETED,
    )

    result = cancel_reservation(db_engine, guest, reservation["id"], "change of plans")

    assert result["reservation"]["status"] == "CANCELLED"
    assert result["reservation"]["cancellation_reason"] == "change of plans"
    quote = result["refund_quote"]
    assert quote["policy"] == "MODERATE"
    assert quote["days_until_check_in"] == 10
    assert quote["refund_amount"] == Decimal("471.20")
    assert quote["processing_fee"] == Decimal("14.14")
    assert quote["net_refund"] == Decimal("457.06")


@pytest.mark.integration
def test_cancelling_unpaid_reservation_has_no_quote(
    db_engine: Engine, owner: dict[str, Any], make_reservation: Callable[..., dict[str, Any]]
) -> None:
    reservation = make_reservation()

    result = cancel_reservation(db_engine, owner, reservation["id"])

    assert result["refund_quote"] is None
    assert result["reservation"]["status"] == "CANCELLED"


@pytest.mark.integration
def test_cancel_by_stranger_is_forbidden(
    db_engine: Engine, stranger: dict[str, Any], make_reservation: Callable[..., dict[str, Any]]
) -> None:
    reservation = make_reservation()

    with pytest.raises(ForbiddenError):
        cancel_reservation(db_engine, stranger, reservation["id"])

    assert _reservation(db_engine, reservation["id"])["status"] == "PENDING"


@pytest.mark.integration
def test_cancel_completed_stay_is_invalid(
    db_engine: Engine, admin: dict[str, Any], make_reservation: Callable[..., dict[str, Any]]
) -> None:
    reservation = make_reservation(status=ReservationStatus.COMPLETED, payment_status=PaymentStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        cancel_reservation(db_engine, admin, reservation["id"])


@pytest.mark.integration
def test_get_payment_for_participants_only(
    db_engine: Engine,
    guest: dict[str, Any],
    owner: dict[str, Any],
    stranger: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    reservation, attempt = paid

    for actor in (guest, owner):
        payment = get_payment(db_engine, actor, attempt["id"])
        assert payment["id"] == attempt["id"]
        assert payment["reservation"]["id"] == reservation["id"]
        assert payment["reservation"]["property_title"] == "Seaside Villa"

    with pytest.raises(ForbiddenError):
        get_payment(db_engine, stranger, attempt["id"])


@pytest.mark.integration
def test_owner_payouts_totals(
    db_engine: Engine,
    owner: dict[str, Any],
    stranger: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
    make_attempt: Callable[..., dict[str, Any]],
    paid: tuple[dict[str, Any], dict[str, Any]],
) -> None:
    unpaid = make_reservation(check_in=paid[0]["check_out"], check_out=paid[0]["check_out"] + timedelta(days=1))
    make_attempt(unpaid)

    payouts = owner_payouts(db_engine, owner["id"])

    assert [p["id"] for p in payouts["payments"]] == [paid[1]["id"]]
    assert payouts["total_paid"] == Decimal("471.20")
    assert payouts["total_owner_revenue"] == Decimal("424.08")
    assert payouts["total_platform_fee"] == Decimal("47.12")
    assert owner_payouts(db_engine, stranger["id"])["payments"] == []


@pytest.mark.integration
@pytest.mark.parametrize("action, expected", [("check_in", "CHECKED_IN"), ("no_show", "NO_SHOW")])
def test_owner_advances_stay(
    db_engine: Engine,
    owner: dict[str, Any],
    paid: tuple[dict[str, Any], dict[str, Any]],
    action: str,
    expected: str,
) -> None:
    reservation, _ = paid

    updated = advance_stay(db_engine, owner, reservation["id"], action)

    assert updated["status"] == expected


@pytest.mark.integration
def test_guest_cannot_advance_stay(
    db_engine: Engine, guest: dict[str, Any], paid: tuple[dict[str, Any], dict[str, Any]]
) -> None:
    with pytest.raises(ForbiddenError):
        advance_stay(db_engine, guest, paid[0]["id"], "check_in")


@pytest.mark.integration
def test_complete_requires_check_in(
    db_engine: Engine, owner: dict[str, Any], paid: tuple[dict[str, Any], dict[str, Any]]
) -> None:
    with pytest.raises(InvalidTransitionError):
        advance_stay(db_engine, owner, paid[0]["id"], "complete")


@pytest.mark.integration
def test_refund_of_payment_captured_after_decline(
    db_engine: Engine,
    fake_gateway: Any,
    owner: dict[str, Any],
    make_reservation: Callable[..., dict[str, Any]],
    make_attempt: Callable[..., dict[str, Any]],
) -> None:
    """Test that money captured on a retried card can be returned to the guest."""
    reservation = make_reservation(payment_status=PaymentStatus.FAILED)
    attempt = make_attempt(
        reservation,
        status=AttemptStatus.COMPLETED,
        gateway_payment_intent_id="pi_test_retry",
        gateway_charge_id="ch_test_retry",
    )

    updated = refund_payment(db_engine, fake_gateway, owner, attempt["id"])

    assert updated["status"] == "REFUNDED"
    assert fake_gateway.refunds[0]["payment_intent_id"] == "pi_test_retry"
    stored = _reservation(db_engine, reservation["id"])
    assert stored["status"] == "PENDING"
    assert stored["payment_status"] == "FAILED"
