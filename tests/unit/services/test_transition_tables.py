"""
Unit tests for the reservation and payment transition tables.
"""

from __future__ import annotations

import itertools

import pytest

from booking_engine.errors import InvalidTransitionError
from booking_engine.models.enums import PaymentStatus, ReservationStatus
from booking_engine.services.state_machine import (
    TERMINAL_STATUSES,
    can_transition_payment,
    can_transition_status,
    ensure_payment_transition,
    ensure_status_transition,
)

RS = ReservationStatus
PS = PaymentStatus

ALLOWED_STATUS_EDGES = {
    (RS.PENDING, RS.CONFIRMED),
    (RS.PENDING, RS.CANCELLED),
    (RS.CONFIRMED, RS.CHECKED_IN),
    (RS.CONFIRMED, RS.CANCELLED),
    (RS.CONFIRMED, RS.NO_SHOW),
    (RS.CHECKED_IN, RS.COMPLETED),
    (RS.CHECKED_IN, RS.CANCELLED),
    (RS.CHECKED_IN, RS.NO_SHOW),
}

ALLOWED_PAYMENT_EDGES = {
    (PS.PENDING, PS.COMPLETED),
    (PS.PENDING, PS.FAILED),
    (PS.COMPLETED, PS.REFUNDED),
    (PS.COMPLETED, PS.PARTIALLY_REFUNDED),
}


@pytest.mark.unit
@pytest.mark.parametrize("current, target", list(itertools.product(RS, RS)))
def test_status_edges_match_lifecycle(current: RS, target: RS) -> None:
    """Test every (current, target) pair against the reservation lifecycle."""
    assert can_transition_status(current.value, target.value) == ((current, target) in ALLOWED_STATUS_EDGES)


@pytest.mark.unit
@pytest.mark.parametrize("current, target", list(itertools.product(PS, PS)))
def test_payment_edges_are_monotonic(current: PS, target: PS) -> None:
    """Test every (current, target) pair against the payment graph."""
    assert can_transition_payment(current.value, target.value) == ((current, target) in ALLOWED_PAYMENT_EDGES)


@pytest.mark.unit
def test_terminal_statuses() -> None:
    assert TERMINAL_STATUSES == {RS.COMPLETED, RS.CANCELLED, RS.NO_SHOW}


@pytest.mark.unit
def test_ensure_status_transition_raises_with_details() -> None:
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_status_transition("COMPLETED", "CONFIRMED")

    assert exc_info.value.details == {
        "field": "status",
        "current": "COMPLETED",
        "target": "CONFIRMED",
    }
    assert exc_info.value.to_dict()["error"] == "invalid_transition"


@pytest.mark.unit
def test_ensure_payment_transition_rejects_refund_of_pending_payment() -> None:
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_payment_transition("PENDING", "REFUNDED")

    assert exc_info.value.details["field"] == "payment_status"


@pytest.mark.unit
def test_ensure_payment_transition_allows_capture() -> None:
    ensure_payment_transition("PENDING", "COMPLETED")
