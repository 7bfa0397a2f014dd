"""
Price, revenue-split, commission and refund computation.

Pure functions over ``Decimal``. Every monetary output is rounded to cents
with ROUND_HALF_EVEN exactly once, from unrounded intermediate terms, so the
same inputs always produce the same figures.

Example:
    >>> calculate_price(100, 3, cleaning_fee=50).total_price
    Decimal('471.20')
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional, Union

from booking_engine.config import DEFAULT_COMMISSION_RATES, REFUND_PROCESSING_FEE_PERCENTAGE
from booking_engine.errors import ValidationError
from booking_engine.models.enums import BookingSource, CancellationPolicy

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

# (minimum days before check-in, percent refunded) per policy
REFUND_TIERS: dict[CancellationPolicy, tuple[int, Decimal]] = {
    CancellationPolicy.FLEXIBLE: (1, Decimal("100")),
    CancellationPolicy.MODERATE: (5, Decimal("100")),
    CancellationPolicy.STRICT: (7, Decimal("50")),
    CancellationPolicy.SUPER_STRICT: (0, Decimal("0")),
}


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a number to Decimal without binary float artifacts (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half to even."""
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class PriceBreakdown:
    base_price_per_night: Decimal
    nights: int
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    discount: Decimal
    total_price: Decimal
    currency: str


@dataclass(frozen=True)
class RevenueSplit:
    platform_fee: Decimal
    owner_revenue: Decimal


@dataclass(frozen=True)
class CommissionSplit:
    commission_rate: Decimal
    commission_amount: Decimal
    net_revenue: Decimal


@dataclass(frozen=True)
class RefundQuote:
    refund_percentage: Decimal
    refund_amount: Decimal
    processing_fee: Decimal
    net_refund: Decimal
    days_until_check_in: int


def calculate_price(
    base_price_per_night: Number,
    nights: int,
    cleaning_fee: Number = 0,
    service_fee_percentage: Number = 10,
    tax_rate_percentage: Number = 24,
    discount: Number = 0,
    currency: str = "EUR",
) -> PriceBreakdown:
    """
    Compute the price breakdown of a stay.

    subtotal = nightly rate x nights; service fee is a percentage of the
    subtotal; taxes apply to subtotal + cleaning + service fee; the discount
    comes off the end.

    Args:
        base_price_per_night: Nightly rate
        nights: Number of nights (>= 1)
        cleaning_fee: Flat cleaning fee
        service_fee_percentage: Service fee percent of subtotal
        tax_rate_percentage: Tax percent
        discount: Flat discount
        currency: ISO currency code carried through unchanged

    Returns:
        PriceBreakdown with every amount rounded to cents

    Raises:
        ValidationError: On nights < 1 or negative amounts
    """
    if nights < 1:
        raise ValidationError("A stay must be at least one night", nights=nights)

    rate = to_decimal(base_price_per_night)
    cleaning = to_decimal(cleaning_fee)
    service_pct = to_decimal(service_fee_percentage)
    tax_pct = to_decimal(tax_rate_percentage)
    discount_amount = to_decimal(discount)

    if min(rate, cleaning, service_pct, tax_pct, discount_amount) < 0:
        raise ValidationError("Price components must not be negative")

    subtotal = rate * nights
    service_fee = subtotal * service_pct / HUNDRED
    taxes = (subtotal + cleaning + service_fee) * tax_pct / HUNDRED
    total = subtotal + cleaning + service_fee + taxes - discount_amount

    return PriceBreakdown(
        base_price_per_night=round_money(rate),
        nights=nights,
        subtotal=round_money(subtotal),
        cleaning_fee=round_money(cleaning),
        service_fee=round_money(service_fee),
        taxes=round_money(taxes),
        discount=round_money(discount_amount),
        total_price=round_money(total),
        currency=currency,
    )


def revenue_split(total_price: Number, platform_fee_percentage: Number) -> RevenueSplit:
    """
    Split a direct booking's total into platform fee and owner revenue.

    Args:
        total_price: Amount the guest paid
        platform_fee_percentage: Percent retained by the platform

    Returns:
        RevenueSplit rounded to cents
    """
    total = to_decimal(total_price)
    platform_fee = total * to_decimal(platform_fee_percentage) / HUNDRED
    return RevenueSplit(
        platform_fee=round_money(platform_fee),
        owner_revenue=round_money(total - platform_fee),
    )


def default_commission_rate(source: Union[BookingSource, str]) -> Decimal:
    """Configured default commission percent for a channel (0 for unknown channels)."""
    key = source.value if isinstance(source, BookingSource) else str(source)
    return DEFAULT_COMMISSION_RATES.get(key, ZERO)


def commission_split(
    total_price: Number,
    source: Union[BookingSource, str],
    explicit_rate: Optional[Number] = None,
    explicit_amount: Optional[Number] = None,
) -> CommissionSplit:
    """
    Split a channel booking's total into channel commission and net revenue.

    An explicit rate from the channel overrides the per-channel default; an
    explicit commission amount overrides the computed one.

    Args:
        total_price: Total shown on the channel
        source: Booking channel
        explicit_rate: Commission percent reported by the channel
        explicit_amount: Commission amount reported by the channel

    Returns:
        CommissionSplit rounded to cents
    """
    total = to_decimal(total_price)
    rate = to_decimal(explicit_rate) if explicit_rate is not None else default_commission_rate(source)
    if rate < 0 or rate > HUNDRED:
        raise ValidationError("Commission rate must be between 0 and 100", commission_rate=str(rate))

    amount = to_decimal(explicit_amount) if explicit_amount is not None else total * rate / HUNDRED
    return CommissionSplit(
        commission_rate=round_money(rate),
        commission_amount=round_money(amount),
        net_revenue=round_money(total - amount),
    )


def calculate_refund(
    booking_total: Number,
    cancel_date: Union[date, datetime],
    check_in: Union[date, datetime],
    policy: Union[CancellationPolicy, str],
) -> RefundQuote:
    """
    Quote the refund owed for a cancellation under a cancellation policy.

    The refunded percent is a step function of whole days until check-in.
    A processing fee (3% of the booking total by default) is deducted from the
    refund, never below zero.

    Args:
        booking_total: Total price of the reservation
        cancel_date: When the cancellation happens
        check_in: First night of the stay
        policy: Cancellation policy of the property

    Returns:
        RefundQuote rounded to cents
    """
    if isinstance(cancel_date, datetime):
        cancel_date = cancel_date.date()
    if isinstance(check_in, datetime):
        check_in = check_in.date()

    days = (check_in - cancel_date).days
    min_days, percent = REFUND_TIERS[CancellationPolicy(policy)]
    refund_percentage = percent if days >= min_days and percent > 0 else ZERO

    total = to_decimal(booking_total)
    refund_amount = total * refund_percentage / HUNDRED
    processing_fee = total * REFUND_PROCESSING_FEE_PERCENTAGE / HUNDRED
    net_refund = max(ZERO, refund_amount - processing_fee)

    return RefundQuote(
        refund_percentage=refund_percentage,
        refund_amount=round_money(refund_amount),
        processing_fee=round_money(processing_fee),
        net_refund=round_money(net_refund),
        days_until_check_in=days,
    )
