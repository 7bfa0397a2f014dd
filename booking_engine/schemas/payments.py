from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from booking_engine.schemas.common import Money


class RefundRequest(BaseModel):
    """
    Schema for refunding a completed payment. Omit amount for a full refund.
    """

    amount: Optional[Decimal] = Field(None, gt=0, description="Amount to refund")
    reason: Optional[str] = Field(None, description="Reason recorded on the payment")


class CancelReservationRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Cancellation reason")


class PaymentReservationSummary(BaseModel):
    id: str
    property_id: str
    property_title: Optional[str] = None
    check_in: date
    check_out: date
    status: str
    payment_status: str


class PaymentResponse(BaseModel):
    """
    A payment attempt. ``reservation`` is included on single-payment reads.
    """

    id: str
    reservation_id: str
    amount: Money
    currency: str
    status: str
    gateway_session_id: Optional[str] = None
    gateway_payment_intent_id: Optional[str] = None
    gateway_charge_id: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    refund_amount: Optional[Money] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reservation: Optional[PaymentReservationSummary] = None


class OwnerPayout(BaseModel):
    id: str
    reservation_id: str
    property_id: str
    property_title: Optional[str] = None
    amount: Money
    currency: str
    owner_revenue: Optional[Money] = None
    platform_fee: Optional[Money] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class OwnerPayoutsResponse(BaseModel):
    payments: list[OwnerPayout]
    total_paid: Money
    total_owner_revenue: Money
    total_platform_fee: Money
