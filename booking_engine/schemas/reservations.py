from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel

from booking_engine.schemas.common import Money, Pagination


class ReservationResponse(BaseModel):
    """
    A reservation as returned by the API. Money fields are JSON numbers
    rounded to 2 decimal places.
    """

    id: str
    property_id: str
    guest_id: str
    check_in: date
    check_out: date
    guest_count: int
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    special_requests: Optional[str] = None

    status: str
    payment_status: str

    base_price: Money
    cleaning_fee: Money
    service_fee: Money
    taxes: Money
    discount: Money
    total_price: Money
    currency: str

    source: str
    external_id: Optional[str] = None
    external_platform_name: Optional[str] = None
    external_guest_id: Optional[str] = None
    ical_uid: Optional[str] = None
    external_data: Optional[dict[str, Any]] = None

    platform_fee: Optional[Money] = None
    owner_revenue: Optional[Money] = None
    commission_rate: Optional[Money] = None
    commission_amount: Optional[Money] = None
    net_revenue: Optional[Money] = None

    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RefundQuoteResponse(BaseModel):
    policy: Optional[str] = None
    days_until_check_in: int
    refund_percentage: Money
    refund_amount: Money
    processing_fee: Money
    net_refund: Money


class CancellationResponse(BaseModel):
    reservation: ReservationResponse
    refund_quote: Optional[RefundQuoteResponse] = None


class ExternalBookingPage(BaseModel):
    bookings: list[ReservationResponse]
    pagination: Pagination


class SourceRevenue(BaseModel):
    booking_count: int
    total_revenue: Money
    total_commission: Money
    net_revenue: Money
    currency: Optional[str] = None
