from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from booking_engine.models.enums import BookingSource, ReservationStatus


class ExternalBookingPayload(BaseModel):
    """
    Schema for importing a reservation made on an external channel.

    Channels report their own totals; commission rate and amount are optional
    and fall back to the per-channel default rate.
    """

    property_id: str = Field(..., description="Property the reservation is for")
    source: BookingSource = Field(..., description="Channel the reservation was made on")
    external_id: str = Field(..., min_length=1, description="Reservation id on the channel")
    external_platform_name: Optional[str] = Field(
        None, description="Platform name, required when source is OTHER"
    )
    check_in: date = Field(..., description="First night of the stay")
    check_out: date = Field(..., description="Departure day (exclusive)")
    guest_count: int = Field(1, ge=1, description="Number of guests")

    total_price: Decimal = Field(..., ge=0, description="Total shown on the channel")
    base_price: Optional[Decimal] = Field(None, ge=0, description="Nightly rate x nights")
    cleaning_fee: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Percent")
    commission_amount: Optional[Decimal] = Field(None, ge=0)

    guest_name: str = Field(..., description="Guest name on the channel")
    guest_email: EmailStr = Field(..., description="Guest email; resolves or creates the guest user")
    guest_phone: Optional[str] = None
    external_guest_id: Optional[str] = Field(None, description="Guest id on the channel")
    special_requests: Optional[str] = None
    ical_uid: Optional[str] = Field(None, description="iCal UID for calendar sync")
    external_data: Optional[dict[str, Any]] = Field(
        None, description="Raw channel payload, stored as is"
    )


class ExternalBookingPatch(BaseModel):
    """
    Schema for syncing changes from a channel. All fields are optional.
    A status change is applied through the reservation state machine.
    """

    status: Optional[ReservationStatus] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guest_count: Optional[int] = Field(None, ge=1)
    total_price: Optional[Decimal] = Field(None, ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    commission_amount: Optional[Decimal] = Field(None, ge=0)
    guest_name: Optional[str] = None
    guest_email: Optional[EmailStr] = None
    guest_phone: Optional[str] = None
    special_requests: Optional[str] = None
    external_data: Optional[dict[str, Any]] = None
    cancellation_reason: Optional[str] = None


class BulkImportPayload(BaseModel):
    bookings: list[ExternalBookingPayload] = Field(..., min_length=1)
