from datetime import date
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class CheckoutSessionRequest(BaseModel):
    """
    Schema for starting a direct booking checkout.
    """

    property_id: str = Field(..., description="Property to book")
    check_in: date = Field(..., description="First night of the stay")
    check_out: date = Field(..., description="Departure day (exclusive)")
    guest_count: int = Field(1, ge=1, description="Number of guests")
    guest_email: EmailStr = Field(..., description="Guest email; resolves or creates the guest user")
    guest_name: Optional[str] = Field(None, description="Guest display name")
    guest_phone: Optional[str] = Field(None, description="Guest phone number")
    special_requests: Optional[str] = Field(None, description="Free-text requests for the host")


class CheckoutSessionResponse(BaseModel):
    session_url: str
    session_id: str
    reservation_id: str


class CheckoutStatusResponse(BaseModel):
    session_id: str
    reservation_id: str
    status: str
    payment_status: str
    attempt_status: str
