"""Enumeration types shared by the booking engine models and services."""

from enum import Enum


class ReservationStatus(str, Enum):
    """Lifecycle status of a reservation."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class PaymentStatus(str, Enum):
    """Payment status of a reservation or a single payment attempt."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class AttemptStatus(str, Enum):
    """Gateway-side state of a payment attempt (superset of the payment statuses)."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class BookingSource(str, Enum):
    """Channel a reservation originates from."""

    DIRECT = "DIRECT"
    BOOKING_COM = "BOOKING_COM"
    AIRBNB = "AIRBNB"
    VRBO = "VRBO"
    EXPEDIA = "EXPEDIA"
    MANUAL = "MANUAL"
    OTHER = "OTHER"


class CancellationPolicy(str, Enum):
    """Refund policy tiers, most permissive first."""

    FLEXIBLE = "FLEXIBLE"
    MODERATE = "MODERATE"
    STRICT = "STRICT"
    SUPER_STRICT = "SUPER_STRICT"


class PropertyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class UserRole(str, Enum):
    USER = "USER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"


# Statuses that hold a property's date range
BLOCKING_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)

# Statuses counted as earned revenue
REVENUE_STATUSES = (
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.COMPLETED,
)
