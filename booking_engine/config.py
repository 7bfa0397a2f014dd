import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Payment gateway (Stripe)
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))
GATEWAY_MAX_RETRIES = int(os.getenv("GATEWAY_MAX_RETRIES", "2"))

CHECKOUT_SUCCESS_URL = os.getenv(
    "CHECKOUT_SUCCESS_URL",
    "http://localhost:3000/booking/success?session_id={CHECKOUT_SESSION_ID}",
)
CHECKOUT_CANCEL_URL = os.getenv("CHECKOUT_CANCEL_URL", "http://localhost:3000/booking/cancel")

# Machine-to-machine key for channel import/sync endpoints
EXTERNAL_API_KEY = os.getenv("EXTERNAL_API_KEY", "")

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "EUR")
DEFAULT_PLATFORM_FEE_PERCENTAGE = Decimal(os.getenv("DEFAULT_PLATFORM_FEE_PERCENTAGE", "10"))
REFUND_PROCESSING_FEE_PERCENTAGE = Decimal(os.getenv("REFUND_PROCESSING_FEE_PERCENTAGE", "3"))

# Per-channel commission defaults (percent of total price).
# Override a single channel with COMMISSION_RATE_<SOURCE>, e.g. COMMISSION_RATE_VRBO=10.
_COMMISSION_RATE_DEFAULTS = {
    "DIRECT": "0",
    "BOOKING_COM": "15",
    "AIRBNB": "3",
    "VRBO": "8",
    "EXPEDIA": "15",
    "MANUAL": "0",
    "OTHER": "0",
}

DEFAULT_COMMISSION_RATES: dict[str, Decimal] = {
    source: Decimal(os.getenv(f"COMMISSION_RATE_{source}", default))
    for source, default in _COMMISSION_RATE_DEFAULTS.items()
}
