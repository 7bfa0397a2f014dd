# booking_engine/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_engine.config import ALLOWED_ORIGINS
from booking_engine.errors import BookingError
from booking_engine.logging_config import setup_logging
from booking_engine.middleware import RequestIDMiddleware
from booking_engine.routes._errors import booking_error_handler
from booking_engine.routes.external_bookings import router as external_bookings_router
from booking_engine.routes.health import router as health_router
from booking_engine.routes.metrics import router as metrics_router
from booking_engine.routes.payments import router as payments_router
from booking_engine.routes.reservations import router as reservations_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Booking Engine API",
    description="Reservation lifecycle, checkout and payment reconciliation",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(BookingError, booking_error_handler)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(payments_router, prefix="/payments", tags=["Payments"])
app.include_router(reservations_router, prefix="/reservations", tags=["Reservations"])
app.include_router(
    external_bookings_router, prefix="/external-bookings", tags=["External Bookings"]
)
