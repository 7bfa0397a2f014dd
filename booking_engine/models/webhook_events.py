from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from booking_engine.models.base import Base


class WebhookEvent(Base):
    """
    Ledger of payment gateway events that have been applied.

    The row is inserted in the same transaction as the state change it caused,
    so an event id present here has been fully applied exactly once.
    """

    __tablename__ = "webhook_events"

    event_id = Column(String(255), primary_key=True)  # Gateway event id (evt_...)
    event_type = Column(String(100), nullable=False)
    outcome = Column(String(20), nullable=False)
    reservation_id = Column(String(36), nullable=True, index=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
