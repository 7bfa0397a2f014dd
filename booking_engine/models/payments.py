from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.sql import func

from booking_engine.models.base import Base, new_id


class PaymentAttempt(Base):
    """
    ORM model for one gateway-side payment object per reservation attempt.

    A reservation may have several attempts across retries. Gateway identifiers
    are unique so that webhook deliveries and the checkout flow converge on the
    same row whichever commits first.
    """

    __tablename__ = "payment_attempts"

    id = Column(String(36), primary_key=True, default=new_id)
    reservation_id = Column(
        String(36), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(String(20), nullable=False, default="PENDING")
    gateway_session_id = Column(String(255), nullable=True, unique=True)
    gateway_payment_intent_id = Column(String(255), nullable=True, unique=True)
    gateway_charge_id = Column(String(255), nullable=True)
    gateway_refund_id = Column(String(255), nullable=True)
    refund_amount = Column(Numeric(12, 2), nullable=True)
    refund_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
