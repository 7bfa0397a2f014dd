"""SQLAlchemy model for rentable properties (read by the core, owned by property CRUD)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from booking_engine.models.base import Base, new_id


class Property(Base):
    """
    ORM model for a lodging property.

    Pricing columns feed the calculator at checkout time. ``calendar_version``
    is bumped by every transaction that changes which dates are held, which
    doubles as the per-property lock serialising availability check and insert.
    """

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    base_price = Column(Numeric(12, 2), nullable=False)
    cleaning_fee = Column(Numeric(12, 2), nullable=False, default=0)
    service_fee_percentage = Column(Numeric(5, 2), nullable=False, default=10)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=24)
    currency = Column(String(3), nullable=False, default="EUR")
    cancellation_policy = Column(String(20), nullable=False, default="MODERATE")
    max_guests = Column(Integer, nullable=True)
    calendar_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
