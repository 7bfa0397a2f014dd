# models/reservations.py

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from booking_engine.models.base import Base, JSONType, new_id


class Reservation(Base):
    """
    ORM model for a reservation (booking) of a property over [check_in, check_out).

    Direct reservations start PENDING and are confirmed by the payment webhook;
    channel reservations are imported CONFIRMED. ``status`` and
    ``payment_status`` are only written by services/state_machine.py.

    (source, external_id) is unique; DIRECT rows leave external_id NULL, which
    unique constraints treat as distinct. On PostgreSQL the migration also adds
    an exclusion constraint forbidding overlapping CONFIRMED/CHECKED_IN ranges
    for the same property.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_reservations_source_external_id"),
        CheckConstraint("check_out > check_in", name="ck_reservations_dates"),
        Index("ix_reservations_property_dates", "property_id", "check_in", "check_out"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    property_id = Column(
        String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    guest_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=False, default=1)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)
    special_requests = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="PENDING", index=True)
    payment_status = Column(String(20), nullable=False, default="PENDING")

    base_price = Column(Numeric(12, 2), nullable=False)
    cleaning_fee = Column(Numeric(12, 2), nullable=False, default=0)
    service_fee = Column(Numeric(12, 2), nullable=False, default=0)
    taxes = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")

    source = Column(String(20), nullable=False, default="DIRECT", index=True)
    external_id = Column(String(255), nullable=True)
    external_platform_name = Column(String(255), nullable=True)
    external_guest_id = Column(String(255), nullable=True)
    ical_uid = Column(String(255), nullable=True)
    external_data = Column(JSONType, nullable=True)  # Opaque channel payload

    platform_fee = Column(Numeric(12, 2), nullable=True)
    owner_revenue = Column(Numeric(12, 2), nullable=True)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=True)
    net_revenue = Column(Numeric(12, 2), nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
