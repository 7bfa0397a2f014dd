from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from booking_engine.models.base import Base, new_id


class User(Base):
    """
    ORM model for platform users (guests, property owners, admins).

    Guests without an account are created on first checkout or channel import,
    keyed by email.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="USER")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
