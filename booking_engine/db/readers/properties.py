from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_engine.models.properties import Property
from booking_engine.models.users import User


def get_property(conn: Connection, property_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a property's pricing and ownership columns.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property id.

    Returns:
        Optional[dict[str, Any]]: Property columns or None if not found.
    """
    row = conn.execute(select(Property).where(Property.id == property_id)).mappings().first()
    return dict(row) if row else None


def get_user(conn: Connection, user_id: str) -> Optional[dict[str, Any]]:
    """Fetch an active user by id."""
    row = (
        conn.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
        .mappings()
        .first()
    )
    return dict(row) if row else None


def get_user_by_email(conn: Connection, email: str) -> Optional[dict[str, Any]]:
    """Fetch a user by email (case-insensitive)."""
    row = (
        conn.execute(select(User).where(User.email == email.strip().lower()))
        .mappings()
        .first()
    )
    return dict(row) if row else None
