from typing import Any, Optional

import structlog
from sqlalchemy import insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from booking_engine.db.readers.properties import get_user_by_email
from booking_engine.models.base import new_id
from booking_engine.models.enums import UserRole
from booking_engine.models.users import User
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def get_or_create_guest(
    conn: Connection, email: str, name: Optional[str] = None, phone: Optional[str] = None
) -> dict[str, Any]:
    """
    Resolve a guest user by email, creating a USER account if none exists.

    Args:
        conn (Connection): Active SQLAlchemy connection (inside a transaction).
        email (str): Guest email, matched case-insensitively.
        name (Optional[str]): Display name for a new user.
        phone (Optional[str]): Phone for a new user.

    Returns:
        dict[str, Any]: The user row.
    """
    normalized = email.strip().lower()
    existing = get_user_by_email(conn, normalized)
    if existing:
        return existing

    row = {
        "id": new_id(),
        "email": normalized,
        "name": name,
        "phone": phone,
        "role": UserRole.USER.value,
        "is_active": True,
        "created_at": utc_now(),
    }
    conn.execute(insert(User).values(**row))

    logger.info("guest_user_created", user_id=row["id"])
    return row


def resolve_guest(
    engine: Engine, email: str, name: Optional[str] = None, phone: Optional[str] = None
) -> dict[str, Any]:
    """
    Resolve or create a guest in its own transaction.

    Two first-time bookings by the same email can race on the unique email
    column; the loser re-reads the row the winner created.

    Args:
        engine (Engine): SQLAlchemy engine.
        email (str): Guest email.
        name (Optional[str]): Display name for a new user.
        phone (Optional[str]): Phone for a new user.

    Returns:
        dict[str, Any]: The user row.
    """
    email = email.strip().lower()
    try:
        with engine.begin() as conn:
            return get_or_create_guest(conn, email, name, phone)
    except IntegrityError as exc:
        with engine.connect() as conn:
            existing = get_user_by_email(conn, email)
        if existing is None:
            raise exc
        return existing
