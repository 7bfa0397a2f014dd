from typing import Any

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.base import new_id
from booking_engine.models.payments import PaymentAttempt
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_payment_attempt(conn: Connection, values: dict[str, Any]) -> str:
    """
    Insert a payment attempt.

    Args:
        conn (Connection): Connection inside an open transaction.
        values (dict[str, Any]): Column values; ``id`` is generated when absent.

    Returns:
        str: The attempt id.

    Raises:
        IntegrityError: If the gateway session or payment intent id is already recorded.
    """
    now = utc_now()
    row = {"id": new_id(), "created_at": now, "updated_at": now, **values}
    conn.execute(insert(PaymentAttempt).values(**row))
    return str(row["id"])


def update_payment_attempt(conn: Connection, attempt_id: str, data: dict[str, Any]) -> None:
    """
    Update fields of a payment attempt.

    Args:
        conn (Connection): Connection inside an open transaction.
        attempt_id (str): Attempt to update.
        data (dict[str, Any]): Columns to write.
    """
    conn.execute(
        update(PaymentAttempt)
        .where(PaymentAttempt.id == attempt_id)
        .values(**data, updated_at=utc_now())
    )
