from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_engine.models.webhook_events import WebhookEvent


def webhook_event_exists(conn: Connection, event_id: str) -> bool:
    """
    Check whether a gateway event id has already been applied.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        event_id (str): Gateway event id.

    Returns:
        bool: True if the event is in the ledger.
    """
    result = conn.execute(select(WebhookEvent.event_id).where(WebhookEvent.event_id == event_id))
    return result.first() is not None
