from typing import Optional

from sqlalchemy import insert
from sqlalchemy.engine import Connection

from booking_engine.models.webhook_events import WebhookEvent
from booking_engine.utils.datetime import utc_now


def record_webhook_event(
    conn: Connection,
    event_id: str,
    event_type: str,
    outcome: str,
    reservation_id: Optional[str] = None,
) -> None:
    """
    Add an applied gateway event to the ledger.

    Must run in the transaction that applied the event. A concurrent delivery
    of the same event id fails on the primary key and rolls back its own
    changes.

    Args:
        conn (Connection): Connection inside an open transaction.
        event_id (str): Gateway event id.
        event_type (str): Gateway event type.
        outcome (str): Reconciliation outcome (applied, duplicate, ...).
        reservation_id (Optional[str]): Reservation the event resolved to.
    """
    conn.execute(
        insert(WebhookEvent).values(
            event_id=event_id,
            event_type=event_type,
            outcome=outcome,
            reservation_id=reservation_id,
            received_at=utc_now(),
        )
    )
