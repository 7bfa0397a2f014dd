from sqlalchemy import update
from sqlalchemy.engine import Connection

from booking_engine.errors import NotFoundError
from booking_engine.models.properties import Property


def lock_property_calendar(conn: Connection, property_id: str) -> None:
    """
    Serialize calendar changes for one property within the current transaction.

    Bumps ``calendar_version`` so the transaction holds the property row's
    write lock (PostgreSQL) or the database write lock (SQLite) until commit.
    Must be the first write of any transaction that checks availability and
    then inserts or confirms a reservation, so no other writer can slip a
    clashing reservation between the check and the write.

    Args:
        conn (Connection): Connection inside an open transaction.
        property_id (str): Property whose calendar is being changed.

    Raises:
        NotFoundError: If the property does not exist.
    """
    result = conn.execute(
        update(Property)
        .where(Property.id == property_id)
        .values(calendar_version=Property.calendar_version + 1)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Property {property_id} not found", property_id=property_id)
