from uuid import uuid4

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    """Generate an opaque primary key."""
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Services use Core statements against these tables (select/insert/update
    on the mapped classes); the ORM session is not used.
    """

    pass
