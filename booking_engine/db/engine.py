"""
SQLAlchemy engine singleton.

Production runs on PostgreSQL with a pooled engine. The same models and
statements also run on SQLite, which the test-suite uses; pool sizing only
applies to backends that pool connections.
"""

from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from booking_engine.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given URL with the service's pool settings.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: configured SQLAlchemy engine
    """
    options: dict[str, Any] = {"future": True, "echo": False, "pool_pre_ping": True}

    if url.startswith("sqlite"):
        # Writers wait on each other instead of failing fast with "database is locked"
        options["connect_args"] = {"timeout": 30}
    else:
        options.update(
            pool_size=10,  # Connections kept open
            max_overflow=20,  # Extra connections under burst load
            pool_recycle=3600,  # Recycle after 1 hour
        )

    return create_engine(url, **options)


engine: Engine = build_engine(DATABASE_URL)


def check_engine_health(target: Engine | None = None) -> bool:
    """
    Check if the database is reachable.

    Used by the /ready endpoint before traffic is routed to the service.

    Args:
        target: Engine to probe (defaults to the module engine)

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
