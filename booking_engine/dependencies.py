"""
FastAPI dependency injection providers.

Routes receive the database engine, the payment gateway, and the acting
caller through these providers. Tests override them with
``app.dependency_overrides`` to inject a temporary database and a fake
gateway.
"""

from __future__ import annotations

import hmac
from functools import lru_cache
from typing import Any, Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.engine import Engine

from booking_engine.config import EXTERNAL_API_KEY
from booking_engine.db.engine import engine
from booking_engine.db.readers.properties import get_user
from booking_engine.errors import UnauthorizedError
from booking_engine.network.gateway import PaymentGateway, StripeGateway


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
    """
    yield engine


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """
    Provide the process-wide Stripe gateway.

    Testing Example:
        >>> app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway()
    """
    return StripeGateway()


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Resolve the caller from the ``X-User-Id`` header set by the auth gateway.

    Raises:
        UnauthorizedError: If the header is missing or names no active user
    """
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")

    with db.connect() as conn:
        user = get_user(conn, x_user_id)
    if user is None:
        raise UnauthorizedError("Unknown user", user_id=x_user_id)
    return user


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """
    Guard machine-to-machine endpoints with the shared ``X-API-Key``.

    Raises:
        UnauthorizedError: If no key is configured, none was sent, or it differs
    """
    if not EXTERNAL_API_KEY or not x_api_key:
        raise UnauthorizedError("Missing API key")
    if not hmac.compare_digest(x_api_key.encode("utf-8"), EXTERNAL_API_KEY.encode("utf-8")):
        raise UnauthorizedError("Invalid API key")
