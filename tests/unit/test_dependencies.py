"""
Unit tests for FastAPI dependency injection and caller identification.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from booking_engine.dependencies import (
    get_current_user,
    get_db_engine,
    get_payment_gateway,
    require_api_key,
)
from booking_engine.errors import BookingError, UnauthorizedError
from booking_engine.network.gateway import StripeGateway
from booking_engine.routes._errors import booking_error_handler


@pytest.fixture
def app_with_auth(db_engine: Engine) -> FastAPI:
    """App exposing the identity dependencies, bound to the test database."""
    app = FastAPI()
    app.add_exception_handler(BookingError, booking_error_handler)
    app.dependency_overrides[get_db_engine] = lambda: db_engine

    @app.get("/whoami")
    def whoami(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, str]:
        return {"id": user["id"], "role": user["role"]}

    @app.get("/machine", dependencies=[Depends(require_api_key)])
    def machine() -> dict[str, str]:
        return {"status": "ok"}

    return app


@pytest.mark.unit
def test_get_db_engine_dependency() -> None:
    """Test that get_db_engine yields the engine instance."""
    engine = next(get_db_engine())

    assert isinstance(engine, Engine)


@pytest.mark.unit
def test_get_payment_gateway_is_cached() -> None:
    """Test that the gateway is built once per process."""
    get_payment_gateway.cache_clear()
    first = get_payment_gateway()
    second = get_payment_gateway()

    assert isinstance(first, StripeGateway)
    assert first is second
    get_payment_gateway.cache_clear()


@pytest.mark.integration
def test_current_user_resolved_from_header(app_with_auth: FastAPI, guest: dict[str, Any]) -> None:
    response = TestClient(app_with_auth).get("/whoami", headers={"X-User-Id": guest["id"]})

    assert response.status_code == 200
    assert response.json() == {"id": guest["id"], "role": "USER"}


@pytest.mark.integration
def test_current_user_missing_header_is_401(app_with_auth: FastAPI) -> None:
    response = TestClient(app_with_auth).get("/whoami")

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


@pytest.mark.integration
def test_current_user_unknown_id_is_401(app_with_auth: FastAPI) -> None:
    response = TestClient(app_with_auth).get("/whoami", headers={"X-User-Id": "nobody"})

    assert response.status_code == 401


@pytest.mark.integration
def test_api_key_accepted(app_with_auth: FastAPI) -> None:
    with patch("booking_engine.dependencies.EXTERNAL_API_KEY", "s3cret"):
        response = TestClient(app_with_auth).get("/machine", headers={"X-API-Key": "s3cret"})

    assert response.status_code == 200


@pytest.mark.integration
@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"}])
def test_api_key_rejected(app_with_auth: FastAPI, headers: dict[str, str]) -> None:
    with patch("booking_engine.dependencies.EXTERNAL_API_KEY", "s3cret"):
        response = TestClient(app_with_auth).get("/machine", headers=headers)

    assert response.status_code == 401


@pytest.mark.unit
def test_api_key_rejected_when_not_configured() -> None:
    """Test that an empty configured key never matches, even an empty header."""
    with patch("booking_engine.dependencies.EXTERNAL_API_KEY", ""):
        with pytest.raises(UnauthorizedError):
            require_api_key("")
