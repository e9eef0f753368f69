"""Unit tests for auth routes.

The master storage is mocked; tokens are issued and validated with a real
HMAC validator so the bearer flow is exercised end to end.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth.dependencies import get_auth_flow_probe, get_jwt_validator
from auth.observability import AuthFlowProbe
from auth.presentation.routes import router
from shared_kernel.auth import AccessLevel, JWTValidator, TokenClaims
from shared_kernel.auth.observability import JWTValidatorProbe
from tenancy.dependencies import get_master_storage

STORE_USER = {
    "id": 11,
    "username": "maria",
    "name": "Maria Lopez",
    "email": "maria@example.com",
    "role": "store_admin",
    "store_id": 7,
    "is_active": True,
    "level": "store",
}


@pytest.fixture
def mock_probe() -> MagicMock:
    """Create mock observability probe."""
    return MagicMock(spec=AuthFlowProbe)


@pytest.fixture
def validator() -> JWTValidator:
    return JWTValidator(secret="test-secret", probe=MagicMock(spec=JWTValidatorProbe))


@pytest.fixture
def mock_master_storage() -> MagicMock:
    master = MagicMock()
    master.authenticate_user = AsyncMock(return_value=STORE_USER)
    return master


@pytest.fixture
def client(mock_master_storage, validator, mock_probe) -> TestClient:
    """Create test app with auth routes registered."""
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_master_storage] = lambda: mock_master_storage
    app.dependency_overrides[get_jwt_validator] = lambda: validator
    app.dependency_overrides[get_auth_flow_probe] = lambda: mock_probe
    return TestClient(app)


class TestLogin:
    """Tests for POST /auth/login."""

    def test_successful_login_returns_store_bound_token(
        self, client, validator, mock_master_storage, mock_probe
    ):
        response = client.post(
            "/auth/login",
            json={"username": "maria", "password": "clave-segura", "storeId": 7},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"] == {
            "id": 11,
            "username": "maria",
            "role": "store_admin",
            "storeId": 7,
            "level": "store",
        }
        claims = validator.validate_token(body["token"])
        assert claims.store_id == 7
        assert claims.level is AccessLevel.STORE
        mock_master_storage.authenticate_user.assert_awaited_once_with(
            "maria", "clave-segura", 7
        )
        mock_probe.login_succeeded.assert_called_once_with(
            user_id=11, level="store", store_id=7
        )

    def test_invalid_credentials(self, client, mock_master_storage, mock_probe):
        mock_master_storage.authenticate_user.return_value = None

        response = client.post(
            "/auth/login", json={"username": "maria", "password": "mala"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        mock_probe.login_failed.assert_called_once_with(username="maria", store_id=None)

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "", "password": "x"},
            {"username": "maria"},
            {"username": "maria", "password": "x", "storeId": 0},
        ],
    )
    def test_malformed_body(self, client, body):
        assert client.post("/auth/login", json=body).status_code == 422


class TestMe:
    """Tests for GET /auth/me."""

    def test_describes_token_user(self, client, validator):
        token = validator.issue_token(
            TokenClaims(user_id=1, username="admin", level=AccessLevel.GLOBAL)
        )

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {
            "id": 1,
            "username": "admin",
            "role": None,
            "storeId": None,
            "level": "global",
        }

    def test_anonymous_is_401(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token_is_401(self, client, mock_probe):
        response = client.get(
            "/auth/me", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401
        mock_probe.authentication_failed.assert_called_once()
