"""Integration tests for authentication endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security.api_keys import generate_api_key, hash_api_key
from infrastructure.database.models import ApiKey, UsageLog, User

pytestmark = pytest.mark.asyncio


class TestRegistration:
    """Tests for account registration."""

    async def test_register_success(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={
                "email": "NewCook@reciperank.io",
                "password": "SecurePass123",
                "name": "New Cook",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "newcook@reciperank.io"
        assert data["user"]["subscription_tier"] == "starter"
        assert data["user"]["has_stripe_customer"] is False
        assert "password_hash" not in data["user"]

    async def test_register_duplicate_email(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": test_user.email, "password": "SecurePass123", "name": "Duplicate"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "User already exists"}

    async def test_register_weak_password(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": "weak@reciperank.io", "password": "123"},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid request data"
        assert data["details"]

    async def test_register_password_without_digit(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": "letters@reciperank.io", "password": "onlyletters"},
        )
        assert response.status_code == 400

    async def test_register_invalid_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": "not-an-email", "password": "SecurePass123"},
        )
        assert response.status_code == 400


class TestLogin:
    """Tests for login."""

    async def test_login_success(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["expires_in"] > 0

    async def test_login_email_case_insensitive(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email.upper(), "password": "testpassword123"},
        )
        assert response.status_code == 200

    async def test_login_wrong_password(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "wrongpassword1"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Incorrect email or password"}

    async def test_login_unknown_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@reciperank.io", "password": "testpassword123"},
        )
        assert response.status_code == 401

    async def test_login_suspended_account(
        self, async_client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        test_user.status = "suspended"
        await db_session.commit()

        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "testpassword123"},
        )
        assert response.status_code == 403


class TestCurrentUser:
    """Tests for /auth/me and the accepted credentials."""

    async def test_me(self, async_client: AsyncClient, test_user: User, auth_headers: dict):
        response = await async_client.get("/api/v1/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == test_user.id
        assert data["email"] == test_user.email
        assert data["name"] == "Starter Cook"

    async def test_me_without_token(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_me_with_invalid_token(self, async_client: AsyncClient):
        response = await async_client.get(
            "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired token"}

    async def test_me_with_api_key(
        self, async_client: AsyncClient, db_session: AsyncSession, agency_user: User
    ):
        raw_key = generate_api_key()
        db_session.add(ApiKey(
            user_id=agency_user.id,
            name="CI",
            key_hash=hash_api_key(raw_key),
            key_prefix=raw_key[:12],
        ))
        await db_session.commit()

        response = await async_client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {raw_key}"}
        )

        assert response.status_code == 200
        assert response.json()["id"] == agency_user.id
        log = (await db_session.execute(select(UsageLog))).scalar_one()
        assert log.action == "api_call"

    async def test_revoked_api_key(self, async_client: AsyncClient):
        response = await async_client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {generate_api_key()}"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid API key"}
