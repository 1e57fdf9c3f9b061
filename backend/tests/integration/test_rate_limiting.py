"""Integration tests for rate limiting middleware."""
import pytest
from httpx import AsyncClient

from infrastructure.database.models.user import User

pytestmark = pytest.mark.asyncio


class TestRateLimitingLogin:
    """Tests for rate limiting on login endpoint."""

    async def test_login_rate_limit_exceeded(self, async_client: AsyncClient, test_user: User):
        """Login is limited to 5 requests per minute, failed attempts included."""
        for i in range(5):
            response = await async_client.post("/api/v1/auth/login", json={
                "email": f"nonexistent{i}@reciperank.io",
                "password": "wrongpassword1"
            })
            # Should get 401 for wrong credentials, not 429
            assert response.status_code == 401

        response = await async_client.post("/api/v1/auth/login", json={
            "email": test_user.email,
            "password": "testpassword123"
        })
        assert response.status_code == 429
        assert "error" in response.json()


class TestRateLimitingRegister:
    """Tests for rate limiting on register endpoint."""

    async def test_register_rate_limit_exceeded(self, async_client: AsyncClient):
        """Registration is limited to 3 requests per minute."""
        for i in range(3):
            response = await async_client.post("/api/v1/auth/register", json={
                "email": f"newcook{i}@reciperank.io",
                "password": "SecurePass123",
                "name": f"Cook {i}"
            })
            assert response.status_code == 201

        response = await async_client.post("/api/v1/auth/register", json={
            "email": "newcook4@reciperank.io",
            "password": "SecurePass123",
        })
        assert response.status_code == 429


class TestRateLimitingAnalyses:
    """Tests for rate limiting on analysis submission."""

    async def test_analysis_rate_limit_exceeded(self, async_client: AsyncClient, agency_auth_headers: dict):
        """Analysis submission is limited to 20 requests per minute, regardless of plan."""
        for i in range(20):
            response = await async_client.post(
                "/api/v1/analyses",
                json={"recipe_url": f"https://www.foodblog.com/recipe-{i}"},
                headers=agency_auth_headers,
            )
            assert response.status_code == 201

        response = await async_client.post(
            "/api/v1/analyses",
            json={"recipe_url": "https://www.foodblog.com/one-more"},
            headers=agency_auth_headers,
        )
        assert response.status_code == 429
