"""
Integration tests for agency tier endpoints.

Tests cover:
- The agency subscription gate
- Agency stats
- White-label settings
- API keys, including authenticating with a created key
- Outbound webhook endpoints
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.plans import PLANS
from infrastructure.database.models import ApiKey, Organization

pytestmark = pytest.mark.asyncio

AGENCY_URL = "/api/v1/agency"


class TestAgencyGate:
    @pytest.mark.parametrize(
        "path",
        ["/stats", "/white-label", "/api-keys", "/webhooks", "/webhooks/events"],
    )
    async def test_non_agency_rejected(self, async_client: AsyncClient, pro_auth_headers: dict, path: str):
        response = await async_client.get(f"{AGENCY_URL}{path}", headers=pro_auth_headers)

        assert response.status_code == 403
        assert response.json() == {"error": "Agency subscription required"}

    async def test_gate_follows_plan_features(
        self, async_client: AsyncClient, pro_auth_headers: dict, monkeypatch
    ):
        monkeypatch.setitem(PLANS["pro"], "features", [*PLANS["pro"]["features"], "white_label"])

        white_label = await async_client.get(f"{AGENCY_URL}/white-label", headers=pro_auth_headers)
        api_keys = await async_client.get(f"{AGENCY_URL}/api-keys", headers=pro_auth_headers)

        assert white_label.status_code == 200
        assert api_keys.status_code == 403

    async def test_unauthenticated(self, async_client: AsyncClient):
        response = await async_client.get(f"{AGENCY_URL}/stats")
        assert response.status_code == 401


class TestAgencyStats:
    async def test_creates_organization_on_first_visit(
        self, async_client: AsyncClient, db_session: AsyncSession, agency_user, agency_auth_headers: dict
    ):
        response = await async_client.get(f"{AGENCY_URL}/stats", headers=agency_auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_analyses"] == 0
        assert data["team_members"] == 1
        assert data["api_calls"] == 0

        organization = await db_session.get(Organization, data["organization_id"])
        assert organization.owner_id == agency_user.id

    async def test_counts_existing_team(
        self, async_client: AsyncClient, agency_team: dict, agency_auth_headers: dict
    ):
        response = await async_client.get(f"{AGENCY_URL}/stats", headers=agency_auth_headers)

        data = response.json()
        assert data["organization_id"] == agency_team["organization"].id
        assert data["team_members"] == 4


class TestWhiteLabel:
    async def test_defaults_empty(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.get(f"{AGENCY_URL}/white-label", headers=agency_auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "company_name": None,
            "company_logo": None,
            "primary_color": None,
            "custom_domain": None,
        }

    async def test_update_and_read_back(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.put(
            f"{AGENCY_URL}/white-label",
            json={
                "company_name": "Spoon & Fork SEO",
                "company_logo": "https://cdn.spoonfork.example/logo.png",
                "primary_color": "#1A2B3C",
                "custom_domain": "SEO.SpoonFork.com",
            },
            headers=agency_auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["custom_domain"] == "seo.spoonfork.com"

        response = await async_client.get(f"{AGENCY_URL}/white-label", headers=agency_auth_headers)
        assert response.json()["company_name"] == "Spoon & Fork SEO"
        assert response.json()["primary_color"] == "#1A2B3C"

    async def test_partial_update_keeps_other_fields(
        self, async_client: AsyncClient, agency_auth_headers: dict
    ):
        await async_client.put(
            f"{AGENCY_URL}/white-label",
            json={"company_name": "Spoon & Fork SEO", "primary_color": "#000000"},
            headers=agency_auth_headers,
        )
        response = await async_client.put(
            f"{AGENCY_URL}/white-label",
            json={"primary_color": ""},
            headers=agency_auth_headers,
        )

        data = response.json()
        assert data["company_name"] == "Spoon & Fork SEO"
        assert data["primary_color"] is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"primary_color": "blue"},
            {"company_logo": "ftp://cdn.example/logo.png"},
            {"custom_domain": "not a domain"},
        ],
    )
    async def test_invalid_values(self, async_client: AsyncClient, agency_auth_headers: dict, payload: dict):
        response = await async_client.put(
            f"{AGENCY_URL}/white-label", json=payload, headers=agency_auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request data"


class TestApiKeys:
    async def test_create_list_and_authenticate(
        self, async_client: AsyncClient, agency_user, agency_auth_headers: dict
    ):
        created = await async_client.post(
            f"{AGENCY_URL}/api-keys", json={"name": "Publishing pipeline"}, headers=agency_auth_headers
        )

        assert created.status_code == 201
        key = created.json()["key"]
        assert key.startswith("rr_live_")
        assert created.json()["key_preview"].endswith(key[-4:])

        listed = await async_client.get(f"{AGENCY_URL}/api-keys", headers=agency_auth_headers)
        assert [k["name"] for k in listed.json()] == ["Publishing pipeline"]
        assert "key" not in listed.json()[0]

        me = await async_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {key}"})
        assert me.status_code == 200
        assert me.json()["id"] == agency_user.id

        stats = await async_client.get(f"{AGENCY_URL}/stats", headers=agency_auth_headers)
        assert stats.json()["api_calls"] == 1

    async def test_only_hash_is_stored(
        self, async_client: AsyncClient, db_session: AsyncSession, agency_auth_headers: dict
    ):
        created = await async_client.post(
            f"{AGENCY_URL}/api-keys", json={"name": "CI"}, headers=agency_auth_headers
        )
        key = created.json()["key"]

        stored = (await db_session.execute(select(ApiKey))).scalar_one()
        assert stored.key_hash != key
        assert key not in stored.key_prefix

    async def test_delete(self, async_client: AsyncClient, agency_auth_headers: dict):
        created = await async_client.post(
            f"{AGENCY_URL}/api-keys", json={"name": "Temporary"}, headers=agency_auth_headers
        )
        key_id, key = created.json()["id"], created.json()["key"]

        response = await async_client.delete(f"{AGENCY_URL}/api-keys/{key_id}", headers=agency_auth_headers)
        assert response.status_code == 200

        me = await async_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {key}"})
        assert me.status_code == 401

        again = await async_client.delete(f"{AGENCY_URL}/api-keys/{key_id}", headers=agency_auth_headers)
        assert again.status_code == 404
        assert again.json() == {"error": "API key not found"}

    async def test_blank_name(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.post(
            f"{AGENCY_URL}/api-keys", json={"name": ""}, headers=agency_auth_headers
        )
        assert response.status_code == 400


class TestWebhooks:
    async def test_supported_events(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.get(f"{AGENCY_URL}/webhooks/events", headers=agency_auth_headers)
        assert set(response.json()["events"]) == {
            "analysis.completed",
            "user.subscribed",
            "team.member.added",
            "usage.limit.reached",
        }

    async def test_create_list_delete(self, async_client: AsyncClient, agency_auth_headers: dict):
        created = await async_client.post(
            f"{AGENCY_URL}/webhooks",
            json={
                "url": "https://hooks.agency.example/rr",
                "events": ["analysis.completed", "analysis.completed", "usage.limit.reached"],
            },
            headers=agency_auth_headers,
        )

        assert created.status_code == 201
        data = created.json()
        assert data["secret"].startswith("whsec_")
        assert data["events"] == ["analysis.completed", "usage.limit.reached"]
        assert data["is_active"] is True

        listed = await async_client.get(f"{AGENCY_URL}/webhooks", headers=agency_auth_headers)
        assert [w["id"] for w in listed.json()] == [data["id"]]
        assert "secret" not in listed.json()[0]

        deleted = await async_client.delete(f"{AGENCY_URL}/webhooks/{data['id']}", headers=agency_auth_headers)
        assert deleted.status_code == 200
        listed = await async_client.get(f"{AGENCY_URL}/webhooks", headers=agency_auth_headers)
        assert listed.json() == []

    async def test_unknown_event_rejected(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.post(
            f"{AGENCY_URL}/webhooks",
            json={"url": "https://hooks.agency.example/rr", "events": ["recipe.deleted"]},
            headers=agency_auth_headers,
        )
        assert response.status_code == 400

    async def test_invalid_url_rejected(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.post(
            f"{AGENCY_URL}/webhooks",
            json={"url": "not a url", "events": ["analysis.completed"]},
            headers=agency_auth_headers,
        )
        assert response.status_code == 400

    async def test_delete_unknown(self, async_client: AsyncClient, agency_auth_headers: dict):
        response = await async_client.delete(
            f"{AGENCY_URL}/webhooks/00000000-0000-0000-0000-000000000000", headers=agency_auth_headers
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Webhook not found"}

    @pytest.mark.parametrize(
        "path, error",
        [
            ("api-keys/not-a-uuid", "API key not found"),
            ("webhooks/12345", "Webhook not found"),
        ],
    )
    async def test_delete_malformed_id(
        self, async_client: AsyncClient, agency_auth_headers: dict, path: str, error: str
    ):
        response = await async_client.delete(f"{AGENCY_URL}/{path}", headers=agency_auth_headers)
        assert response.status_code == 404
        assert response.json() == {"error": error}
