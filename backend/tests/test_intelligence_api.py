"""
API Integration Tests: the business_intelligence call over HTTP.
"""

import json

import pytest
from httpx import AsyncClient


def _text(resp) -> str:
    return resp.json()["content"][0]["text"]


@pytest.mark.asyncio
class TestIntelligenceApi:

    async def test_health(self, client: AsyncClient):
        """Health endpoint needs no credentials."""
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "version": "1.0.0"}

    async def test_operations_listing(self, client: AsyncClient):
        """Tool description lists every operation."""
        resp = await client.get("/api/v1/intelligence/operations")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "business_intelligence"
        assert len(data["operations"]) == 31
        assert data["formats"] == ["json", "csv", "pdf"]

    async def test_bearer_header(self, client: AsyncClient, auth_token, seeded_db):
        """Bearer token authenticates the call."""
        resp = await client.post(
            "/api/v1/intelligence/call",
            json={"operation": "get_financial_summary"},
            headers={"Authorization": f"Bearer {auth_token}"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert "isError" not in body
        assert json.loads(body["content"][0]["text"])["metrics"]["totalProfit"] == 45200

    async def test_token_in_body(self, client: AsyncClient, auth_token, seeded_db):
        """authToken in the arguments works without a header."""
        resp = await client.post(
            "/api/v1/intelligence/call",
            json={"operation": "search_customers", "parameters": {"query": "glob"}, "authToken": auth_token},
        )
        assert json.loads(_text(resp))["total"] == 1

    async def test_header_takes_precedence(self, client: AsyncClient, auth_token, seeded_db):
        """A bad header token is not rescued by a good body token."""
        resp = await client.post(
            "/api/v1/intelligence/call",
            json={"operation": "get_order_analytics", "authToken": auth_token},
            headers={"Authorization": "Bearer forged"},
        )
        assert resp.json()["isError"] is True
        assert _text(resp) == "Error: Invalid or expired token"

    async def test_errors_use_the_envelope(self, client: AsyncClient):
        """Failures come back as isError envelopes with HTTP 200."""
        resp = await client.post("/api/v1/intelligence/call", json={"operation": "get_order_analytics"})
        assert resp.status_code == 200
        assert resp.json() == {
            "content": [{"type": "text", "text": "Error: Authentication required: missing token"}],
            "isError": True,
        }

    async def test_update_inventory_round_trip(self, client: AsyncClient, auth_token, seeded_db):
        """A write followed by a read sees the new level."""
        headers = {"Authorization": f"Bearer {auth_token}"}
        update = await client.post(
            "/api/v1/intelligence/call",
            json={
                "operation": "update_inventory_levels",
                "parameters": {"updates": [{"productId": "P1", "warehouse": "Main", "quantity": 50, "reorderLevel": 5}]},
            },
            headers=headers,
        )
        assert json.loads(_text(update))["updated"] == 1

        check = await client.post(
            "/api/v1/intelligence/call",
            json={"operation": "check_inventory_levels", "parameters": {"lowStockOnly": True}},
            headers=headers,
        )
        assert json.loads(_text(check))["inventory"] == []
