"""Tests for the app proxy endpoint."""

from httpx import AsyncClient

SHOP = "cool-store.myshopify.com"


def _params() -> dict[str, str]:
    return {
        "shop": SHOP,
        "path_prefix": "/apps/gateway",
        "timestamp": "1700000000",
        "logged_in_customer_id": "42",
    }


class TestProxy:
    async def test_signed_request(self, client: AsyncClient, sign_query) -> None:
        response = await client.get("/proxy/widgets/list", params=sign_query(_params()))

        assert response.status_code == 200
        assert response.json() == {
            "shop": SHOP,
            "path": "/widgets/list",
            "loggedInCustomerId": "42",
        }

    async def test_no_session_needed_but_signature_required(
        self, client: AsyncClient
    ) -> None:
        response = await client.get("/proxy/widgets", params=_params())
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication failed", "action": "none"}

    async def test_tampered_query(self, client: AsyncClient, sign_query) -> None:
        params = sign_query(_params())
        params["logged_in_customer_id"] = "1"
        response = await client.get("/proxy/widgets", params=params)
        assert response.status_code == 401

    async def test_repeated_parameter(self, client: AsyncClient, sign_query) -> None:
        signed = sign_query({**_params(), "ids": "1,2"})
        query = [(k, v) for k, v in signed.items() if k != "ids"]
        query += [("ids", "1"), ("ids", "2")]
        response = await client.get("/proxy/items", params=query)
        assert response.status_code == 200

    async def test_anonymous_customer(self, client: AsyncClient, sign_query) -> None:
        params = sign_query({**_params(), "logged_in_customer_id": ""})
        response = await client.get("/proxy/", params=params)
        assert response.status_code == 200
        assert response.json()["loggedInCustomerId"] is None
