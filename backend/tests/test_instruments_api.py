"""
Tests for the instrument endpoints.
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient


def instrument_payload(reference_data=None, **overrides) -> dict:
    payload = {
        "symbol": "AAPL",
        "name": "Apple Inc.",
        "isin": "US0378331005",
        "type": "Stock",
        "assetClass": "Equities",
        "sector": "Technology",
        "lotSize": 1,
        "tickSize": "0.01",
    }
    if reference_data is not None:
        payload["currencyId"] = str(reference_data.usd_id)
        payload["countryId"] = str(reference_data.us_id)
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
class TestInstruments:
    async def test_create_instrument(self, async_client: AsyncClient, auth_headers: dict, reference_data):
        response = await async_client.post(
            "/api/v1/instruments", json=instrument_payload(reference_data), headers=auth_headers
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert body["status"] == "Active"
        assert body["isMarginEligible"] is True
        assert Decimal(body["tickSize"]) == Decimal("0.01")

    async def test_duplicate_symbol_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        await async_client.post("/api/v1/instruments", json=instrument_payload(), headers=auth_headers)

        response = await async_client.post("/api/v1/instruments", json=instrument_payload(), headers=auth_headers)

        assert response.status_code == 409

    async def test_unknown_currency_is_rejected(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/instruments",
            json=instrument_payload(currencyId="00000000-0000-0000-0000-000000000003"),
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "currencyId" in response.json()["errors"]

    async def test_lot_size_must_be_positive(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/instruments", json=instrument_payload(lotSize=0), headers=auth_headers
        )

        assert response.status_code == 400
        assert "lotSize" in response.json()["errors"]

    async def test_update_instrument(self, async_client: AsyncClient, auth_headers: dict):
        created = (await async_client.post(
            "/api/v1/instruments", json=instrument_payload(), headers=auth_headers
        )).json()

        response = await async_client.put(
            f"/api/v1/instruments/{created['id']}",
            json=instrument_payload(status="Suspended", rowVersion=created["rowVersion"]),
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Suspended"
        assert response.json()["rowVersion"] == 2

    async def test_list_and_filter(self, async_client: AsyncClient, auth_headers: dict):
        await async_client.post("/api/v1/instruments", json=instrument_payload(), headers=auth_headers)
        await async_client.post("/api/v1/instruments", json=instrument_payload(
            symbol="SPY", name="SPDR S&P 500 ETF", isin=None, type="ETF", assetClass="Funds", sector=None,
        ), headers=auth_headers)
        await async_client.post("/api/v1/instruments", json=instrument_payload(
            symbol="MSFT", name="Microsoft Corp.", isin=None,
        ), headers=auth_headers)

        response = await async_client.get("/api/v1/instruments", headers=auth_headers)
        assert [i["symbol"] for i in response.json()["items"]] == ["AAPL", "MSFT", "SPY"]

        response = await async_client.get("/api/v1/instruments?type=ETF", headers=auth_headers)
        assert [i["symbol"] for i in response.json()["items"]] == ["SPY"]

        response = await async_client.get("/api/v1/instruments?q=micro", headers=auth_headers)
        assert [i["symbol"] for i in response.json()["items"]] == ["MSFT"]

    async def test_delete_instrument(self, async_client: AsyncClient, auth_headers: dict):
        created = (await async_client.post(
            "/api/v1/instruments", json=instrument_payload(), headers=auth_headers
        )).json()

        response = await async_client.delete(f"/api/v1/instruments/{created['id']}", headers=auth_headers)
        assert response.status_code == 204

        response = await async_client.get(f"/api/v1/instruments/{created['id']}", headers=auth_headers)
        assert response.status_code == 404

    async def test_viewer_has_no_instrument_access(self, async_client: AsyncClient, viewer_user):
        response = await async_client.get("/api/v1/instruments", headers=viewer_user.headers)

        assert response.status_code == 403
