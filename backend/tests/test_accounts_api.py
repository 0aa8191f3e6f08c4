"""
Tests for the account endpoints, including holder management.
"""
import pytest
from httpx import AsyncClient


async def create_account(async_client: AsyncClient, headers: dict, **overrides) -> dict:
    payload = {"number": "ACC-0001", "accountType": "Individual", **overrides}
    response = await async_client.post("/api/v1/accounts", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def create_client(async_client: AsyncClient, headers: dict, email: str, first: str, last: str) -> dict:
    response = await async_client.post(
        "/api/v1/clients",
        json={"clientType": "Individual", "email": email, "firstName": first, "lastName": last},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
class TestAccountCrud:
    async def test_create_account_defaults(self, async_client: AsyncClient, auth_headers: dict):
        body = await create_account(async_client, auth_headers)

        assert body["number"] == "ACC-0001"
        assert body["status"] == "Active"
        assert body["marginType"] == "Cash"
        assert body["optionLevel"] == "Level0"
        assert body["tariff"] == "Basic"
        assert body["holders"] == []
        assert body["rowVersion"] == 1

    async def test_duplicate_number_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        await create_account(async_client, auth_headers)

        response = await async_client.post(
            "/api/v1/accounts", json={"number": "ACC-0001", "accountType": "Joint"}, headers=auth_headers
        )

        assert response.status_code == 409
        assert "ACC-0001" in response.json()["detail"]

    async def test_update_account(self, async_client: AsyncClient, auth_headers: dict):
        created = await create_account(async_client, auth_headers)

        response = await async_client.put(
            f"/api/v1/accounts/{created['id']}",
            json={
                "number": "ACC-0001",
                "accountType": "Individual",
                "status": "Blocked",
                "tariff": "Premium",
                "comment": "Blocked pending review",
                "rowVersion": created["rowVersion"],
            },
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "Blocked"
        assert body["tariff"] == "Premium"
        assert body["rowVersion"] == 2

    async def test_delete_account(self, async_client: AsyncClient, auth_headers: dict):
        created = await create_account(async_client, auth_headers)

        response = await async_client.delete(f"/api/v1/accounts/{created['id']}", headers=auth_headers)
        assert response.status_code == 204

        response = await async_client.get(f"/api/v1/accounts/{created['id']}", headers=auth_headers)
        assert response.status_code == 404

    async def test_list_accounts_filters(self, async_client: AsyncClient, auth_headers: dict):
        await create_account(async_client, auth_headers, number="ACC-0001")
        await create_account(async_client, auth_headers, number="ACC-0002", accountType="Joint")
        await create_account(async_client, auth_headers, number="IRA-0001", accountType="IRA")

        response = await async_client.get("/api/v1/accounts?accountType=Joint&accountType=IRA", headers=auth_headers)
        assert [item["number"] for item in response.json()["items"]] == ["ACC-0002", "IRA-0001"]

        response = await async_client.get("/api/v1/accounts?number=acc", headers=auth_headers)
        assert response.json()["totalCount"] == 2


@pytest.mark.asyncio
class TestAccountHolders:
    async def test_set_holders(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)
        jane = await create_client(async_client, auth_headers, "jane@example.com", "Jane", "Doe")
        john = await create_client(async_client, auth_headers, "john@example.com", "John", "Smith")

        response = await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [
                {"clientId": john["id"], "role": "Beneficiary"},
                {"clientId": jane["id"], "role": "Owner", "isPrimary": True},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        holders = response.json()["holders"]
        # Primary holder first
        assert [(h["clientDisplayName"], h["role"], h["isPrimary"]) for h in holders] == [
            ("Jane Doe", "Owner", True),
            ("John Smith", "Beneficiary", False),
        ]

        listing = await async_client.get("/api/v1/accounts", headers=auth_headers)
        assert listing.json()["items"][0]["holderCount"] == 2

    async def test_same_client_may_hold_several_roles(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)
        jane = await create_client(async_client, auth_headers, "jane@example.com", "Jane", "Doe")

        response = await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [
                {"clientId": jane["id"], "role": "Owner", "isPrimary": True},
                {"clientId": jane["id"], "role": "Trustee"},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert len(response.json()["holders"]) == 2

    async def test_duplicate_holder_role_is_rejected(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)
        jane = await create_client(async_client, auth_headers, "jane@example.com", "Jane", "Doe")

        response = await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [
                {"clientId": jane["id"], "role": "Owner"},
                {"clientId": jane["id"], "role": "Owner"},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "holders" in response.json()["errors"]

    async def test_two_primary_holders_are_rejected(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)
        jane = await create_client(async_client, auth_headers, "jane@example.com", "Jane", "Doe")
        john = await create_client(async_client, auth_headers, "john@example.com", "John", "Smith")

        response = await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [
                {"clientId": jane["id"], "role": "Owner", "isPrimary": True},
                {"clientId": john["id"], "role": "Owner", "isPrimary": True},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 400

    async def test_unknown_client_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)

        response = await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [{"clientId": "00000000-0000-0000-0000-000000000007", "role": "Owner"}]},
            headers=auth_headers,
        )

        assert response.status_code == 409

    async def test_replacing_holders_removes_missing_ones(self, async_client: AsyncClient, auth_headers: dict):
        account = await create_account(async_client, auth_headers)
        jane = await create_client(async_client, auth_headers, "jane@example.com", "Jane", "Doe")
        john = await create_client(async_client, auth_headers, "john@example.com", "John", "Smith")
        url = f"/api/v1/accounts/{account['id']}/holders"

        await async_client.put(url, json={"holders": [
            {"clientId": jane["id"], "role": "Owner"},
            {"clientId": john["id"], "role": "Beneficiary"},
        ]}, headers=auth_headers)
        response = await async_client.put(url, json={"holders": [
            {"clientId": john["id"], "role": "Beneficiary"},
        ]}, headers=auth_headers)

        assert [h["clientId"] for h in response.json()["holders"]] == [john["id"]]

        jane_accounts = await async_client.get(f"/api/v1/clients/{jane['id']}/accounts", headers=auth_headers)
        assert jane_accounts.json() == []
