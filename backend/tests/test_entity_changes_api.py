"""
Tests for the change history endpoints.

Paging on both endpoints counts operations (one per write request), not the
field rows underneath them.
"""
import pytest
from httpx import AsyncClient


JANE = {"clientType": "Individual", "email": "jane@example.com", "firstName": "Jane", "lastName": "Doe"}
JOHN = {"clientType": "Individual", "email": "john@example.com", "firstName": "John", "lastName": "Smith"}


async def create_client(async_client: AsyncClient, headers: dict, payload: dict) -> dict:
    response = await async_client.post("/api/v1/clients", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def update_client(async_client: AsyncClient, headers: dict, client: dict, **changes) -> dict:
    payload = {key: client[key] for key in ("clientType", "email", "firstName", "lastName")}
    payload.update(changes, rowVersion=client["rowVersion"])
    response = await async_client.put(f"/api/v1/clients/{client['id']}", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def history_url(client_id: str, **params) -> str:
    query = "&".join(f"{key}={value}" for key, value in params.items())
    url = f"/api/v1/entity-changes?entityType=Client&entityId={client_id}"
    return f"{url}&{query}" if query else url


@pytest.mark.asyncio
class TestEntityHistory:
    async def test_history_of_created_client(self, async_client: AsyncClient, auth_headers: dict):
        client = await create_client(async_client, auth_headers, JANE)

        response = await async_client.get(history_url(client["id"]), headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["totalCount"] == 1
        operation = body["items"][0]
        assert operation["changeType"] == "Created"
        assert operation["userName"] == "admin"
        assert operation["entityDisplayName"] == "Jane Doe"
        assert len(operation["changes"]) == 1
        fields = {f["fieldName"]: f["newValue"] for f in operation["changes"][0]["fields"]}
        assert fields["email"] == "jane@example.com"
        assert fields["id"] == client["id"]

    async def test_operations_are_newest_first(self, async_client: AsyncClient, auth_headers: dict):
        client = await create_client(async_client, auth_headers, JANE)
        await update_client(async_client, auth_headers, client, phone="555-0100")

        items = (await async_client.get(history_url(client["id"]), headers=auth_headers)).json()["items"]

        assert [op["changeType"] for op in items] == ["Modified", "Created"]
        change = items[0]["changes"][0]
        assert change["relatedEntityType"] is None
        assert change["fields"] == [
            {"fieldName": "phone", "changeType": "Modified", "oldValue": None, "newValue": "555-0100"},
        ]

    async def test_sort_by_timestamp(self, async_client: AsyncClient, auth_headers: dict):
        client = await create_client(async_client, auth_headers, JANE)
        await update_client(async_client, auth_headers, client, phone="555-0100")

        oldest_first = (await async_client.get(
            history_url(client["id"], sort="timestamp"), headers=auth_headers
        )).json()["items"]
        newest_first = (await async_client.get(
            history_url(client["id"], sort="-timestamp"), headers=auth_headers
        )).json()["items"]

        assert [op["changeType"] for op in oldest_first] == ["Created", "Modified"]
        assert [op["changeType"] for op in newest_first] == ["Modified", "Created"]

    async def test_paging_counts_operations(self, async_client: AsyncClient, auth_headers: dict):
        client = await create_client(async_client, auth_headers, JANE)
        for phone in ("1", "2", "3", "4"):
            client = await update_client(async_client, auth_headers, client, phone=phone)

        seen = []
        for page in (1, 2, 3):
            body = (await async_client.get(
                history_url(client["id"], page=page, pageSize=2), headers=auth_headers
            )).json()
            assert body["totalCount"] == 5
            assert body["totalPages"] == 3
            seen.extend(op["operationId"] for op in body["items"])

        assert len(seen) == 5
        assert len(set(seen)) == 5

    async def test_page_past_the_end_is_empty(self, async_client: AsyncClient, auth_headers: dict):
        client = await create_client(async_client, auth_headers, JANE)

        body = (await async_client.get(history_url(client["id"], page=4), headers=auth_headers)).json()

        assert body["items"] == []
        assert body["totalCount"] == 1

    async def test_mixed_operation_is_modified(
        self, async_client: AsyncClient, auth_headers: dict, reference_data
    ):
        client = await create_client(async_client, auth_headers, JANE)

        await update_client(
            async_client,
            auth_headers,
            client,
            phone="555-0100",
            addresses=[{
                "type": "Mailing",
                "line1": "9 Elm St",
                "city": "Portland",
                "countryId": str(reference_data.us_id),
            }],
        )

        operation = (await async_client.get(history_url(client["id"]), headers=auth_headers)).json()["items"][0]
        assert operation["changeType"] == "Modified"
        groups = {(g["relatedEntityType"], g["changeType"]) for g in operation["changes"]}
        assert groups == {(None, "Modified"), ("ClientAddress", "Created")}
        address = next(g for g in operation["changes"] if g["relatedEntityType"] == "ClientAddress")
        assert address["relatedEntityDisplayName"] == "Mailing, 9 Elm St, Portland"
        country = next(f for f in address["fields"] if f["fieldName"] == "country_id")
        assert country["newValue"] == "United States"

    async def test_entity_type_is_required(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.get("/api/v1/entity-changes?entityId=abc", headers=auth_headers)

        assert response.status_code == 400
        assert "entityType" in response.json()["errors"]

    async def test_viewer_cannot_read_history(self, async_client: AsyncClient, viewer_user):
        response = await async_client.get(history_url("abc"), headers=viewer_user.headers)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestGlobalFeed:
    async def test_feed_lists_one_item_per_operation_and_entity(
        self, async_client: AsyncClient, auth_headers: dict
    ):
        jane = await create_client(async_client, auth_headers, JANE)
        await create_client(async_client, auth_headers, JOHN)
        await update_client(async_client, auth_headers, jane, phone="555-0100")

        body = (await async_client.get("/api/v1/entity-changes/all?userName=admin", headers=auth_headers)).json()

        assert body["totalCount"] == 3
        assert [(op["entityDisplayName"], op["changeType"]) for op in body["items"]] == [
            ("Jane Doe", "Modified"),
            ("John Smith", "Created"),
            ("Jane Doe", "Created"),
        ]
        assert body["items"][0]["entityType"] == "Client"
        assert body["items"][0]["entityId"] == jane["id"]

    async def test_feed_filters(self, async_client: AsyncClient, auth_headers: dict):
        await create_client(async_client, auth_headers, JANE)
        john = await create_client(async_client, auth_headers, JOHN)
        await async_client.post(
            "/api/v1/accounts", json={"number": "ACC-0001", "accountType": "Individual"}, headers=auth_headers
        )
        await async_client.delete(f"/api/v1/clients/{john['id']}", headers=auth_headers)

        url = "/api/v1/entity-changes/all"
        response = await async_client.get(f"{url}?entityType=Account", headers=auth_headers)
        assert [op["entityDisplayName"] for op in response.json()["items"]] == ["ACC-0001"]

        response = await async_client.get(f"{url}?changeType=Deleted", headers=auth_headers)
        assert [(op["entityDisplayName"], op["changeType"]) for op in response.json()["items"]] == [
            ("John Smith", "Deleted"),
        ]

        response = await async_client.get(f"{url}?userName=nobody", headers=auth_headers)
        assert response.json()["totalCount"] == 0

        response = await async_client.get(f"{url}?from=2999-01-01T00:00:00Z", headers=auth_headers)
        assert response.json()["totalCount"] == 0

        response = await async_client.get(f"{url}?to=2000-01-01T00:00:00Z", headers=auth_headers)
        assert response.json()["totalCount"] == 0

        response = await async_client.get(f"{url}?q=smith", headers=auth_headers)
        assert response.json()["totalCount"] == 2

    async def test_feed_text_filter_skips_related_entities(
        self, async_client: AsyncClient, auth_headers: dict, reference_data
    ):
        await create_client(async_client, auth_headers, {
            **JANE,
            "addresses": [{
                "type": "Mailing",
                "line1": "9 Elm St",
                "city": "Portland",
                "countryId": str(reference_data.us_id),
            }],
        })

        url = "/api/v1/entity-changes/all"
        response = await async_client.get(f"{url}?q=Portland", headers=auth_headers)
        assert response.json()["totalCount"] == 0

        response = await async_client.get(f"{url}?q=jane", headers=auth_headers)
        assert response.json()["totalCount"] == 1

    async def test_feed_sort(self, async_client: AsyncClient, auth_headers: dict):
        await create_client(async_client, auth_headers, JOHN)
        await create_client(async_client, auth_headers, JANE)

        url = "/api/v1/entity-changes/all?userName=admin"
        response = await async_client.get(f"{url}&sort=entityDisplayName", headers=auth_headers)
        assert [op["entityDisplayName"] for op in response.json()["items"]] == ["Jane Doe", "John Smith"]

        response = await async_client.get(f"{url}&sort=-entityDisplayName", headers=auth_headers)
        assert [op["entityDisplayName"] for op in response.json()["items"]] == ["John Smith", "Jane Doe"]

    async def test_holder_change_shows_under_both_roots(self, async_client: AsyncClient, auth_headers: dict):
        jane = await create_client(async_client, auth_headers, JANE)
        account = (await async_client.post(
            "/api/v1/accounts", json={"number": "ACC-0001", "accountType": "Individual"}, headers=auth_headers
        )).json()

        await async_client.put(
            f"/api/v1/accounts/{account['id']}/holders",
            json={"holders": [{"clientId": jane["id"], "role": "Owner", "isPrimary": True}]},
            headers=auth_headers,
        )

        latest = (await async_client.get(
            "/api/v1/entity-changes/all?userName=admin&pageSize=2", headers=auth_headers
        )).json()["items"]
        assert {op["entityType"] for op in latest} == {"Account", "Client"}
        assert len({op["operationId"] for op in latest}) == 1

        client_view = (await async_client.get(history_url(jane["id"]), headers=auth_headers)).json()["items"][0]
        holder = client_view["changes"][0]
        assert holder["relatedEntityType"] == "AccountHolder"
        assert holder["relatedEntityDisplayName"] == "Owner, ACC-0001"

    async def test_paging_with_tied_sort_keys(self, async_client: AsyncClient, auth_headers: dict):
        jane = await create_client(async_client, auth_headers, JANE)
        await create_client(async_client, auth_headers, JOHN)
        await create_client(async_client, auth_headers, {**JANE, "email": "jane2@example.com", "lastName": "Roe"})
        await async_client.post(
            "/api/v1/accounts", json={"number": "ACC-0001", "accountType": "Individual"}, headers=auth_headers
        )
        await update_client(async_client, auth_headers, jane, phone="555-0100")

        seen = []
        for page in (1, 2, 3):
            body = (await async_client.get(
                f"/api/v1/entity-changes/all?userName=admin&sort=entityType&pageSize=2&page={page}",
                headers=auth_headers,
            )).json()
            assert body["totalCount"] == 5
            assert body["totalPages"] == 3
            seen.extend((op["operationId"], op["entityType"], op["entityId"]) for op in body["items"])

        assert len(seen) == 5
        assert len(set(seen)) == 5
        assert [entity_type for _, entity_type, _ in seen] == ["Account"] + ["Client"] * 4
