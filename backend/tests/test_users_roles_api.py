"""
Tests for user, role and permission administration, plus the reference-data
lookups.
"""
import pytest
from httpx import AsyncClient


def user_payload(**overrides) -> dict:
    payload = {
        "username": "trader1",
        "email": "trader1@example.com",
        "password": "TraderPass1!",
        "fullName": "Terry Trader",
    }
    payload.update(overrides)
    return payload


async def role_ids_by_name(async_client: AsyncClient, headers: dict) -> dict[str, str]:
    items = (await async_client.get("/api/v1/roles", headers=headers)).json()["items"]
    return {role["name"]: role["id"] for role in items}


async def permission_ids_by_code(async_client: AsyncClient, headers: dict) -> dict[str, str]:
    items = (await async_client.get("/api/v1/permissions", headers=headers)).json()
    return {permission["code"]: permission["id"] for permission in items}


@pytest.mark.asyncio
class TestUsers:
    async def test_create_user_with_role(self, async_client: AsyncClient, auth_headers: dict):
        roles = await role_ids_by_name(async_client, auth_headers)

        response = await async_client.post(
            "/api/v1/users", json=user_payload(roleIds=[roles["Viewer"]]), headers=auth_headers
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["username"] == "trader1"
        assert body["roles"] == ["Viewer"]
        assert body["isActive"] is True
        assert "password" not in body
        assert "passwordHash" not in body

        login = await async_client.post(
            "/api/v1/auth/login", json={"username": "trader1", "password": "TraderPass1!"}
        )
        assert login.status_code == 200

    async def test_duplicate_username_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/users", json=user_payload(username="admin"), headers=auth_headers
        )

        assert response.status_code == 409
        assert "admin" in response.json()["detail"]

    async def test_duplicate_email_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/users", json=user_payload(email="viewer@example.com"), headers=auth_headers
        )

        assert response.status_code == 409

    async def test_unknown_role_is_rejected(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/users",
            json=user_payload(roleIds=["00000000-0000-0000-0000-000000000004"]),
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "roleIds" in response.json()["errors"]

    async def test_short_password_is_rejected(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/users", json=user_payload(password="short"), headers=auth_headers
        )

        assert response.status_code == 400
        assert "password" in response.json()["errors"]

    async def test_update_user_roles(self, async_client: AsyncClient, auth_headers: dict):
        roles = await role_ids_by_name(async_client, auth_headers)
        created = (await async_client.post(
            "/api/v1/users", json=user_payload(roleIds=[roles["Viewer"]]), headers=auth_headers
        )).json()

        response = await async_client.put(
            f"/api/v1/users/{created['id']}",
            json={
                "email": "trader1@example.com",
                "fullName": "Terry Trader",
                "isActive": False,
                "roleIds": [roles["Admin"]],
                "rowVersion": created["rowVersion"],
            },
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["roles"] == ["Admin"]
        assert body["isActive"] is False
        assert body["rowVersion"] == created["rowVersion"] + 1

    async def test_list_users(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.get("/api/v1/users", headers=auth_headers)

        assert response.status_code == 200
        assert [u["username"] for u in response.json()["items"]] == ["admin", "viewer"]

        response = await async_client.get("/api/v1/users?q=view", headers=auth_headers)
        assert [u["username"] for u in response.json()["items"]] == ["viewer"]

    async def test_delete_user(self, async_client: AsyncClient, auth_headers: dict):
        created = (await async_client.post("/api/v1/users", json=user_payload(), headers=auth_headers)).json()

        response = await async_client.delete(f"/api/v1/users/{created['id']}", headers=auth_headers)
        assert response.status_code == 204

        response = await async_client.get(f"/api/v1/users/{created['id']}", headers=auth_headers)
        assert response.status_code == 404

    async def test_cannot_delete_self(self, async_client: AsyncClient, admin_user):
        response = await async_client.delete(f"/api/v1/users/{admin_user.id}", headers=admin_user.headers)

        assert response.status_code == 409

    async def test_viewer_cannot_manage_users(self, async_client: AsyncClient, viewer_user):
        response = await async_client.get("/api/v1/users", headers=viewer_user.headers)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestRoles:
    async def test_create_role_with_permissions(self, async_client: AsyncClient, auth_headers: dict):
        permissions = await permission_ids_by_code(async_client, auth_headers)

        response = await async_client.post(
            "/api/v1/roles",
            json={
                "name": "Trader",
                "description": "Order desk",
                "permissionIds": [permissions["orders.read"], permissions["orders.create"]],
            },
            headers=auth_headers,
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["isSystem"] is False
        assert body["permissions"] == ["orders.create", "orders.read"]

    async def test_duplicate_role_name_conflicts(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post("/api/v1/roles", json={"name": "Viewer"}, headers=auth_headers)

        assert response.status_code == 409

    async def test_unknown_permission_is_rejected(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.post(
            "/api/v1/roles",
            json={"name": "Trader", "permissionIds": ["00000000-0000-0000-0000-000000000006"]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "permissionIds" in response.json()["errors"]

    async def test_set_role_permissions(self, async_client: AsyncClient, auth_headers: dict):
        permissions = await permission_ids_by_code(async_client, auth_headers)
        roles = await role_ids_by_name(async_client, auth_headers)

        response = await async_client.put(
            f"/api/v1/roles/{roles['Viewer']}/permissions",
            json={"permissionIds": [permissions["clients.read"], permissions["instruments.read"]]},
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        assert response.json()["permissions"] == ["clients.read", "instruments.read"]

    async def test_update_role(self, async_client: AsyncClient, auth_headers: dict):
        created = (await async_client.post("/api/v1/roles", json={"name": "Trader"}, headers=auth_headers)).json()

        response = await async_client.put(
            f"/api/v1/roles/{created['id']}",
            json={"name": "Senior Trader", "rowVersion": created["rowVersion"]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Senior Trader"

    async def test_system_role_cannot_be_deleted(self, async_client: AsyncClient, auth_headers: dict):
        roles = await role_ids_by_name(async_client, auth_headers)

        response = await async_client.delete(f"/api/v1/roles/{roles['Admin']}", headers=auth_headers)

        assert response.status_code == 409

    async def test_delete_role(self, async_client: AsyncClient, auth_headers: dict):
        created = (await async_client.post("/api/v1/roles", json={"name": "Trader"}, headers=auth_headers)).json()

        response = await async_client.delete(f"/api/v1/roles/{created['id']}", headers=auth_headers)

        assert response.status_code == 204
        assert "Trader" not in await role_ids_by_name(async_client, auth_headers)

    async def test_permission_catalogue(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.get("/api/v1/permissions", headers=auth_headers)

        assert response.status_code == 200
        codes = [p["code"] for p in response.json()]
        assert "audit.read" in codes
        assert "clients.delete" in codes
        groups = [p["group"] for p in response.json()]
        assert groups == sorted(groups)


@pytest.mark.asyncio
class TestReferenceData:
    async def test_countries(self, async_client: AsyncClient, auth_headers: dict, reference_data):
        response = await async_client.get("/api/v1/countries", headers=auth_headers)

        assert response.status_code == 200
        assert [c["iso2"] for c in response.json()] == ["DE", "US"]

    async def test_currencies(self, async_client: AsyncClient, viewer_user, reference_data):
        response = await async_client.get("/api/v1/currencies", headers=viewer_user.headers)

        assert response.status_code == 200
        assert [c["code"] for c in response.json()] == ["USD"]

    async def test_reference_data_requires_token(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/countries")

        assert response.status_code == 401
