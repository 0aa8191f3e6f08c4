"""
Tests for request-level audit logging

Verifies:
- Every mutating request writes exactly one AuditLog row
- Reads write nothing
- Correlation ids are accepted from and echoed to the caller
- Snapshots are sanitized before they are stored
- The audit log read endpoints
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.audit_logger import sanitize_payload
from backoffice.models import AuditLog


CLIENT = {"clientType": "Individual", "email": "jane@example.com", "firstName": "Jane", "lastName": "Doe"}


async def audit_rows(db_session: AsyncSession) -> list[AuditLog]:
    return list((await db_session.execute(select(AuditLog).order_by(AuditLog.created_at))).scalars().all())


class TestSanitizePayload:
    def test_secrets_are_redacted(self):
        result = sanitize_payload({"username": "admin", "password": "hunter2", "refreshToken": "abc"})

        assert result == {"username": "admin", "password": "**REDACTED**", "refreshToken": "**REDACTED**"}

    def test_ssn_keeps_last_four(self):
        assert sanitize_payload({"ssn": "123-45-6789"}) == {"ssn": "**MASKED**6789"}
        assert sanitize_payload({"ssn": "789"}) == {"ssn": "**MASKED**"}
        assert sanitize_payload({"ssn": None}) == {"ssn": None}

    def test_nested_structures(self):
        payload = {
            "client": {"ssn": "123456789", "addresses": [{"line1": "1 Main St", "token": "t"}]},
        }

        result = sanitize_payload(payload)

        assert result["client"]["ssn"] == "**MASKED**6789"
        assert result["client"]["addresses"] == [{"line1": "1 Main St", "token": "**REDACTED**"}]

    def test_long_strings_are_truncated(self):
        result = sanitize_payload({"comment": "x" * 5000})

        assert result["comment"].startswith("x" * 100)
        assert result["comment"].endswith("[TRUNCATED 5000 chars]")

    def test_non_dict_passes_through(self):
        assert sanitize_payload("plain") == "plain"
        assert sanitize_payload(None) is None


@pytest.mark.asyncio
class TestAuditMiddleware:
    async def test_create_writes_one_row(
        self, async_client: AsyncClient, auth_headers: dict, db_session: AsyncSession
    ):
        response = await async_client.post(
            "/api/v1/clients", json={**CLIENT, "ssn": "123-45-6789"}, headers=auth_headers
        )
        assert response.status_code == 201
        client_id = response.json()["id"]

        rows = await audit_rows(db_session)
        assert len(rows) == 1
        entry = rows[0]
        assert entry.action == "clients.create_client"
        assert entry.method == "POST"
        assert entry.path == "/api/v1/clients"
        assert entry.status_code == 201
        assert entry.is_success is True
        assert entry.user_name == "admin"
        assert entry.entity_type == "Client"
        assert entry.entity_id == client_id
        assert entry.before_json is None
        assert entry.after_json["email"] == "jane@example.com"
        assert entry.after_json["ssn"] == "**MASKED**6789"
        assert entry.correlation_id

    async def test_update_records_before_and_after(
        self, async_client: AsyncClient, auth_headers: dict, db_session: AsyncSession
    ):
        created = (await async_client.post("/api/v1/clients", json=CLIENT, headers=auth_headers)).json()

        await async_client.put(
            f"/api/v1/clients/{created['id']}",
            json={**CLIENT, "phone": "555-0100", "rowVersion": created["rowVersion"]},
            headers=auth_headers,
        )

        entry = (await audit_rows(db_session))[-1]
        assert entry.action == "clients.update_client"
        assert entry.before_json["phone"] is None
        assert entry.after_json["phone"] == "555-0100"

    async def test_reads_are_not_logged(
        self, async_client: AsyncClient, auth_headers: dict, db_session: AsyncSession
    ):
        await async_client.get("/api/v1/clients", headers=auth_headers)
        await async_client.get("/api/v1/auth/me", headers=auth_headers)

        assert await audit_rows(db_session) == []

    async def test_failed_request_is_logged(
        self, async_client: AsyncClient, auth_headers: dict, db_session: AsyncSession
    ):
        response = await async_client.delete(
            "/api/v1/clients/00000000-0000-0000-0000-000000000001", headers=auth_headers
        )
        assert response.status_code == 404

        rows = await audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].status_code == 404
        assert rows[0].is_success is False

    async def test_anonymous_login_is_logged_without_secrets(
        self, async_client: AsyncClient, admin_user, db_session: AsyncSession
    ):
        await async_client.post(
            "/api/v1/auth/login", json={"username": admin_user.username, "password": admin_user.password}
        )

        rows = await audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].action == "auth.login"
        assert rows[0].user_id is None
        assert rows[0].after_json is None

    async def test_correlation_id_is_echoed(
        self, async_client: AsyncClient, auth_headers: dict, db_session: AsyncSession
    ):
        response = await async_client.post(
            "/api/v1/clients",
            json=CLIENT,
            headers={**auth_headers, "X-Correlation-Id": "trace-1234"},
        )

        assert response.headers["X-Correlation-Id"] == "trace-1234"
        assert (await audit_rows(db_session))[0].correlation_id == "trace-1234"

    async def test_correlation_id_is_generated(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.get("/api/v1/clients", headers=auth_headers)

        assert len(response.headers["X-Correlation-Id"]) == 32


@pytest.mark.asyncio
class TestAuditLogEndpoints:
    async def test_list_audit_logs(self, async_client: AsyncClient, auth_headers: dict):
        await async_client.post("/api/v1/clients", json=CLIENT, headers=auth_headers)
        await async_client.post(
            "/api/v1/accounts", json={"number": "ACC-0001", "accountType": "Individual"}, headers=auth_headers
        )

        response = await async_client.get("/api/v1/audit", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["totalCount"] == 2
        assert {item["entityType"] for item in body["items"]} == {"Client", "Account"}

        response = await async_client.get("/api/v1/audit?entityType=Account", headers=auth_headers)
        assert [item["action"] for item in response.json()["items"]] == ["accounts.create_account"]

        response = await async_client.get("/api/v1/audit?isSuccess=false", headers=auth_headers)
        assert response.json()["totalCount"] == 0

    async def test_get_audit_log(self, async_client: AsyncClient, auth_headers: dict):
        await async_client.post("/api/v1/clients", json=CLIENT, headers=auth_headers)
        entry_id = (await async_client.get("/api/v1/audit", headers=auth_headers)).json()["items"][0]["id"]

        response = await async_client.get(f"/api/v1/audit/{entry_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["method"] == "POST"

    async def test_unknown_audit_log(self, async_client: AsyncClient, auth_headers: dict):
        response = await async_client.get(
            "/api/v1/audit/00000000-0000-0000-0000-000000000009", headers=auth_headers
        )

        assert response.status_code == 404

    async def test_viewer_cannot_read_audit_log(self, async_client: AsyncClient, viewer_user):
        response = await async_client.get("/api/v1/audit", headers=viewer_user.headers)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"
