"""
Tests for authentication

- login, token claims and the current-user endpoint
- refresh-token rotation and reuse detection
- password change
- login rate limiting
- 401/403 gating
"""
import pytest
from httpx import AsyncClient

from backoffice.core.config import settings
from backoffice.core.security import create_access_token, decode_token, get_password_hash, verify_password


async def login(async_client: AsyncClient, username: str, password: str):
    return await async_client.post("/api/v1/auth/login", json={"username": username, "password": password})


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = get_password_hash("CorrectHorse1")
        assert hashed != "CorrectHorse1"
        assert verify_password("CorrectHorse1", hashed)
        assert not verify_password("WrongHorse1", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestAccessTokens:
    def test_claims_round_trip(self):
        token = create_access_token({"sub": "abc", "unique_name": "admin", "permissions": ["clients.read"]})

        payload = decode_token(token)

        assert payload["sub"] == "abc"
        assert payload["unique_name"] == "admin"
        assert payload["permissions"] == ["clients.read"]
        assert payload["iss"] == settings.JWT_ISSUER
        assert payload["aud"] == settings.JWT_AUDIENCE
        assert payload["jti"]

    def test_tampered_token_is_rejected(self):
        token = create_access_token({"sub": "abc"})
        assert decode_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB")) is None


@pytest.mark.asyncio
class TestLogin:
    async def test_login_returns_tokens(self, async_client: AsyncClient, admin_user):
        response = await login(async_client, admin_user.username, admin_user.password)

        assert response.status_code == 200
        body = response.json()
        assert body["tokenType"] == "Bearer"
        assert body["expiresIn"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert body["refreshToken"]

        claims = decode_token(body["accessToken"])
        assert claims["sub"] == str(admin_user.id)
        assert claims["unique_name"] == "admin"
        assert "clients.create" in claims["permissions"]

    async def test_wrong_password(self, async_client: AsyncClient, admin_user):
        response = await login(async_client, admin_user.username, "wrong-password")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_unknown_user(self, async_client: AsyncClient):
        response = await login(async_client, "nobody", "whatever")

        assert response.status_code == 401

    async def test_login_is_rate_limited(self, async_client: AsyncClient, admin_user):
        for _ in range(settings.LOGIN_RATE_LIMIT):
            response = await login(async_client, admin_user.username, "wrong-password")
            assert response.status_code == 401

        response = await login(async_client, admin_user.username, admin_user.password)

        assert response.status_code == 429
        assert "Retry-After" in response.headers

    async def test_forwarded_header_does_not_reset_limit(self, async_client: AsyncClient, admin_user):
        statuses = []
        for n in range(settings.LOGIN_RATE_LIMIT + 5):
            response = await async_client.post(
                "/api/v1/auth/login",
                json={"username": admin_user.username, "password": "wrong-password"},
                headers={"X-Forwarded-For": f"198.51.100.{n}", "X-Real-IP": f"203.0.113.{n}"},
            )
            statuses.append(response.status_code)

        assert statuses[:settings.LOGIN_RATE_LIMIT] == [401] * settings.LOGIN_RATE_LIMIT
        assert set(statuses[settings.LOGIN_RATE_LIMIT:]) == {429}

    async def test_trusted_proxy_limits_per_forwarded_client(
        self, async_client: AsyncClient, admin_user, monkeypatch
    ):
        monkeypatch.setattr(settings, "TRUSTED_PROXIES", "127.0.0.1")

        async def attempt(client_ip: str):
            return await async_client.post(
                "/api/v1/auth/login",
                json={"username": admin_user.username, "password": "wrong-password"},
                headers={"X-Forwarded-For": client_ip},
            )

        for _ in range(settings.LOGIN_RATE_LIMIT):
            assert (await attempt("198.51.100.1")).status_code == 401

        assert (await attempt("198.51.100.1")).status_code == 429
        assert (await attempt("198.51.100.2")).status_code == 401


@pytest.mark.asyncio
class TestRefreshTokens:
    async def test_refresh_rotates_token(self, async_client: AsyncClient, admin_user):
        tokens = (await login(async_client, admin_user.username, admin_user.password)).json()

        response = await async_client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})

        assert response.status_code == 200
        rotated = response.json()
        assert rotated["refreshToken"] != tokens["refreshToken"]
        assert decode_token(rotated["accessToken"])["sub"] == str(admin_user.id)

    async def test_reusing_rotated_token_revokes_family(self, async_client: AsyncClient, admin_user):
        tokens = (await login(async_client, admin_user.username, admin_user.password)).json()
        rotated = (await async_client.post(
            "/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
        )).json()

        reuse = await async_client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert reuse.status_code == 401
        assert reuse.json()["detail"] == "Token reuse detected"

        # The legitimate successor was revoked as well
        response = await async_client.post("/api/v1/auth/refresh", json={"refreshToken": rotated["refreshToken"]})
        assert response.status_code == 401

    async def test_unknown_refresh_token(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/auth/refresh", json={"refreshToken": "not-a-token"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"


@pytest.mark.asyncio
class TestCurrentUser:
    async def test_me(self, async_client: AsyncClient, admin_user):
        response = await async_client.get("/api/v1/auth/me", headers=admin_user.headers)

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "admin"
        assert body["roles"] == ["Admin"]
        assert "audit.read" in body["permissions"]

    async def test_me_for_viewer(self, async_client: AsyncClient, viewer_user):
        body = (await async_client.get("/api/v1/auth/me", headers=viewer_user.headers)).json()

        assert body["roles"] == ["Viewer"]
        assert body["permissions"] == ["accounts.read", "clients.read"]

    async def test_me_requires_token(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    async def test_garbage_token_is_rejected(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"


@pytest.mark.asyncio
class TestChangePassword:
    async def test_change_password(self, async_client: AsyncClient, admin_user):
        response = await async_client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": admin_user.password, "newPassword": "BrandNewPass1!"},
            headers=admin_user.headers,
        )
        assert response.status_code == 204

        assert (await login(async_client, admin_user.username, admin_user.password)).status_code == 401
        assert (await login(async_client, admin_user.username, "BrandNewPass1!")).status_code == 200

    async def test_wrong_current_password(self, async_client: AsyncClient, admin_user):
        response = await async_client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": "not-it", "newPassword": "BrandNewPass1!"},
            headers=admin_user.headers,
        )

        assert response.status_code == 400
        assert "currentPassword" in response.json()["errors"]

    async def test_change_password_revokes_refresh_tokens(self, async_client: AsyncClient, admin_user):
        tokens = (await login(async_client, admin_user.username, admin_user.password)).json()

        await async_client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": admin_user.password, "newPassword": "BrandNewPass1!"},
            headers=admin_user.headers,
        )

        response = await async_client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert response.status_code == 401
