"""Tests for API key, session and GitHub OAuth authentication."""
import json
from urllib.parse import parse_qs, urlparse

import bcrypt
import httpx
import pytest
from httpx import AsyncClient

from catalogue_console.auth.github import GitHubOAuthClient, set_github_client
from tests.conftest import (
    TEST_ADMIN_KEY,
    TEST_EDITOR_KEY,
    TEST_READONLY_KEY,
    TEST_REVOKED_KEY,
    app_client,
    get_test_api_keys_config,
    session_headers,
)


async def _login(client: AsyncClient, api_key: str) -> str:
    response = await client.post("/api/auth/session", json={"api_key": api_key})
    assert response.status_code == 200
    session_id = response.cookies.get("console_session")
    assert session_id
    # Present the cookie explicitly from here on
    client.cookies.clear()
    return session_id


class TestAPIKeyAuth:
    """Tests for the X-API-Key header."""

    async def test_no_credentials(self, client_with_auth: AsyncClient):
        response = await client_with_auth.get("/api/catalogue/furnishers")
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    async def test_invalid_key(self, client_with_auth: AsyncClient, invalid_headers):
        response = await client_with_auth.get("/api/catalogue/furnishers", headers=invalid_headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"
        assert response.headers["www-authenticate"] == "ApiKey"

    async def test_revoked_key_looks_invalid(self, client_with_auth: AsyncClient, revoked_headers):
        response = await client_with_auth.get("/api/catalogue/furnishers", headers=revoked_headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"

    async def test_readonly_can_read(self, client_with_auth: AsyncClient, readonly_headers):
        response = await client_with_auth.get("/api/catalogue/furnishers", headers=readonly_headers)
        assert response.status_code == 200

    async def test_readonly_cannot_write(self, client_with_auth: AsyncClient, readonly_headers):
        response = await client_with_auth.post(
            "/api/catalogue/furnishers", json={"name": "Acme"}, headers=readonly_headers
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    async def test_editor_can_write(self, client_with_auth: AsyncClient, editor_headers):
        response = await client_with_auth.post(
            "/api/catalogue/furnishers", json={"name": "Acme"}, headers=editor_headers
        )
        assert response.status_code == 200
        assert response.json()["createdBy"]["id"] == "test-editor"

    async def test_editor_cannot_administer(self, client_with_auth: AsyncClient, editor_headers):
        response = await client_with_auth.get("/api/admin/config", headers=editor_headers)
        assert response.status_code == 403

    async def test_health_is_exempt(self, client_with_auth: AsyncClient, invalid_headers):
        response = await client_with_auth.get("/healthz", headers=invalid_headers)
        assert response.status_code == 200


class TestFormOwnership:
    """Forms are private to their owner until published."""

    async def test_other_editor_cannot_see_draft(
        self, client_with_auth: AsyncClient, editor_headers, admin_headers
    ):
        form = (await client_with_auth.post(
            "/api/forms", json={"title": "Private"}, headers=editor_headers
        )).json()
        assert form["ownerId"] == "test-editor"

        response = await client_with_auth.get(f"/api/forms/{form['id']}", headers=admin_headers)
        assert response.status_code == 403

        listed = await client_with_auth.get("/api/forms", headers=admin_headers)
        assert listed.json() == []

    async def test_public_routes_need_no_credentials(
        self, client_with_auth: AsyncClient, editor_headers
    ):
        form = (await client_with_auth.post(
            "/api/forms", json={"title": "Public"}, headers=editor_headers
        )).json()
        form = (await client_with_auth.put(
            f"/api/forms/{form['id']}/publish", headers=editor_headers
        )).json()

        response = await client_with_auth.get(f"/api/forms/slug/{form['slug']}")
        assert response.status_code == 200

        response = await client_with_auth.post(
            f"/api/forms/{form['id']}/submissions", json={"fieldValues": {"a": 1}}
        )
        assert response.status_code == 201

    async def test_readonly_may_list_forms(self, client_with_auth: AsyncClient, readonly_headers):
        response = await client_with_auth.get("/api/forms", headers=readonly_headers)
        assert response.status_code == 200

        response = await client_with_auth.post(
            "/api/forms", json={"title": "Nope"}, headers=readonly_headers
        )
        assert response.status_code == 403

    async def test_key_without_role_cannot_read_forms(self, temp_dir):
        config = get_test_api_keys_config()
        config["keys"].append({
            "id": "test-unassigned",
            "name": "Unassigned",
            "hash": bcrypt.hashpw(b"unassigned-key", bcrypt.gensalt(rounds=4)).decode(),
            "roles": [],
        })
        async with app_client(temp_dir, auth_enabled=True, CONSOLE_API_KEYS=json.dumps(config)) as client:
            headers = {"X-API-Key": "unassigned-key"}
            assert (await client.get("/api/forms", headers=headers)).status_code == 403
            assert (await client.get("/api/submissions", headers=headers)).status_code == 403
            assert (await client.get(
                "/api/submissions", headers={"X-API-Key": TEST_READONLY_KEY}
            )).status_code == 200


class TestSessionLogin:
    """Tests for API key to session cookie exchange."""

    async def test_login_success(self, client_with_auth: AsyncClient):
        response = await client_with_auth.post(
            "/api/auth/session", json={"api_key": TEST_EDITOR_KEY}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["key_id"] == "test-editor"
        assert data["roles"] == ["console:editor"]
        assert data["expires_at"]

        set_cookie = response.headers["set-cookie"]
        assert "console_session=" in set_cookie
        assert "httponly" in set_cookie.lower()

    async def test_missing_key(self, client_with_auth: AsyncClient):
        response = await client_with_auth.post("/api/auth/session", json={})
        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_invalid_and_revoked_keys(self, client_with_auth: AsyncClient):
        for key in ("not-a-key", TEST_REVOKED_KEY):
            response = await client_with_auth.post("/api/auth/session", json={"api_key": key})
            assert response.status_code == 401
            assert response.json()["success"] is False

    async def test_session_cookie_authenticates(self, client_with_auth: AsyncClient):
        session_id = await _login(client_with_auth, TEST_EDITOR_KEY)

        response = await client_with_auth.get(
            "/api/catalogue/furnishers", headers=session_headers(session_id, csrf=False)
        )
        assert response.status_code == 200

        response = await client_with_auth.post(
            "/api/catalogue/furnishers", json={"name": "Acme"}, headers=session_headers(session_id)
        )
        assert response.status_code == 200

    async def test_cookie_write_requires_csrf_header(self, client_with_auth: AsyncClient):
        session_id = await _login(client_with_auth, TEST_EDITOR_KEY)

        response = await client_with_auth.post(
            "/api/catalogue/furnishers",
            json={"name": "Acme"},
            headers=session_headers(session_id, csrf=False),
        )
        assert response.status_code == 403
        assert "CSRF header required" in response.json()["detail"]

    async def test_public_submission_ignores_session_cookie(self, client_with_auth: AsyncClient):
        session_id = await _login(client_with_auth, TEST_EDITOR_KEY)
        form = (await client_with_auth.post(
            "/api/forms", json={"title": "Open Form"}, headers=session_headers(session_id)
        )).json()
        await client_with_auth.put(
            f"/api/forms/{form['id']}/publish", headers=session_headers(session_id)
        )

        response = await client_with_auth.post(
            f"/api/forms/{form['id']}/submissions",
            json={"fieldValues": {"a": 1}},
            headers=session_headers(session_id, csrf=False),
        )
        assert response.status_code == 201

    async def test_status(self, client_with_auth: AsyncClient):
        response = await client_with_auth.get("/api/auth/status")
        assert response.json()["authenticated"] is False
        assert response.json()["github_oauth_enabled"] is False

        session_id = await _login(client_with_auth, TEST_ADMIN_KEY)
        response = await client_with_auth.get(
            "/api/auth/status", headers=session_headers(session_id)
        )
        data = response.json()
        assert data["authenticated"] is True
        assert data["method"] == "session"
        assert data["key_id"] == "test-admin"

        response = await client_with_auth.get(
            "/api/auth/status", headers={"X-API-Key": TEST_EDITOR_KEY}
        )
        assert response.json()["method"] == "api_key"

    async def test_logout(self, client_with_auth: AsyncClient):
        session_id = await _login(client_with_auth, TEST_EDITOR_KEY)

        response = await client_with_auth.post(
            "/api/auth/logout", headers=session_headers(session_id)
        )
        assert response.json() == {"success": True, "message": "Logged out successfully"}

        response = await client_with_auth.get(
            "/api/catalogue/furnishers", headers=session_headers(session_id)
        )
        assert response.status_code == 401

    async def test_rate_limited_after_repeated_failures(self, client_with_auth: AsyncClient):
        for _ in range(5):
            response = await client_with_auth.post("/api/auth/session", json={"api_key": "wrong"})
            assert response.status_code == 401

        response = await client_with_auth.post(
            "/api/auth/session", json={"api_key": TEST_ADMIN_KEY}
        )
        assert response.status_code == 429
        assert response.json()["retry_after"] > 0
        assert int(response.headers["retry-after"]) > 0


# =============================================================================
# GitHub OAuth
# =============================================================================


def _github_handler(repo_status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gho_test"})
        if request.url.path == "/user":
            assert request.headers["authorization"] == "Bearer gho_test"
            return httpx.Response(200, json={"id": 1, "login": "Octocat", "name": "Mona"})
        if request.url.path == "/repos/acme/governance":
            return httpx.Response(repo_status, json={})
        return httpx.Response(500)

    return handler


def _install_client(repo_status: int = 200) -> None:
    set_github_client(GitHubOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        repo_owner="acme",
        repo_name="governance",
        transport=httpx.MockTransport(_github_handler(repo_status)),
    ))


@pytest.fixture
async def github_client(temp_dir):
    async with app_client(
        temp_dir,
        auth_enabled=True,
        GITHUB_CLIENT_ID="client-id",
        GITHUB_CLIENT_SECRET="client-secret",
        ADMIN_USERS="octocat",
    ) as async_client:
        yield async_client


async def _start_login(client: AsyncClient, redirect_after: str = "/forms") -> str:
    response = await client.get("/api/auth/login", params={"redirect_after": redirect_after})
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.path == "/login/oauth/authorize"
    return parse_qs(location.query)["state"][0]


class TestGitHubOAuth:
    """Tests for the GitHub login flow against a mocked GitHub."""

    async def test_disabled_without_client_config(self, client_with_auth: AsyncClient):
        response = await client_with_auth.get("/api/auth/login")
        assert response.status_code == 400
        assert response.json()["detail"] == "GitHub login is not enabled"

    async def test_rejects_offsite_redirect(self, github_client: AsyncClient):
        _install_client()
        response = await github_client.get(
            "/api/auth/login", params={"redirect_after": "//evil.example"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid redirect URL"

    async def test_full_login(self, github_client: AsyncClient):
        _install_client()
        state = await _start_login(github_client)

        response = await github_client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/forms"
        session_id = response.cookies.get("console_session")
        assert session_id
        github_client.cookies.clear()

        status = (await github_client.get(
            "/api/auth/status", headers=session_headers(session_id)
        )).json()
        assert status["key_id"] == "github:Octocat"
        assert status["login"] == "Octocat"
        assert status["roles"] == ["console:admin"]
        assert status["github_oauth_enabled"] is True

        response = await github_client.get(
            "/api/admin/config", headers=session_headers(session_id)
        )
        assert response.status_code == 200

    async def test_state_is_single_use(self, github_client: AsyncClient):
        _install_client()
        state = await _start_login(github_client)
        await github_client.get("/api/auth/callback", params={"code": "abc", "state": state})
        github_client.cookies.clear()

        response = await github_client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=invalid_state"

    async def test_provider_error(self, github_client: AsyncClient):
        _install_client()
        response = await github_client.get(
            "/api/auth/callback", params={"error": "access_denied"}
        )
        assert response.headers["location"] == "/login?error=oauth_failed"

    async def test_no_repository_access(self, github_client: AsyncClient):
        _install_client(repo_status=404)
        state = await _start_login(github_client)

        response = await github_client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=no_repo_access"
        assert response.cookies.get("console_session") is None
