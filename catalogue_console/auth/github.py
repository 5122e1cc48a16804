"""GitHub OAuth login.

Flow: ``/api/auth/login`` stores a one-time state and redirects to GitHub;
``/api/auth/callback`` checks the state, exchanges the code for a token,
fetches the user and (when a repository is configured) confirms the user can
read it. Access to the repository is what grants access to the console.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from catalogue_console.auth.api_key import GITHUB_KEY_PREFIX, Principal
from catalogue_console.auth.roles import Role

log = logging.getLogger(__name__)

OAUTH_SCOPE = "read:user repo"


class GitHubOAuthError(Exception):
    """Login failed. ``reason`` is a short code suitable for a redirect query."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass
class GitHubUser:
    id: int
    login: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


def principal_for(user: GitHubUser, admin_users: list[str]) -> Principal:
    """Map a GitHub user to a console principal.

    Logins in ``admin_users`` (case-insensitive) get the admin role; everyone
    else who passed the repository check is an editor.
    """
    role = Role.ADMIN if user.login.lower() in admin_users else Role.EDITOR
    return Principal(
        key_id=f"{GITHUB_KEY_PREFIX}{user.login}",
        name=user.name or user.login,
        login=user.login,
        roles={role.value},
    )


class OAuthStateStore:
    """One-time OAuth ``state`` values with expiry."""

    def __init__(self, ttl_seconds: int = 600):
        self._ttl = ttl_seconds
        self._states: dict[str, tuple[float, str | None]] = {}
        self._lock = asyncio.Lock()

    async def issue(self, redirect_after: str | None = None) -> str:
        state = secrets.token_urlsafe(24)
        now = time.time()
        async with self._lock:
            # Drop expired states on the way in
            self._states = {k: v for k, v in self._states.items() if v[0] > now}
            self._states[state] = (now + self._ttl, redirect_after)
        return state

    async def consume(self, state: str | None) -> tuple[bool, str | None]:
        """Validate and invalidate ``state``.

        Returns:
            ``(valid, redirect_after)``
        """
        if not state:
            return False, None
        async with self._lock:
            entry = self._states.pop(state, None)
        if entry is None or entry[0] < time.time():
            return False, None
        return True, entry[1]


class GitHubOAuthClient:
    """Talks to GitHub's OAuth and REST endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        repo_owner: str | None = None,
        repo_name: str | None = None,
        api_url: str = "https://api.github.com",
        web_url: str = "https://github.com",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.repo_owner = repo_owner
        self.repo_name = repo_name
        self.api_url = api_url.rstrip("/")
        self.web_url = web_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def authorize_url(self, redirect_uri: str, state: str) -> str:
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": OAUTH_SCOPE,
            "state": state,
        })
        return f"{self.web_url}/login/oauth/authorize?{query}"

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an access token."""
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.web_url}/login/oauth/access_token",
                    headers={"Accept": "application/json"},
                    json={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                    },
                )
                response.raise_for_status()
                data: dict[str, Any] = response.json()
        except httpx.HTTPError as e:
            raise GitHubOAuthError("oauth_failed", f"Token exchange failed: {e}") from e

        if data.get("error") or not data.get("access_token"):
            log.warning(f"GitHub OAuth error: {data.get('error')}")
            raise GitHubOAuthError("oauth_failed", data.get("error_description") or "OAuth failed")
        return data["access_token"]

    async def fetch_user(self, token: str) -> GitHubUser:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.api_url}/user", headers=self._auth(token))
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise GitHubOAuthError("auth_failed", f"Failed to fetch GitHub user: {e}") from e

        return GitHubUser(
            id=data["id"],
            login=data["login"],
            name=data.get("name"),
            email=data.get("email"),
            avatar_url=data.get("avatar_url"),
        )

    async def check_repo_access(self, token: str) -> None:
        """Raise unless the token can read the configured repository."""
        if not (self.repo_owner and self.repo_name):
            return

        url = f"{self.api_url}/repos/{self.repo_owner}/{self.repo_name}"
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._auth(token))
        except httpx.RequestError as e:
            raise GitHubOAuthError("auth_failed", f"Repository check failed: {e}") from e

        if response.status_code in (403, 404):
            raise GitHubOAuthError("no_repo_access", "No access to the governance repository")
        if response.is_error:
            raise GitHubOAuthError(
                "auth_failed", f"Repository check failed: HTTP {response.status_code}"
            )

    async def authenticate(self, code: str) -> GitHubUser:
        """Run the whole post-redirect flow for ``code``."""
        token = await self.exchange_code(code)
        user = await self.fetch_user(token)
        await self.check_repo_access(token)
        log.info(f"GitHub login for {user.login}")
        return user

    @staticmethod
    def _auth(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
        }


# =============================================================================
# GLOBAL SINGLETONS
# =============================================================================

_github_client: GitHubOAuthClient | None = None
_state_store: OAuthStateStore | None = None


def get_github_client() -> GitHubOAuthClient | None:
    """The configured OAuth client, or None when GitHub login is disabled."""
    global _github_client

    from catalogue_console.config import (
        GITHUB_API_URL,
        GITHUB_CLIENT_ID,
        GITHUB_CLIENT_SECRET,
        GITHUB_OAUTH_ENABLED,
        GITHUB_REPO_NAME,
        GITHUB_REPO_OWNER,
        GITHUB_WEB_URL,
    )

    if not GITHUB_OAUTH_ENABLED:
        return None

    if _github_client is None:
        _github_client = GitHubOAuthClient(
            client_id=GITHUB_CLIENT_ID,
            client_secret=GITHUB_CLIENT_SECRET,
            repo_owner=GITHUB_REPO_OWNER,
            repo_name=GITHUB_REPO_NAME,
            api_url=GITHUB_API_URL,
            web_url=GITHUB_WEB_URL,
        )
    return _github_client


def set_github_client(client: GitHubOAuthClient | None) -> None:
    """Install a specific client (tests inject one with a mock transport)."""
    global _github_client
    _github_client = client


def get_oauth_state_store() -> OAuthStateStore:
    global _state_store

    if _state_store is None:
        from catalogue_console.config import OAUTH_STATE_TTL_SECONDS

        _state_store = OAuthStateStore(ttl_seconds=OAUTH_STATE_TTL_SECONDS)
    return _state_store


def reset_github() -> None:
    """Reset the OAuth singletons (for testing)."""
    global _github_client, _state_store
    _github_client = None
    _state_store = None
