"""API key authentication backend for the catalogue console.

Keys are stored as bcrypt hashes and checked in constant time. The key file
is re-read when its mtime changes (polled) or on an explicit admin reload.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import bcrypt as bcrypt_lib
from starlette.authentication import (
    AuthCredentials,
    AuthenticationBackend,
    AuthenticationError,
    BaseUser,
)
from starlette.requests import HTTPConnection

log = logging.getLogger(__name__)

BCRYPT_COST_FACTOR = 12

# Session cookie name (shared with api/auth.py)
SESSION_COOKIE_NAME = "console_session"

CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
STATE_CHANGING_METHODS = {"POST", "PUT", "DELETE", "PATCH"}

# Anonymous writes; a session cookie sent along without the CSRF header is ignored
PUBLIC_WRITE_ROUTES = (re.compile(r"^/api/forms/[^/]+/submissions/?$"),)

# key_id prefix for principals created by the GitHub OAuth flow
GITHUB_KEY_PREFIX = "github:"


@dataclass
class Principal(BaseUser):
    """Authenticated principal with roles.

    Attributes:
        key_id: Stable identifier ("<api key id>" or "github:<login>"); forms
            are owned by this value
        name: Display name
        login: GitHub login for OAuth principals
        roles: Role strings
    """

    key_id: str
    name: str
    login: str | None = None
    roles: set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def identity(self) -> str:
        return self.key_id

    @property
    def is_admin(self) -> bool:
        return "console:admin" in self.roles


def user_ref(principal: Principal | None) -> dict[str, Any] | None:
    """The ``{id, login, name}`` stamp stored in createdBy/updatedBy."""
    if principal is None:
        return None
    return {
        "id": principal.key_id,
        "login": principal.login or principal.key_id,
        "name": principal.name,
    }


@dataclass(frozen=True)
class KeyConfig:
    """One entry of the ``keys`` array in api_keys.json."""

    id: str
    name: str
    hash: str
    roles: frozenset[str]
    revoked: bool = False

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "KeyConfig":
        return cls(
            id=entry["id"],
            name=entry["name"],
            hash=entry["hash"],
            roles=frozenset(entry.get("roles", [])),
            revoked=bool(entry.get("revoked", False)),
        )

    def matches(self, raw_key: str) -> bool:
        try:
            return bcrypt_lib.checkpw(raw_key.encode(), self.hash.encode())
        except ValueError:
            log.error(f"API key {self.id} has a malformed hash")
            return False


class APIKeyStore:
    """The configured API keys.

    Keys come from inline JSON (``CONSOLE_API_KEYS``) when set, otherwise
    from the key file. A revoked key still matches its hash so the refusal
    can be audited as ``revoked``.
    """

    def __init__(
        self,
        config_path: str | None = None,
        config_json: str | None = None,
        check_interval: float = 60.0,
    ):
        self.config_path = Path(config_path) if config_path else None
        self.config_json = config_json
        self.check_interval = check_interval
        self._keys: dict[str, KeyConfig] = {}
        self._version = 0
        self._file_mtime = 0.0
        self._next_check = 0.0

    def _read(self) -> dict[str, Any] | None:
        try:
            if self.config_json:
                return json.loads(self.config_json)
            if self.config_path is None:
                return {"keys": [], "version": 0}
            document = json.loads(self.config_path.read_text(encoding="utf-8"))
            self._file_mtime = self.config_path.stat().st_mtime
            return document
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Could not read API keys from {self.config_path or 'CONSOLE_API_KEYS'}: {e}")
            return None

    def reload(self) -> bool:
        """Re-read the key configuration.

        Returns False, keeping the current keys, when it cannot be read.
        """
        document = self._read()
        if document is None:
            return False

        keys: dict[str, KeyConfig] = {}
        for entry in document.get("keys", []):
            try:
                key = KeyConfig.from_entry(entry)
            except KeyError as e:
                log.error(f"Skipping API key entry without {e}")
                continue
            keys[key.id] = key

        self._keys = keys
        self._version = document.get("version", 0)
        log.info(f"Loaded {len(keys)} API keys (version {self._version})")
        return True

    def reload_if_stale(self) -> bool:
        """Reload when the key file changed; polled at most once per ``check_interval``."""
        if self.config_json or self.config_path is None:
            return False

        now = time.time()
        if now < self._next_check:
            return False
        self._next_check = now + self.check_interval

        try:
            changed = self.config_path.stat().st_mtime > self._file_mtime
        except OSError as e:
            log.warning(f"Could not stat {self.config_path}: {e}")
            return False
        return changed and self.reload()

    def verify(self, raw_key: str) -> tuple[Principal | None, str | None]:
        """Match ``raw_key`` against the configured hashes.

        Returns:
            ``(principal, None)`` on success, else ``(None, "revoked")`` or
            ``(None, "invalid")``
        """
        key = next((k for k in self._keys.values() if k.matches(raw_key)), None)
        if key is None:
            return None, "invalid"
        if key.revoked:
            log.warning(f"Revoked API key {key.id} presented")
            return None, "revoked"
        return Principal(key_id=key.id, name=key.name, roles=set(key.roles)), None

    def is_active(self, key_id: str) -> bool:
        key = self._keys.get(key_id)
        return key is not None and not key.revoked

    @property
    def key_count(self) -> int:
        return len(self._keys)

    @property
    def version(self) -> int:
        return self._version


_api_key_store: APIKeyStore | None = None


def get_api_key_store() -> APIKeyStore:
    global _api_key_store

    if _api_key_store is None:
        from catalogue_console.config import API_KEYS_FILE, API_KEYS_JSON, AUTH_RELOAD_INTERVAL

        _api_key_store = APIKeyStore(API_KEYS_FILE, API_KEYS_JSON, AUTH_RELOAD_INTERVAL)
        if not _api_key_store.reload():
            log.warning("Starting with no API keys")
    return _api_key_store


def reset_api_key_store() -> None:
    global _api_key_store
    _api_key_store = None


class CSRFError(AuthenticationError):
    """Cookie-authenticated write without the CSRF header."""


class APIKeyBackend(AuthenticationBackend):
    """Session cookie or API key authentication.

    1. ``console_session`` cookie, for the browser console
    2. ``X-API-Key`` header, for scripts and the CLI

    Cookie-authenticated state-changing requests must carry the CSRF header
    (403 otherwise); public submission posts without it run anonymously.
    Requests with no credentials pass through unauthenticated; routes decide.
    """

    def __init__(self, exempt_paths: set[str] | None = None):
        self.exempt_paths = exempt_paths or set()

    async def authenticate(
        self, conn: HTTPConnection
    ) -> tuple[AuthCredentials, Principal] | None:
        path = conn.url.path
        if any(path.startswith(exempt) for exempt in self.exempt_paths):
            return None

        session_id = conn.cookies.get(SESSION_COOKIE_NAME)
        if session_id:
            from catalogue_console.auth.session import get_session_store

            session = await get_session_store().get(session_id)
            if session is not None:
                method = conn.scope.get("method", "GET")
                if method in STATE_CHANGING_METHODS and conn.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
                    if any(route.match(path) for route in PUBLIC_WRITE_ROUTES):
                        return None
                    raise CSRFError("CSRF header required for cookie-authenticated requests")
                return AuthCredentials(list(session.principal.roles)), session.principal

        api_key = conn.headers.get("X-API-Key")
        if not api_key:
            return None

        store = get_api_key_store()
        store.reload_if_stale()

        principal, _error = store.verify(api_key)
        if principal is None:
            # Same message for unknown and revoked keys
            raise AuthenticationError("Invalid API key")

        return AuthCredentials(list(principal.roles)), principal


def hash_api_key(raw_key: str, cost_factor: int = BCRYPT_COST_FACTOR) -> str:
    """Hash an API key with bcrypt."""
    salt = bcrypt_lib.gensalt(rounds=cost_factor)
    return bcrypt_lib.hashpw(raw_key.encode(), salt).decode()
