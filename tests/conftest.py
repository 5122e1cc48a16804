"""Pytest fixtures for Catalogue Console tests."""
import importlib
import json
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import bcrypt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import sessionmaker

from catalogue_console.audit.logger import reset_audit_logger
from catalogue_console.auth.api_key import Principal, reset_api_key_store
from catalogue_console.auth.github import reset_github
from catalogue_console.auth.session import reset_rate_limiter, reset_session_store
from catalogue_console.catalogue.repository import (
    FurnisherCatalogue,
    build_catalogue_store,
    reset_catalogue,
)
from catalogue_console.db.models import Base
from catalogue_console.db.session import build_engine, init_database, reset_engine
from catalogue_console.dictionary.repository import (
    VocabularyDictionary,
    build_dictionary_store,
    reset_dictionary,
)


BUNDLED_SEEDS = Path(__file__).parent.parent / "catalogue_console" / "seeds"

TEST_ADMIN_SECRET = "test-admin-secret"


# =============================================================================
# Test API Keys (pre-generated for consistent testing)
# =============================================================================

# Raw keys for use in test headers
TEST_ADMIN_KEY = "test-admin-key-12345"
TEST_EDITOR_KEY = "test-editor-key-12345"
TEST_READONLY_KEY = "test-readonly-key-12345"
TEST_REVOKED_KEY = "test-revoked-key-12345"

# Pre-computed bcrypt hashes (cost factor 4 for fast tests)
TEST_ADMIN_HASH = bcrypt.hashpw(TEST_ADMIN_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_EDITOR_HASH = bcrypt.hashpw(TEST_EDITOR_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_READONLY_HASH = bcrypt.hashpw(TEST_READONLY_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_REVOKED_HASH = bcrypt.hashpw(TEST_REVOKED_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()


def get_test_api_keys_config() -> dict:
    """Get test API keys configuration."""
    return {
        "keys": [
            {
                "id": "test-admin",
                "name": "Test Admin",
                "hash": TEST_ADMIN_HASH,
                "roles": ["console:admin"],
                "revoked": False,
            },
            {
                "id": "test-editor",
                "name": "Test Editor",
                "hash": TEST_EDITOR_HASH,
                "roles": ["console:editor"],
                "revoked": False,
            },
            {
                "id": "test-readonly",
                "name": "Test Readonly",
                "hash": TEST_READONLY_HASH,
                "roles": ["console:readonly"],
                "revoked": False,
            },
            {
                "id": "test-revoked",
                "name": "Test Revoked",
                "hash": TEST_REVOKED_HASH,
                "roles": ["console:admin"],
                "revoked": True,
            },
        ],
        "version": 1,
    }


def reset_singletons() -> None:
    reset_api_key_store()
    reset_session_store()
    reset_rate_limiter()
    reset_audit_logger()
    reset_engine()
    reset_catalogue()
    reset_dictionary()
    reset_github()


@asynccontextmanager
async def app_client(
    temp_dir: Path, auth_enabled: bool, **extra_env: str | None
) -> AsyncGenerator[AsyncClient, None]:
    """Test client for the app configured against ``temp_dir``.

    ``extra_env`` overrides the environment; a None value unsets a variable.
    ASGITransport does not run the lifespan, so the database is initialised
    here.
    """
    env: dict[str, str | None] = {
        "CONSOLE_DATA_DIR": str(temp_dir),
        "ASSETS_PATH": str(temp_dir / "assets"),
        "CONSOLE_DATABASE_URL": f"sqlite:///{temp_dir}/console.db",
        "CONSOLE_AUTH_ENABLED": "true" if auth_enabled else "false",
        "CONSOLE_API_KEYS": json.dumps(get_test_api_keys_config()),
        "CONSOLE_SESSION_SECURE": "false",
        "CONSOLE_SEED_DIR": None,
        "ADMIN_SECRET": TEST_ADMIN_SECRET,
        "ADMIN_USERS": None,
        "GITHUB_CLIENT_ID": None,
        "GITHUB_CLIENT_SECRET": None,
        "GITHUB_REPO_OWNER": None,
        "GITHUB_REPO_NAME": None,
        "GITHUB_OAUTH_REDIRECT_URI": None,
    }
    env.update(extra_env)

    # Save original environment
    original = {key: os.environ.get(key) for key in env}
    for key, value in env.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value

    reset_singletons()

    # Reload config and main to pick up the new environment
    import catalogue_console.config as config_module
    importlib.reload(config_module)

    import catalogue_console.main as main_module
    importlib.reload(main_module)

    init_database()

    try:
        async with AsyncClient(
            transport=ASGITransport(app=main_module.app),
            base_url="http://test",
        ) as async_client:
            yield async_client
    finally:
        reset_singletons()

        # Restore original environment
        for key, value in original.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

        importlib.reload(config_module)


# =============================================================================
# Auth Header Fixtures
# =============================================================================

@pytest.fixture
def admin_headers() -> dict:
    """Headers with admin API key."""
    return {"X-API-Key": TEST_ADMIN_KEY}


@pytest.fixture
def editor_headers() -> dict:
    """Headers with editor API key."""
    return {"X-API-Key": TEST_EDITOR_KEY}


@pytest.fixture
def readonly_headers() -> dict:
    """Headers with readonly API key."""
    return {"X-API-Key": TEST_READONLY_KEY}


@pytest.fixture
def revoked_headers() -> dict:
    """Headers with revoked API key."""
    return {"X-API-Key": TEST_REVOKED_KEY}


@pytest.fixture
def invalid_headers() -> dict:
    """Headers with invalid API key."""
    return {"X-API-Key": "invalid-key-that-does-not-exist"}


def session_headers(session_id: str, csrf: bool = True) -> dict:
    """Headers presenting a session cookie, with the CSRF header by default."""
    headers = {"Cookie": f"console_session={session_id}"}
    if csrf:
        headers["X-Requested-With"] = "XMLHttpRequest"
    return headers


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def catalogue(temp_dir: Path) -> FurnisherCatalogue:
    """Furnisher catalogue seeded from the bundled seed file."""
    return FurnisherCatalogue(build_catalogue_store(temp_dir / "catalogue", BUNDLED_SEEDS))


@pytest.fixture
def empty_catalogue(temp_dir: Path) -> FurnisherCatalogue:
    """Furnisher catalogue with no seed file."""
    return FurnisherCatalogue(build_catalogue_store(temp_dir / "empty-catalogue"))


@pytest.fixture
def dictionary(catalogue: FurnisherCatalogue, temp_dir: Path) -> VocabularyDictionary:
    """Vocabulary dictionary seeded from the bundled seed file."""
    return VocabularyDictionary(
        build_dictionary_store(temp_dir / "dictionary", BUNDLED_SEEDS),
        catalogue.categories,
    )


@pytest.fixture
def db_session():
    """Session on a fresh in-memory SQLite database."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def owner() -> Principal:
    return Principal(key_id="owner", name="Form Owner", roles={"console:editor"})


@pytest.fixture
def stranger() -> Principal:
    return Principal(key_id="stranger", name="Someone Else", roles={"console:editor"})


# =============================================================================
# App Client Fixtures
# =============================================================================

@pytest.fixture
async def client(temp_dir: Path) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for API testing with isolated temp storage.

    NOTE: Auth is DISABLED. Every request acts as the "auth-disabled"
    principal with all roles. Use client_with_auth for authentication tests.
    """
    async with app_client(temp_dir, auth_enabled=False) as async_client:
        yield async_client


@pytest.fixture
async def client_with_auth(temp_dir: Path) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with authentication ENABLED.

    Uses test API keys config for authentication testing.
    """
    async with app_client(temp_dir, auth_enabled=True) as async_client:
        yield async_client
