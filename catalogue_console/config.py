"""Catalogue Console configuration constants.

Environment-based configuration in three tiers:
- CONFIGURABLE: defaults that deployments override through the environment
- POLICY: implementation choices (search threshold, autosave quiet period)
- SECURITY: authentication, sessions and OAuth
"""
import os
from pathlib import Path


# =============================================================================
# PERSISTENCE CONFIGURATION
# =============================================================================

def _get_data_dir() -> Path:
    """Determine data directory based on environment.

    Priority:
    1. CONSOLE_DATA_DIR env var (explicit override)
    2. /data/catalogue-console if it exists (Docker volume mount)
    3. ~/.catalogue-console (local development)
    4. /tmp/catalogue-console (container fallback when home unavailable)
    """
    env_path = os.getenv("CONSOLE_DATA_DIR")
    if env_path:
        return Path(env_path)

    docker_path = Path("/data/catalogue-console")
    if docker_path.exists():
        return docker_path

    try:
        home_path = Path.home() / ".catalogue-console"
        home_path.mkdir(parents=True, exist_ok=True)
        return home_path
    except (OSError, PermissionError):
        return Path("/tmp/catalogue-console")


DATA_DIR: Path = _get_data_dir()

# Root of the JSON document tree (catalogue/ and dictionary/ live below it)
ASSETS_PATH: Path = Path(os.getenv("ASSETS_PATH") or DATA_DIR / "assets")
CATALOGUE_DIR: Path = ASSETS_PATH / "catalogue"
DICTIONARY_DIR: Path = ASSETS_PATH / "dictionary"

# Seed documents bundled with the package
SEED_DIR: Path = Path(os.getenv("CONSOLE_SEED_DIR") or Path(__file__).parent / "seeds")


# =============================================================================
# DATABASE CONFIGURATION (forms and submissions)
# =============================================================================


def _get_database_url() -> str:
    """Get database URL from environment.

    Priority:
    1. CONSOLE_DATABASE_URL - explicit full connection string
    2. DATABASE_URL - conventional platform variable (e.g. managed Postgres)
    3. SQLite fallback for local development
    """
    if url := os.getenv("CONSOLE_DATABASE_URL"):
        return url

    if url := os.getenv("DATABASE_URL"):
        # Platforms still hand out the pre-SQLAlchemy-1.4 scheme
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        return url

    return f"sqlite:///{DATA_DIR}/console.db"


DATABASE_URL: str = _get_database_url()


# =============================================================================
# CATALOGUE POLICY
# =============================================================================

# Queries shorter than this return empty results without touching the store
SEARCH_MIN_QUERY_LENGTH: int = 2

# Shared secret for the reseed endpoints. Unset disables reseeding.
ADMIN_SECRET: str | None = os.getenv("ADMIN_SECRET") or None


# =============================================================================
# FORMS EDITOR
# =============================================================================

# Quiet period before an edited form schema is saved (seconds)
AUTOSAVE_DELAY_SECONDS: float = float(os.getenv("CONSOLE_AUTOSAVE_DELAY", "2.0"))


# =============================================================================
# OPERATIONAL
# =============================================================================

SERVICE_PORT: int = int(os.getenv("CONSOLE_PORT", "8080"))
LOG_LEVEL: str = os.getenv("CONSOLE_LOG_LEVEL", "INFO").upper()
LOG_FILE: str | None = os.getenv("CONSOLE_LOG_FILE") or None

# Audit events are logged and buffered for /api/admin/audit-logs
AUDIT_ENABLED: bool = os.getenv("CONSOLE_AUDIT_ENABLED", "true").lower() == "true"


# =============================================================================
# SECURITY CONFIGURATION
# =============================================================================

def _get_api_keys_file() -> str:
    """Get path to API keys configuration file."""
    return os.getenv(
        "CONSOLE_API_KEYS_FILE",
        str(Path(__file__).parent.parent / "config" / "api_keys.json")
    )


# API key authentication
API_KEYS_FILE: str = _get_api_keys_file()
API_KEYS_JSON: str | None = os.getenv("CONSOLE_API_KEYS")  # Inline JSON override

AUTH_ENABLED: bool = os.getenv("CONSOLE_AUTH_ENABLED", "true").lower() == "true"
AUTH_EXEMPT_PATHS: set[str] = {"/healthz", "/version"}

AUTH_RELOAD_INTERVAL: int = int(os.getenv("CONSOLE_AUTH_RELOAD_INTERVAL", "60"))  # seconds

# GitHub logins granted the admin role (comma-separated, case-insensitive)
ADMIN_USERS: list[str] = [
    u.strip().lower()
    for u in os.getenv("ADMIN_USERS", "").split(",")
    if u.strip()
]


# =============================================================================
# SESSION CONFIGURATION
# =============================================================================

SESSION_TTL_SECONDS: int = int(os.getenv("CONSOLE_SESSION_TTL", "28800"))  # 8 hours
SESSION_COOKIE_SECURE: bool = os.getenv("CONSOLE_SESSION_SECURE", "true").lower() == "true"
SESSION_CLEANUP_INTERVAL: int = int(os.getenv("CONSOLE_SESSION_CLEANUP_INTERVAL", "300"))

LOGIN_RATE_LIMIT_MAX_ATTEMPTS: int = int(os.getenv("CONSOLE_LOGIN_RATE_LIMIT_MAX", "5"))
LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("CONSOLE_LOGIN_RATE_LIMIT_WINDOW", "900"))


# =============================================================================
# GITHUB OAUTH CONFIGURATION
# =============================================================================

GITHUB_CLIENT_ID: str | None = os.getenv("GITHUB_CLIENT_ID")
GITHUB_CLIENT_SECRET: str | None = os.getenv("GITHUB_CLIENT_SECRET")
GITHUB_OAUTH_ENABLED: bool = bool(GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET)

# When both are set, login requires read access to this repository
GITHUB_REPO_OWNER: str | None = os.getenv("GITHUB_REPO_OWNER")
GITHUB_REPO_NAME: str | None = os.getenv("GITHUB_REPO_NAME")

# Explicit callback URL; derived from the request when unset
GITHUB_OAUTH_REDIRECT_URI: str | None = os.getenv("GITHUB_OAUTH_REDIRECT_URI")
GITHUB_API_URL: str = os.getenv("GITHUB_API_URL", "https://api.github.com")
GITHUB_WEB_URL: str = os.getenv("GITHUB_WEB_URL", "https://github.com")

OAUTH_STATE_TTL_SECONDS: int = int(os.getenv("CONSOLE_OAUTH_STATE_TTL", "600"))  # 10 minutes


def get_auth_exempt_paths() -> set[str]:
    """Get the full set of auth-exempt paths based on configuration."""
    exempt = set(AUTH_EXEMPT_PATHS)

    # Login endpoints run before any credential exists
    exempt.add("/api/auth/session")
    exempt.add("/api/auth/login")
    exempt.add("/api/auth/logout")
    exempt.add("/api/auth/callback")
    exempt.add("/api/auth/status")

    return exempt
