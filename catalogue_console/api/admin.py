"""Admin endpoints.

Configuration snapshot, runtime log level, API key reload and the audit
buffer. All endpoints require console:admin.
"""

import logging

from fastapi import APIRouter, Query, Request

from catalogue_console.api.models import AuditLogsResponse, AuthReloadResponse, LogLevelRequest
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import Principal, get_api_key_store
from catalogue_console.auth.roles import require_admin

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@router.get("/config")
async def get_config(principal: Principal = require_admin) -> dict:
    """Current configuration, grouped by concern. Secrets are reported as set/unset."""
    from catalogue_console import config

    store = get_api_key_store()
    level = logging.getLogger().getEffectiveLevel()

    return {
        "persistence": {
            "data_dir": str(config.DATA_DIR),
            "assets_path": str(config.ASSETS_PATH),
            "seed_dir": str(config.SEED_DIR),
            "database": config.DATABASE_URL.split(":", 1)[0],
        },
        "catalogue": {
            "search_min_query_length": config.SEARCH_MIN_QUERY_LENGTH,
            "reseed_enabled": bool(config.ADMIN_SECRET),
            "autosave_delay_seconds": config.AUTOSAVE_DELAY_SECONDS,
        },
        "auth": {
            "enabled": config.AUTH_ENABLED,
            "key_count": store.key_count,
            "version": store.version,
            "reload_interval": config.AUTH_RELOAD_INTERVAL,
            "session_ttl_seconds": config.SESSION_TTL_SECONDS,
            "github_oauth_enabled": config.GITHUB_OAUTH_ENABLED,
            "github_repo": (
                f"{config.GITHUB_REPO_OWNER}/{config.GITHUB_REPO_NAME}"
                if config.GITHUB_REPO_OWNER and config.GITHUB_REPO_NAME
                else None
            ),
            "admin_users": config.ADMIN_USERS,
        },
        "environment": {
            "log_level": level,
            "log_level_name": logging.getLevelName(level),
            "audit_enabled": config.AUDIT_ENABLED,
        },
    }


@router.post("/log-level")
async def set_log_level(
    body: LogLevelRequest,
    request: Request,
    principal: Principal = require_admin,
) -> dict:
    """Change the root log level at runtime."""
    level = body.level.upper()
    if level not in VALID_LOG_LEVELS:
        return {
            "success": False,
            "log_level": logging.getLevelName(logging.getLogger().getEffectiveLevel()),
            "message": f"Invalid log level. Must be one of: {list(VALID_LOG_LEVELS)}",
        }

    logging.getLogger().setLevel(getattr(logging, level))
    log.info(f"Log level changed to {level} by {principal.key_id}")
    get_audit_logger().log_access(
        action="admin.log_level",
        principal_id=principal.key_id,
        details={"level": level},
        request=request,
    )
    return {"success": True, "log_level": level, "message": f"Log level set to {level}"}


@router.post("/auth/reload", response_model=AuthReloadResponse)
async def reload_auth_config(
    request: Request,
    principal: Principal = require_admin,
) -> AuthReloadResponse:
    """Re-read the API key configuration, picking up new and revoked keys."""
    store = get_api_key_store()

    if not store.reload():
        return AuthReloadResponse(
            success=False,
            key_count=store.key_count,
            version=store.version,
            message="Failed to reload API keys",
        )

    get_audit_logger().log_access(
        action="auth.reload",
        principal_id=principal.key_id,
        details={"key_count": store.key_count},
        request=request,
    )
    return AuthReloadResponse(
        success=True,
        key_count=store.key_count,
        version=store.version,
        message=f"Reloaded {store.key_count} API keys",
    )


@router.get("/audit-logs", response_model=AuditLogsResponse)
async def get_audit_logs(
    limit: int = Query(100, ge=1, le=1000),
    action: str | None = Query(None, description="Action prefix, e.g. 'form.'"),
    status: str | None = Query(None, description="success, denied or error"),
    principal: Principal = require_admin,
) -> AuditLogsResponse:
    """Recent audit events from the in-memory buffer, newest first."""
    audit = get_audit_logger()
    events = audit.get_recent_events(limit=limit, action_filter=action, status_filter=status)
    stats = audit.get_buffer_stats()

    return AuditLogsResponse(
        events=events,
        count=len(events),
        buffer_size=stats["buffer_size"],
        max_buffer_size=stats["max_buffer_size"],
    )
