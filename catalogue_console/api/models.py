"""Pydantic models shared across API routers."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    ok: bool
    catalogue: bool = Field(..., description="Catalogue assets directory is writable")
    database: bool = Field(..., description="Forms database answers queries")


class VersionResponse(BaseModel):
    service: str
    version: str
    git_sha: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class DeleteResponse(BaseModel):
    """Delete result; cascades report what went with the record."""

    success: bool = True
    deleted: Optional[dict[str, int]] = None


class ReseedRequest(BaseModel):
    admin_secret: Optional[str] = Field(None, alias="adminSecret", description="Shared admin secret")


# =============================================================================
# Auth
# =============================================================================


class SessionRequest(BaseModel):
    api_key: Optional[str] = Field(None, description="API key to exchange for a session")


class SessionResponse(BaseModel):
    success: bool
    key_id: Optional[str] = None
    name: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    expires_at: Optional[str] = None


class AuthStatusResponse(BaseModel):
    authenticated: bool
    method: Optional[str] = Field(None, description="'session', 'api_key' or None")
    key_id: Optional[str] = None
    name: Optional[str] = None
    login: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    expires_at: Optional[str] = None
    github_oauth_enabled: bool = False


# =============================================================================
# Admin
# =============================================================================


class LogLevelRequest(BaseModel):
    level: str = Field(..., description="DEBUG, INFO, WARNING or ERROR")


class AuthReloadResponse(BaseModel):
    success: bool
    key_count: int
    version: int
    message: str


class AuditLogsResponse(BaseModel):
    events: list[dict[str, Any]]
    count: int
    buffer_size: int
    max_buffer_size: int
