"""Login and logout.

Two ways in:
1. ``POST /api/auth/session`` exchanges an API key for a session cookie
2. ``GET /api/auth/login`` starts GitHub OAuth; ``/api/auth/callback``
   finishes it and sets the same cookie
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from catalogue_console.api.models import (
    AuthStatusResponse,
    SessionRequest,
    SessionResponse,
    SuccessResponse,
)
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import SESSION_COOKIE_NAME, Principal, get_api_key_store
from catalogue_console.auth.github import (
    GitHubOAuthError,
    get_github_client,
    get_oauth_state_store,
    principal_for,
)
from catalogue_console.auth.session import get_rate_limiter, get_session_store

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

DEFAULT_LANDING = "/apps"
LOGIN_PAGE = "/login"


def _is_safe_redirect_url(url: str | None) -> bool:
    """True for same-origin relative paths only."""
    if not url or not url.startswith("/") or url.startswith("//"):
        return False
    if "://" in url or url.lower().startswith("javascript:"):
        return False
    lowered = url.lower()
    return "%2f%2f" not in lowered and "%252f" not in lowered


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _set_session_cookie(response: Response, session_id: str) -> None:
    from catalogue_console.config import SESSION_COOKIE_SECURE, SESSION_TTL_SECONDS

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
        path="/",
        max_age=SESSION_TTL_SECONDS,
    )


async def _open_session(principal: Principal):
    from catalogue_console.config import SESSION_TTL_SECONDS

    return await get_session_store().create(principal, SESSION_TTL_SECONDS)


@router.post("/session", response_model=SessionResponse)
async def create_session(
    request: Request,
    body: SessionRequest,
    response: Response,
) -> SessionResponse | JSONResponse:
    """Exchange an API key for an HttpOnly session cookie.

    Failed attempts are rate limited per client IP.
    """
    audit = get_audit_logger()
    rate_limiter = get_rate_limiter()
    client_ip = _get_client_ip(request)

    remaining = await rate_limiter.retry_after(client_ip)
    if remaining:
        audit.log_login_failure("rate_limited", request)
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Too many failed login attempts. Please try again later.",
                "retry_after": remaining,
            },
            headers={"Retry-After": str(remaining)},
        )

    if not body.api_key:
        audit.log_login_failure("missing_credentials", request)
        response.status_code = 400
        return SessionResponse(success=False)

    principal, error = get_api_key_store().verify(body.api_key)
    if principal is None:
        await rate_limiter.record_failure(client_ip)
        audit.log_login_failure(error or "invalid", request)
        # Invalid and revoked look the same to the caller
        response.status_code = 401
        return SessionResponse(success=False)

    await rate_limiter.record_success(client_ip)
    session = await _open_session(principal)
    _set_session_cookie(response, session.session_id)

    audit.log_login(principal.key_id, "api_key", request)
    log.info(f"Login successful for {principal.key_id} from {client_ip}")

    return SessionResponse(
        success=True,
        key_id=principal.key_id,
        name=principal.name,
        roles=sorted(principal.roles),
        expires_at=session.expires_at.isoformat(),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(request: Request, response: Response) -> SuccessResponse:
    """End the current session (if any) and clear the cookie."""
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    principal_id = "anonymous"

    if session_id:
        session_store = get_session_store()
        session = await session_store.get(session_id)
        if session:
            principal_id = session.principal.key_id
        await session_store.delete(session_id)

    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
    get_audit_logger().log_access(
        action="session.logout", principal_id=principal_id, request=request
    )
    return SuccessResponse(success=True, message="Logged out successfully")


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status(request: Request) -> AuthStatusResponse:
    """Who is calling: session cookie first, then API key header."""
    oauth_enabled = get_github_client() is not None

    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        session = await get_session_store().get(session_id)
        if session:
            principal = session.principal
            return AuthStatusResponse(
                authenticated=True,
                method="session",
                key_id=principal.key_id,
                name=principal.name,
                login=principal.login,
                roles=sorted(principal.roles),
                expires_at=session.expires_at.isoformat(),
                github_oauth_enabled=oauth_enabled,
            )

    api_key = request.headers.get("X-API-Key")
    if api_key:
        principal, _error = get_api_key_store().verify(api_key)
        if principal:
            return AuthStatusResponse(
                authenticated=True,
                method="api_key",
                key_id=principal.key_id,
                name=principal.name,
                roles=sorted(principal.roles),
                github_oauth_enabled=oauth_enabled,
            )

    return AuthStatusResponse(authenticated=False, github_oauth_enabled=oauth_enabled)


# =============================================================================
# GITHUB OAUTH
# =============================================================================


def _callback_uri(request: Request) -> str:
    from catalogue_console.config import GITHUB_OAUTH_REDIRECT_URI

    return GITHUB_OAUTH_REDIRECT_URI or str(request.url_for("github_callback"))


@router.get("/login", response_model=None)
async def github_login(
    request: Request,
    redirect_after: str = Query(DEFAULT_LANDING, description="Where to land after login"),
) -> RedirectResponse | JSONResponse:
    """Redirect to GitHub's authorization page."""
    client = get_github_client()
    if client is None:
        return JSONResponse(status_code=400, content={"detail": "GitHub login is not enabled"})

    if not _is_safe_redirect_url(redirect_after):
        return JSONResponse(status_code=400, content={"detail": "Invalid redirect URL"})

    state = await get_oauth_state_store().issue(redirect_after)
    return RedirectResponse(url=client.authorize_url(_callback_uri(request), state), status_code=302)


@router.get("/callback", name="github_callback", response_model=None)
async def github_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
) -> RedirectResponse | JSONResponse:
    """Finish GitHub login and land on the console with a session cookie.

    Failures redirect to the login page with an ``error`` code.
    """
    from catalogue_console.config import ADMIN_USERS

    audit = get_audit_logger()
    client = get_github_client()
    if client is None:
        return JSONResponse(status_code=400, content={"detail": "GitHub login is not enabled"})

    def fail(reason: str) -> RedirectResponse:
        audit.log_login_failure(reason, request)
        return RedirectResponse(url=f"{LOGIN_PAGE}?error={quote(reason)}", status_code=302)

    if error:
        return fail("oauth_failed")

    valid, redirect_after = await get_oauth_state_store().consume(state)
    if not valid:
        return fail("invalid_state")
    if not code:
        return fail("no_code")

    try:
        user = await client.authenticate(code)
    except GitHubOAuthError as e:
        log.warning(f"GitHub login failed: {e}")
        return fail(e.reason)

    principal = principal_for(user, ADMIN_USERS)
    session = await _open_session(principal)

    response = RedirectResponse(url=redirect_after or DEFAULT_LANDING, status_code=302)
    _set_session_cookie(response, session.session_id)
    audit.log_login(principal.key_id, "github", request)
    return response
