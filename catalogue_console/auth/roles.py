"""Role checks for console routes.

Roles are ranked: an admin may do anything an editor may, and an editor
anything a readonly caller may. With auth disabled every request runs as a
single all-roles principal.
"""

import logging
import secrets
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from catalogue_console.auth.api_key import Principal
from catalogue_console.store.errors import AuthError, FeatureDisabledError

log = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "console:admin"
    EDITOR = "console:editor"
    READONLY = "console:readonly"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Role.READONLY: 1, Role.EDITOR: 2, Role.ADMIN: 3}


def highest_rank(roles: set[str]) -> int:
    """Rank of the strongest known role in ``roles``; 0 when there is none."""
    best = 0
    for value in roles:
        try:
            best = max(best, Role(value).rank)
        except ValueError:
            log.warning(f"Ignoring unknown role {value!r}")
    return best


AUTH_DISABLED_PRINCIPAL = Principal(
    key_id="auth-disabled",
    name="Auth Disabled",
    roles={role.value for role in Role},
)


def _principal(request: Request) -> Principal:
    from catalogue_console.config import AUTH_ENABLED

    if not AUTH_ENABLED:
        return AUTH_DISABLED_PRINCIPAL

    user = request.scope.get("user")
    if user is None or not user.is_authenticated:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return user


def require_role(required_role: Role):
    """Dependency resolving to the caller when they hold ``required_role`` or better.

    Usage:
        async def create_furnisher(body: FurnisherWrite, principal: Principal = require_editor):
    """

    async def dependency(request: Request) -> Principal:
        principal = _principal(request)
        if highest_rank(principal.roles) < required_role.rank:
            log.warning(f"{principal.key_id} denied: needs {required_role.value}")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return principal

    return Depends(dependency)


require_admin: Annotated[Principal, Depends] = require_role(Role.ADMIN)
require_editor: Annotated[Principal, Depends] = require_role(Role.EDITOR)
require_readonly: Annotated[Principal, Depends] = require_role(Role.READONLY)


def check_admin_secret(secret: str | None) -> None:
    """Gate for the reseed endpoints.

    Raises:
        FeatureDisabledError: ADMIN_SECRET is not configured
        AuthError: ``secret`` does not match
    """
    from catalogue_console.config import ADMIN_SECRET

    if not ADMIN_SECRET:
        raise FeatureDisabledError("Reseed is disabled (ADMIN_SECRET not set)")
    if not secret or not secrets.compare_digest(secret.encode(), ADMIN_SECRET.encode()):
        raise AuthError("Invalid admin secret")
