"""Authentication and authorization for the catalogue console."""

from catalogue_console.auth.api_key import (
    APIKeyBackend,
    APIKeyStore,
    Principal,
    get_api_key_store,
    user_ref,
)
from catalogue_console.auth.roles import (
    Role,
    require_admin,
    require_editor,
    require_readonly,
    require_role,
)

__all__ = [
    "APIKeyBackend",
    "APIKeyStore",
    "Principal",
    "get_api_key_store",
    "user_ref",
    "Role",
    "require_role",
    "require_admin",
    "require_editor",
    "require_readonly",
]
