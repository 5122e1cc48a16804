"""Partial-update helpers.

Update requests arrive as pydantic models whose fields all default to
``None``. ``model_dump(exclude_unset=True)`` keeps only the keys the caller
actually sent, which gives three states per field: omitted (unchanged),
explicit ``null`` (cleared) and a value (set).
"""

import copy
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel

from catalogue_console.store.errors import ValidationError


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for createdAt/updatedAt."""
    return datetime.now(timezone.utc).isoformat()


def changes_from(update: BaseModel) -> dict[str, Any]:
    """Return only the fields the caller set, keyed by their wire names."""
    return update.model_dump(exclude_unset=True, by_alias=True)


def apply_patch(
    record: dict[str, Any],
    changes: dict[str, Any],
    *,
    required: Iterable[str] = (),
    protected: Iterable[str] = ("id",),
    defaults: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Apply ``changes`` to a copy of ``record``.

    A null for a field listed in ``defaults`` resets it to the default value;
    a null for any other optional field stores null.

    Args:
        record: The stored record (not mutated)
        changes: Output of :func:`changes_from`
        required: Fields that may not be cleared or blanked
        protected: Fields that PUT never changes (ids, ownership keys)
        defaults: Reset values for fields whose null means "back to default"

    Returns:
        The patched copy

    Raises:
        ValidationError: If a required field is set to null or blank
    """
    required = set(required)
    protected = set(protected)
    defaults = defaults or {}
    patched = dict(record)

    for key, value in changes.items():
        if key in protected:
            continue
        if key in required and (value is None or (isinstance(value, str) and not value.strip())):
            raise ValidationError(f"{key} cannot be empty")
        if value is None and key in defaults:
            value = copy.deepcopy(defaults[key])
        patched[key] = value

    return patched


def require(payload: dict[str, Any], key: str, label: str) -> Any:
    """Return ``payload[key]`` or raise "<label> is required"."""
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{label} is required")
    return value
