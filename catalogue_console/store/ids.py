"""Identifier generation for catalogue records."""

import re
import time

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9-]")
_DASH_RUNS = re.compile(r"-+")


def slugify(name: str) -> str:
    """Derive a URL-safe id from a display name.

    "Property Address" -> "property-address". Characters outside
    ``[a-z0-9-]`` are dropped, dash runs collapse and edge dashes are trimmed.
    """
    slug = _WHITESPACE.sub("-", name.strip().lower())
    slug = _DISALLOWED.sub("", slug)
    slug = _DASH_RUNS.sub("-", slug)
    return slug.strip("-")


def timestamp_id(prefix: str, suffix: int | None = None) -> str:
    """``<prefix>-<epoch ms>``, with an optional index for batch creation."""
    stamp = int(time.time() * 1000)
    if suffix is None:
        return f"{prefix}-{stamp}"
    return f"{prefix}-{stamp}-{suffix}"
