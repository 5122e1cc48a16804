"""File-backed JSON document storage."""

from catalogue_console.store.errors import (
    AuthError,
    ConflictError,
    DocumentCorruptError,
    FeatureDisabledError,
    ForbiddenError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from catalogue_console.store.json_store import DocumentStore, JsonDocumentStore

__all__ = [
    "AuthError",
    "ConflictError",
    "DocumentCorruptError",
    "DocumentStore",
    "FeatureDisabledError",
    "ForbiddenError",
    "JsonDocumentStore",
    "NotFoundError",
    "StoreError",
    "ValidationError",
]
