"""Error taxonomy shared by the repositories and the HTTP layer.

Each error carries the HTTP status it maps to; the application registers a
single handler that turns them into ``{"detail": message}`` responses.
"""


class StoreError(Exception):
    """Base class for repository errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    """A mandatory field is missing or a value is out of range."""

    status_code = 400


class AuthError(StoreError):
    """The caller is not authenticated (or presented a bad shared secret)."""

    status_code = 401


class ForbiddenError(StoreError):
    """The caller is authenticated but may not touch the resource."""

    status_code = 403


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    """An identifier or natural key already exists in the collection."""

    status_code = 409


class DocumentCorruptError(StoreError):
    """A persisted JSON document could not be parsed."""

    status_code = 500


class FeatureDisabledError(StoreError):
    """An operation is switched off by configuration."""

    status_code = 503
