from __future__ import annotations


class BlogError(RuntimeError):
    """Base class for every failure surfaced by a blog operation."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)


class ValidationError(BlogError):
    """Raised when a payload is missing fields or collides with existing data."""

    status_code = 400


class AuthenticationError(BlogError):
    """Raised on bad credentials, a missing session, or an invalid token."""

    status_code = 401


class AuthorizationError(BlogError):
    """Raised when an authenticated user mutates a post they did not author."""

    status_code = 403


class NotFoundError(BlogError):
    """Raised when a post or user does not exist."""

    status_code = 404


class BlogAPIError(BlogError):
    """Raised for a non-success backend response that maps to no narrower class."""


class TransportError(BlogError):
    """Raised when the backend cannot be reached at all."""

    status_code = 503


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class StorageError(RuntimeError):
    """Raised when reading or writing state in SQLite fails."""
