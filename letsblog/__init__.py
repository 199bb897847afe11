from __future__ import annotations

from .api import BlogBackend
from .config import load_config, resolve_server_secrets
from .config_schema import AppConfig
from .errors import (
    AuthenticationError,
    AuthorizationError,
    BlogAPIError,
    BlogError,
    ConfigError,
    NotFoundError,
    StorageError,
    TransportError,
    ValidationError,
)
from .local_store import LocalBlogStore
from .mode import BackendSelection, probe_backend, select_backend
from .remote import RemoteBlogClient

__all__ = [
    "AppConfig",
    "AuthenticationError",
    "AuthorizationError",
    "BackendSelection",
    "BlogAPIError",
    "BlogBackend",
    "BlogError",
    "ConfigError",
    "LocalBlogStore",
    "NotFoundError",
    "RemoteBlogClient",
    "StorageError",
    "TransportError",
    "ValidationError",
    "load_config",
    "probe_backend",
    "resolve_server_secrets",
    "select_backend",
]
