"""ConoHa object storage client.

Obtains and caches a short-lived token from the ConoHa identity service and
uses it for container and object operations on ConoHa object storage.

Components:
- TokenManager: token acquisition, expiry-aware caching, forced refresh
- StorageClient: list/create/delete containers, upload/download/delete objects
- FileTokenCache: per-user token records on disk
"""

from conoha_storage.client import StorageClient, create_storage_client
from conoha_storage.config import ClientConfig, load_credentials
from conoha_storage.errors import (
    AuthenticationError,
    ConfigError,
    ConoHaError,
    StorageErrorKind,
    TokenCacheError,
)
from conoha_storage.models import (
    CachedTokenRecord,
    Credentials,
    ObjectRef,
    StorageResult,
    Token,
)
from conoha_storage.token_cache import FileTokenCache, InMemoryTokenCache, TokenCache
from conoha_storage.token_manager import TokenManager, TokenState

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "CachedTokenRecord",
    "ClientConfig",
    "ConfigError",
    "ConoHaError",
    "Credentials",
    "FileTokenCache",
    "InMemoryTokenCache",
    "ObjectRef",
    "StorageClient",
    "StorageErrorKind",
    "StorageResult",
    "Token",
    "TokenCache",
    "TokenCacheError",
    "TokenManager",
    "TokenState",
    "create_storage_client",
    "load_credentials",
]
