"""
Integration layer - I/O facing adapters
Responsibilities: caching, the remote catalog API and session storage
"""

from .cache_service import CacheEntry, CacheNamespace, CacheService
from .remote_api import RemoteAPIError, RemoteCatalogAPI, create_remote_api_from_config
from .session_store import InMemorySessionStore

__all__ = [
    "CacheEntry",
    "CacheNamespace",
    "CacheService",
    "RemoteAPIError",
    "RemoteCatalogAPI",
    "create_remote_api_from_config",
    "InMemorySessionStore",
]
