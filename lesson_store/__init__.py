"""Local cache and remote mirror backends for lesson data."""

from .cache import LocalCache
from .remote import RemoteNotConfiguredError, RemoteStore, RemoteStoreConfig, RemoteStoreError
from .storage import CacheStore

__all__ = [
    "CacheStore",
    "LocalCache",
    "RemoteNotConfiguredError",
    "RemoteStore",
    "RemoteStoreConfig",
    "RemoteStoreError",
]
