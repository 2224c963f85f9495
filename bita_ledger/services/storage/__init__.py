"""
Local Storage Package

Provides the abstract snapshot cache interface, its SQLite-backed
implementation, and the storage exception hierarchy.
"""

from bita_ledger.services.storage.interface import (
    CorruptSnapshotError,
    LocalStorageError,
    NotFoundError,
    SnapshotCacheInterface,
    StorageError,
)
from bita_ledger.services.storage.local_cache import SqliteSnapshotCache

__all__ = [
    # Interface
    "SnapshotCacheInterface",
    # Exceptions
    "CorruptSnapshotError",
    "LocalStorageError",
    "NotFoundError",
    "StorageError",
    # Implementation
    "SqliteSnapshotCache",
]
