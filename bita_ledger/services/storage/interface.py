"""
Abstract Local Storage Interface

DESIGN DECISION: We define an abstract interface for the on-device
snapshot store. This allows us to:
1. Swap the SQLite-backed store for another durable medium later
2. Use throwaway storage for testing
3. Keep the ledger engine decoupled from where its bytes land

The interface is intentionally tiny - the engine always writes the
whole database image, so there is nothing to query.
"""

from abc import ABC, abstractmethod
from typing import Optional


class SnapshotCacheInterface(ABC):
    """
    Abstract interface for the local durable snapshot cache.

    One blob under a fixed key, plus a cheap revision marker kept
    separately so "is there local data" never reads the blob.
    """

    @abstractmethod
    async def save(self, data: bytes) -> int:
        """
        Durably replace the stored snapshot.

        The previous value must survive if the process dies mid-write.

        Args:
            data: Full database image

        Returns:
            The new revision marker

        Raises:
            LocalStorageError: If the write fails
        """
        pass

    @abstractmethod
    async def load(self) -> Optional[bytes]:
        """
        Return the last successfully saved snapshot.

        Returns:
            The bytes, or None if nothing was ever saved

        Raises:
            LocalStorageError: If the storage cannot be read
        """
        pass

    @abstractmethod
    async def get_revision(self) -> Optional[int]:
        """
        Return the revision marker without touching the blob.

        Returns:
            The marker, or None if nothing was ever saved
        """
        pass

    @abstractmethod
    async def clear_all(self) -> None:
        """
        Remove the stored snapshot and the revision marker.

        Raises:
            LocalStorageError: If removal fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class LocalStorageError(StorageError):
    """Durable local read or write failed (quota, unavailable medium)."""
    pass


class CorruptSnapshotError(StorageError):
    """Bytes do not form a valid database image."""
    pass


class NotFoundError(StorageError):
    """Entity not found in the ledger."""
    pass
