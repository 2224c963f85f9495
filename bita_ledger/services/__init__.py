"""Services package."""

from bita_ledger.services.backup import (
    BackupRecord,
    FirebaseBackupSlot,
    GoogleSheetsBackupSlot,
    GoogleSheetsClient,
    InMemoryBackupSlot,
    RemoteBackupSlot,
    RemoteUnavailableError,
)
from bita_ledger.services.storage import (
    CorruptSnapshotError,
    LocalStorageError,
    NotFoundError,
    SnapshotCacheInterface,
    SqliteSnapshotCache,
    StorageError,
)

__all__ = [
    # Remote backup
    "BackupRecord",
    "FirebaseBackupSlot",
    "GoogleSheetsBackupSlot",
    "GoogleSheetsClient",
    "InMemoryBackupSlot",
    "RemoteBackupSlot",
    "RemoteUnavailableError",
    # Local storage
    "CorruptSnapshotError",
    "LocalStorageError",
    "NotFoundError",
    "SnapshotCacheInterface",
    "SqliteSnapshotCache",
    "StorageError",
]
