"""
Remote Backup Package

Provides the per-account backup slot interface and its implementations:
Firebase Realtime Database, Google Sheets and in-memory.
"""

from bita_ledger.services.backup.interface import (
    BackupRecord,
    RemoteBackupSlot,
    RemoteUnavailableError,
)
from bita_ledger.services.backup.firebase import FirebaseBackupSlot
from bita_ledger.services.backup.google_sheets import (
    GoogleSheetsBackupSlot,
    GoogleSheetsClient,
)
from bita_ledger.services.backup.memory import InMemoryBackupSlot

__all__ = [
    # Interface
    "BackupRecord",
    "RemoteBackupSlot",
    # Exceptions
    "RemoteUnavailableError",
    # Implementations
    "FirebaseBackupSlot",
    "GoogleSheetsBackupSlot",
    "GoogleSheetsClient",
    "InMemoryBackupSlot",
]
