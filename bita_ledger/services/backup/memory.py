"""
In-memory backup slot.

Used when LEDGER_SYNC_BACKEND=memory (offline development) and in tests.
Records live only as long as the object.
"""

from typing import Optional

from bita_ledger.services.backup.interface import (
    BackupRecord,
    RemoteBackupSlot,
    RemoteUnavailableError,
)


class InMemoryBackupSlot(RemoteBackupSlot):
    """Dictionary-backed slot keyed by account id."""

    def __init__(self):
        self._records: dict[str, BackupRecord] = {}
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise RemoteUnavailableError("In-memory backup slot is offline")

    async def get(self, account_id: str) -> Optional[BackupRecord]:
        self._check_available()
        record = self._records.get(account_id)
        return record.model_copy() if record else None

    async def put(self, account_id: str, record: BackupRecord) -> None:
        self._check_available()
        self._records[account_id] = record.model_copy()

    async def delete(self, account_id: str) -> None:
        self._check_available()
        self._records.pop(account_id, None)
