"""
Abstract Remote Backup Slot

DESIGN DECISION: The cloud copy is one record per account holding the
latest full snapshot. There is no history and no merge: every upload
overwrites the slot. Backends only have to get, put and delete that one
record, which keeps Firebase, Google Sheets and in-memory slots
interchangeable.
"""

import base64
import binascii
import time
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from bita_ledger.services.storage.interface import CorruptSnapshotError


def now_millis() -> int:
    return int(time.time() * 1000)


class BackupRecord(BaseModel):
    """
    Wire shape of the remote slot: {data: base64 snapshot, timestamp: epoch ms}.
    """

    data: str = Field(..., description="Base64 of the full database image")
    timestamp: int = Field(..., ge=0, description="Upload time, epoch milliseconds")

    @classmethod
    def from_snapshot(cls, snapshot: bytes, timestamp: Optional[int] = None) -> "BackupRecord":
        return cls(
            data=base64.b64encode(snapshot).decode("ascii"),
            timestamp=now_millis() if timestamp is None else timestamp,
        )

    def to_snapshot(self) -> bytes:
        """
        Decode the payload.

        Raises:
            CorruptSnapshotError: payload is not valid base64
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CorruptSnapshotError(f"Backup payload is not valid base64: {e}") from e


class RemoteBackupSlot(ABC):
    """
    Abstract interface for the per-account remote backup slot.

    Implementations raise RemoteUnavailableError for any network or
    service failure; "no backup yet" is None, not an error.
    """

    @abstractmethod
    async def get(self, account_id: str) -> Optional[BackupRecord]:
        """
        Fetch the account's backup.

        Returns:
            The record, or None if the account has never uploaded

        Raises:
            RemoteUnavailableError: If the remote cannot be reached
        """
        pass

    @abstractmethod
    async def put(self, account_id: str, record: BackupRecord) -> None:
        """
        Overwrite the account's backup.

        Raises:
            RemoteUnavailableError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """
        Remove the account's backup (account deletion).

        Raises:
            RemoteUnavailableError: If the delete fails
        """
        pass

    def set_credentials(self, id_token: Optional[str]) -> None:
        """Hand over a bearer token from the identity provider. Optional."""
        pass

    async def aclose(self) -> None:
        """Release network resources. Optional."""
        pass


class RemoteUnavailableError(Exception):
    """Network or remote service failure during upload or download."""
    pass
