"""
SQLite-backed Local Snapshot Cache

The database image is stored as a single BLOB row inside a small SQLite
file. SQLite's own journal makes the replace atomic: a crash mid-write
leaves the previous snapshot in place, so no two-phase logic is needed
here.

Layout:
- <data_dir>/<store_name>.sqlite3, table ledger_data(key, value)
- <data_dir>/<revision_file>, the revision marker (epoch milliseconds,
  bumped so it never goes backwards)

All blocking work runs in a worker thread with its own short-lived
connection.
"""

import asyncio
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from bita_ledger.config import StorageSettings, get_settings
from bita_ledger.services.storage.interface import (
    LocalStorageError,
    SnapshotCacheInterface,
)


STORE_TABLE = "ledger_data"


class SqliteSnapshotCache(SnapshotCacheInterface):
    """
    Durable snapshot cache on the local filesystem.

    Safe for a single writer; the session serializes calls.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._store_path: Path = self._settings.store_path
        self._revision_path: Path = self._settings.revision_path
        self._key = self._settings.snapshot_key

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def revision_path(self) -> Path:
        return self._revision_path

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for store transactions."""
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._store_path))
        try:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {STORE_TABLE} "
                "(key TEXT PRIMARY KEY, value BLOB NOT NULL)"
            )
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _read_revision(self) -> Optional[int]:
        try:
            raw = self._revision_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        try:
            return int(raw)
        except ValueError:
            # A torn marker only costs a full read next time.
            return None

    def _save_sync(self, data: bytes) -> int:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {STORE_TABLE} (key, value) VALUES (?, ?)",
                (self._key, sqlite3.Binary(data)),
            )

        previous = self._read_revision() or 0
        revision = max(int(time.time() * 1000), previous + 1)
        self._revision_path.write_text(str(revision), encoding="utf-8")
        return revision

    def _load_sync(self) -> Optional[bytes]:
        if not self._store_path.exists():
            return None
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT value FROM {STORE_TABLE} WHERE key = ?",
                (self._key,),
            ).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def _clear_sync(self) -> None:
        if self._store_path.exists():
            with self._transaction() as conn:
                conn.execute(f"DELETE FROM {STORE_TABLE}")
        self._revision_path.unlink(missing_ok=True)

    async def save(self, data: bytes) -> int:
        """Durably replace the stored snapshot and bump the revision."""
        try:
            return await asyncio.to_thread(self._save_sync, data)
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Failed to save snapshot: {e}") from e

    async def load(self) -> Optional[bytes]:
        """Return the stored snapshot, or None if there is none."""
        try:
            return await asyncio.to_thread(self._load_sync)
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Failed to load snapshot: {e}") from e

    async def get_revision(self) -> Optional[int]:
        """Return the revision marker without reading the blob."""
        try:
            return await asyncio.to_thread(self._read_revision)
        except OSError as e:
            raise LocalStorageError(f"Failed to read revision marker: {e}") from e

    async def clear_all(self) -> None:
        """Remove the snapshot and the revision marker."""
        try:
            await asyncio.to_thread(self._clear_sync)
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Failed to clear local storage: {e}") from e
