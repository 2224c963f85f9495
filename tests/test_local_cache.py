"""
Tests for the SQLite-backed local snapshot cache.

All files live under pytest's tmp_path.
"""

import asyncio

import pytest

from bita_ledger.config import StorageSettings
from bita_ledger.services.storage import LocalStorageError, SqliteSnapshotCache


class TestSqliteSnapshotCache:
    """Tests for durable save/load of the snapshot blob."""

    def test_load_before_any_save(self, sqlite_cache):
        assert asyncio.run(sqlite_cache.load()) is None
        assert asyncio.run(sqlite_cache.get_revision()) is None

    def test_save_then_load(self, sqlite_cache):
        async def scenario():
            await sqlite_cache.save(b"snapshot-one")
            return await sqlite_cache.load()

        assert asyncio.run(scenario()) == b"snapshot-one"

    def test_save_replaces_previous_value(self, sqlite_cache):
        async def scenario():
            await sqlite_cache.save(b"old")
            await sqlite_cache.save(b"new")
            return await sqlite_cache.load()

        assert asyncio.run(scenario()) == b"new"

    def test_files_use_configured_layout(self, sqlite_cache, storage_settings):
        asyncio.run(sqlite_cache.save(b"data"))
        assert sqlite_cache.store_path == storage_settings.data_dir / "BITA_STORAGE.sqlite3"
        assert sqlite_cache.store_path.exists()
        assert (storage_settings.data_dir / "bita_rev").exists()

    def test_revision_strictly_increases(self, sqlite_cache):
        async def scenario():
            revisions = []
            for i in range(5):
                revisions.append(await sqlite_cache.save(f"v{i}".encode()))
            return revisions, await sqlite_cache.get_revision()

        revisions, current = asyncio.run(scenario())
        assert revisions == sorted(set(revisions))
        assert current == revisions[-1]

    def test_revision_never_goes_backwards(self, sqlite_cache):
        far_future = 99_999_999_999_999
        sqlite_cache.revision_path.parent.mkdir(parents=True, exist_ok=True)
        sqlite_cache.revision_path.write_text(str(far_future), encoding="utf-8")

        revision = asyncio.run(sqlite_cache.save(b"data"))
        assert revision == far_future + 1

    def test_survives_new_instance(self, storage_settings):
        asyncio.run(SqliteSnapshotCache(storage_settings).save(b"durable"))
        assert asyncio.run(SqliteSnapshotCache(storage_settings).load()) == b"durable"

    def test_clear_all(self, sqlite_cache):
        async def scenario():
            await sqlite_cache.save(b"data")
            await sqlite_cache.clear_all()
            return await sqlite_cache.load(), await sqlite_cache.get_revision()

        assert asyncio.run(scenario()) == (None, None)

    def test_clear_all_without_data(self, sqlite_cache):
        asyncio.run(sqlite_cache.clear_all())
        assert asyncio.run(sqlite_cache.load()) is None

    def test_save_failure_raises_local_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        cache = SqliteSnapshotCache(StorageSettings(data_dir=blocker))

        with pytest.raises(LocalStorageError):
            asyncio.run(cache.save(b"data"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
