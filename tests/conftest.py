"""
Shared fixtures for BITA Ledger tests.

No real network or model calls: remote slots are in-memory or run over
httpx.MockTransport, and durable storage lives under tmp_path.
"""

from datetime import date
from typing import Optional

import pytest

from bita_ledger.config import StorageSettings
from bita_ledger.models.ledger import Invoice, LineItem, Vendor
from bita_ledger.services.backup import InMemoryBackupSlot
from bita_ledger.services.storage import (
    LocalStorageError,
    SnapshotCacheInterface,
    SqliteSnapshotCache,
)


class ToggleCache(SnapshotCacheInterface):
    """In-memory cache whose saves can be made to fail."""

    def __init__(self, data: Optional[bytes] = None):
        self.data = data
        self.revision: Optional[int] = None
        self.fail_saves = False
        self.fail_loads = False
        self.save_calls = 0

    async def save(self, data: bytes) -> int:
        self.save_calls += 1
        if self.fail_saves:
            raise LocalStorageError("quota exceeded")
        self.data = data
        self.revision = (self.revision or 0) + 1
        return self.revision

    async def load(self) -> Optional[bytes]:
        if self.fail_loads:
            raise LocalStorageError("storage unavailable")
        return self.data

    async def get_revision(self) -> Optional[int]:
        return self.revision

    async def clear_all(self) -> None:
        self.data = None
        self.revision = None


@pytest.fixture
def storage_settings(tmp_path):
    return StorageSettings(data_dir=tmp_path / "bita")


@pytest.fixture
def sqlite_cache(storage_settings):
    return SqliteSnapshotCache(storage_settings)


@pytest.fixture
def toggle_cache():
    return ToggleCache()


@pytest.fixture
def memory_slot():
    return InMemoryBackupSlot()


@pytest.fixture
def acme_vendor():
    return Vendor(id="v1", name="Acme Flour", contact_person="Ravi", phone="555-0100")


@pytest.fixture
def flour_invoice():
    return Invoice(
        id="i1",
        vendor_id="v1",
        invoice_number="INV-001",
        issue_date=date(2024, 3, 4),
        total_amount=1000.0,
        paid_amount=0.0,
        line_items=[
            LineItem(id="li1", name="Maida", category="Flour", quantity=20, unit_price=40.0),
            LineItem(id="li2", name="Sugar", category="Sugar", quantity=5, unit_price=40.0),
        ],
    )
