"""
Tests for the snapshot codec.
"""

import pytest

from bita_ledger.engine.codec import SQLITE_HEADER, SnapshotCodec
from bita_ledger.services.storage import CorruptSnapshotError


def _table_names(conn) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


class TestSnapshotCodec:
    """Tests for export/load of the whole database image."""

    def test_load_none_gives_empty_schema(self):
        conn = SnapshotCodec.load(None)
        assert {"vendors", "invoices"} <= _table_names(conn)
        assert conn.execute("SELECT count(*) FROM vendors").fetchone()[0] == 0
        conn.close()

    def test_load_empty_bytes_gives_empty_schema(self):
        conn = SnapshotCodec.load(b"")
        assert {"vendors", "invoices"} <= _table_names(conn)
        conn.close()

    def test_export_is_sqlite_image(self):
        conn = SnapshotCodec.load(None)
        data = SnapshotCodec.export(conn)
        assert data.startswith(SQLITE_HEADER)
        conn.close()

    def test_round_trip_keeps_rows(self):
        conn = SnapshotCodec.load(None)
        conn.execute(
            "INSERT INTO vendors (id, name, contactPerson, phone, email) VALUES (?, ?, ?, ?, ?)",
            ("v1", "Acme Flour", "Ravi", "555", "ravi@acme.test"),
        )
        conn.execute(
            "INSERT INTO invoices (id, vendorId, invoiceNumber, issueDate, totalAmount, "
            "paidAmount, status, lineItems) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            ("i1", "v1", "INV-1", "2024-03-04", 1000.0, 0.0, "Unpaid", "[]"),
        )
        conn.commit()

        restored = SnapshotCodec.load(SnapshotCodec.export(conn))
        vendor = restored.execute("SELECT * FROM vendors").fetchone()
        invoice = restored.execute("SELECT * FROM invoices").fetchone()
        assert vendor["name"] == "Acme Flour"
        assert vendor["contactPerson"] == "Ravi"
        assert invoice["vendorId"] == "v1"
        assert invoice["totalAmount"] == 1000.0
        conn.close()
        restored.close()

    def test_loaded_database_is_independent(self):
        conn = SnapshotCodec.load(None)
        data = SnapshotCodec.export(conn)
        restored = SnapshotCodec.load(data)
        restored.execute("INSERT INTO vendors (id, name) VALUES ('v9', 'Other')")
        assert conn.execute("SELECT count(*) FROM vendors").fetchone()[0] == 0
        conn.close()
        restored.close()

    def test_garbage_is_corrupt(self):
        with pytest.raises(CorruptSnapshotError):
            SnapshotCodec.load(b"definitely not a database")

    def test_bad_page_size_is_corrupt(self):
        with pytest.raises(CorruptSnapshotError):
            SnapshotCodec.load(SQLITE_HEADER + b"\xff" * 200)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
