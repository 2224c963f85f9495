"""
Binary Store Codec

Turns the whole ledger database into one self-contained byte blob (the
SQLite file format) and back.

DESIGN DECISION: The codec never touches durable storage. It only
produces and consumes bytes; the local cache and the remote slot decide
where those bytes live.
"""

import sqlite3
from typing import Optional

from bita_ledger.services.storage.interface import CorruptSnapshotError


# Column names match the snapshots the ledger has always written, so
# backups made by earlier versions keep loading.
SCHEMA = """
CREATE TABLE IF NOT EXISTS vendors (
    id TEXT PRIMARY KEY,
    name TEXT,
    contactPerson TEXT,
    phone TEXT,
    email TEXT
);
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    vendorId TEXT,
    invoiceNumber TEXT,
    issueDate TEXT,
    paymentDate TEXT,
    totalAmount REAL,
    paidAmount REAL,
    status TEXT,
    lineItems TEXT
);
"""

SQLITE_HEADER = b"SQLite format 3\x00"


class SnapshotCodec:
    """
    Serializes and deserializes the in-memory ledger database.

    export(conn) -> bytes
    load(bytes | None) -> sqlite3.Connection
    """

    @staticmethod
    def _connect() -> sqlite3.Connection:
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def create_schema(conn: sqlite3.Connection) -> None:
        conn.executescript(SCHEMA)

    @staticmethod
    def export(conn: sqlite3.Connection) -> bytes:
        """Return the full database image (schema and every row)."""
        return bytes(conn.serialize())

    @classmethod
    def load(cls, data: Optional[bytes] = None) -> sqlite3.Connection:
        """
        Build an engine connection from a snapshot.

        Empty or missing data gives a fresh database with the schema.

        Raises:
            CorruptSnapshotError: data is non-empty but not a valid
                database image
        """
        conn = cls._connect()
        if data:
            if not data.startswith(SQLITE_HEADER):
                conn.close()
                raise CorruptSnapshotError("Snapshot does not start with a SQLite header")
            try:
                conn.deserialize(data)
                result = conn.execute("PRAGMA integrity_check").fetchone()
                if result is None or result[0] != "ok":
                    detail = result[0] if result else "no result"
                    raise CorruptSnapshotError(f"Integrity check failed: {detail}")
                conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            except sqlite3.DatabaseError as e:
                conn.close()
                raise CorruptSnapshotError(f"Snapshot is not a valid database: {e}") from e
            except CorruptSnapshotError:
                conn.close()
                raise

        try:
            cls.create_schema(conn)
        except sqlite3.DatabaseError as e:
            conn.close()
            raise CorruptSnapshotError(f"Snapshot schema is unusable: {e}") from e
        return conn
