"""Ledger engine package: the embedded database and its snapshot codec."""

from bita_ledger.engine.codec import SCHEMA, SnapshotCodec
from bita_ledger.engine.ledger import LedgerEngine

__all__ = [
    "LedgerEngine",
    "SCHEMA",
    "SnapshotCodec",
]
