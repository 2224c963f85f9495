"""Ledger queries package."""

from bita_ledger.queries.ledger_queries import UNKNOWN_VENDOR, LedgerQueryService

__all__ = ["LedgerQueryService", "UNKNOWN_VENDOR"]
