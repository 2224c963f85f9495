"""Input validation package."""

from bita_ledger.validation.validator import LedgerValidationError, LedgerValidator

__all__ = ["LedgerValidationError", "LedgerValidator"]
