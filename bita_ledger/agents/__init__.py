"""AI agents package."""

from bita_ledger.agents.extraction import (
    ExtractionError,
    InvoiceExtractionAgent,
    build_invoice_records,
    parse_extraction,
)

__all__ = [
    "ExtractionError",
    "InvoiceExtractionAgent",
    "build_invoice_records",
    "parse_extraction",
]
