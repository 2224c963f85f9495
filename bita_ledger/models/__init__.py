"""
Data Models Package

This package contains all Pydantic models used by BITA Ledger.
All data flowing through the system must conform to these schemas.
"""

from bita_ledger.models.ledger import (
    AccountIdentity,
    DashboardSummary,
    ExtractedInvoice,
    ExtractedLineItem,
    Invoice,
    LineItem,
    MutationResult,
    PaymentStatus,
    PriceHistoryPoint,
    ValidationIssue,
    Vendor,
    derive_payment_status,
    new_identifier,
)
from bita_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AccountIdentity",
    "DashboardSummary",
    "ExtractedInvoice",
    "ExtractedLineItem",
    "Invoice",
    "LineItem",
    "MutationResult",
    "PaymentStatus",
    "PriceHistoryPoint",
    "ValidationIssue",
    "Vendor",
    "derive_payment_status",
    "new_identifier",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
