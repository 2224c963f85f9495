"""
Audit Models for BITA Ledger

Every significant persistence and sync action is logged for audit purposes.
This provides:
1. Traceability of what reached local storage and the remote backup
2. Debugging information when a save or sync fails
3. Ability to reconstruct what happened in a session

DESIGN DECISION: Audit events are structured, never free-form strings,
so a log processor can filter by event type and entity.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger mutations
    VENDOR_UPSERTED = "vendor_upserted"
    VENDOR_DELETED = "vendor_deleted"
    INVOICE_UPSERTED = "invoice_upserted"
    INVOICE_DELETED = "invoice_deleted"
    PAYMENT_RECORDED = "payment_recorded"
    EXTRACTION_INGESTED = "extraction_ingested"

    # Local persistence
    SNAPSHOT_PERSISTED = "snapshot_persisted"
    LOCAL_STORAGE_FAILED = "local_storage_failed"
    CORRUPT_SNAPSHOT = "corrupt_snapshot"
    LOCAL_DATA_CLEARED = "local_data_cleared"

    # Remote backup
    BACKUP_UPLOADED = "backup_uploaded"
    BACKUP_UPLOAD_FAILED = "backup_upload_failed"
    BACKUP_RESTORED = "backup_restored"
    BACKUP_ABSENT = "backup_absent"
    BACKUP_DOWNLOAD_FAILED = "backup_download_failed"
    BACKUP_DELETED = "backup_deleted"

    # Session
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'vendor', 'invoice', 'snapshot')"
    )
    entity_id: Optional[str] = None
    account_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "account_id": self.account_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.snapshot_persisted(size_bytes, revision)
        event = AuditEventBuilder.backup_uploaded(account_id, size_bytes)
    """

    @staticmethod
    def vendor_upserted(vendor_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VENDOR_UPSERTED,
            entity_type="vendor",
            entity_id=vendor_id,
            description=f"Vendor saved: {name}"[:500],
        )

    @staticmethod
    def vendor_deleted(vendor_id: str, invoices_removed: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VENDOR_DELETED,
            entity_type="vendor",
            entity_id=vendor_id,
            description="Vendor deleted with its invoices",
            details={"invoices_removed": invoices_removed},
        )

    @staticmethod
    def invoice_upserted(invoice_id: str, vendor_id: str, total_amount: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_UPSERTED,
            entity_type="invoice",
            entity_id=invoice_id,
            description="Invoice saved",
            details={"vendor_id": vendor_id, "total_amount": total_amount},
        )

    @staticmethod
    def invoice_deleted(invoice_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_DELETED,
            entity_type="invoice",
            entity_id=invoice_id,
            description="Invoice deleted",
        )

    @staticmethod
    def payment_recorded(invoice_id: str, paid_amount: float, status: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="invoice",
            entity_id=invoice_id,
            description=f"Payment recorded, invoice is now {status}",
            details={"paid_amount": paid_amount, "status": status},
        )

    @staticmethod
    def extraction_ingested(invoice_id: str, vendor_id: str, new_vendor: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_INGESTED,
            entity_type="invoice",
            entity_id=invoice_id,
            description="Scanned invoice added to the ledger",
            details={"vendor_id": vendor_id, "new_vendor": new_vendor},
        )

    @staticmethod
    def snapshot_persisted(size_bytes: int, revision: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_PERSISTED,
            severity=AuditSeverity.DEBUG,
            entity_type="snapshot",
            description="Snapshot written to local storage",
            details={"size_bytes": size_bytes, "revision": revision},
        )

    @staticmethod
    def local_storage_failed(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_STORAGE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot",
            description=f"Local storage {operation} failed",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def corrupt_snapshot(source: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CORRUPT_SNAPSHOT,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            description=f"Ignoring corrupt snapshot from {source}",
            details={"source": source},
            error_message=error_message,
        )

    @staticmethod
    def local_data_cleared() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_DATA_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            description="Local snapshot and revision marker removed",
        )

    @staticmethod
    def backup_uploaded(account_id: str, size_bytes: int, timestamp: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_UPLOADED,
            entity_type="backup",
            account_id=account_id,
            description="Cloud synchronization successful",
            details={"size_bytes": size_bytes, "timestamp": timestamp},
        )

    @staticmethod
    def backup_upload_failed(account_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_UPLOAD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            account_id=account_id,
            description="Backup upload failed, remote copy is stale",
            error_message=error_message,
        )

    @staticmethod
    def backup_restored(account_id: str, size_bytes: int, timestamp: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            entity_type="backup",
            account_id=account_id,
            description="Local engine restored from cloud backup",
            details={"size_bytes": size_bytes, "timestamp": timestamp},
        )

    @staticmethod
    def backup_absent(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_ABSENT,
            entity_type="backup",
            account_id=account_id,
            description="No cloud backup for this account, keeping local data",
        )

    @staticmethod
    def backup_download_failed(account_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_DOWNLOAD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            account_id=account_id,
            description="Backup download failed, continuing with local data",
            error_message=error_message,
        )

    @staticmethod
    def backup_deleted(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            account_id=account_id,
            description="Cloud backup deleted",
        )

    @staticmethod
    def session_started(account_id: Optional[str], restored: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            account_id=account_id,
            description="Ledger session started",
            details={"restored_from_backup": restored},
        )

    @staticmethod
    def session_ended(account_id: Optional[str], abandoned_uploads: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            account_id=account_id,
            description="Ledger session ended",
            details={"abandoned_uploads": abandoned_uploads},
        )
