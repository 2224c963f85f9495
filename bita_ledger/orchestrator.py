"""
Main Orchestrator for BITA Ledger

This module ties the engine, the local cache and the remote backup slot
together and defines the two sync triggers:
1. Session start: download the account's backup once and load it
2. Every mutation: upload the whole current state

DESIGN DECISION: The orchestrator enforces the boundaries:
- Local state is durable before any remote attempt starts
- Downloads and uploads for an account never overlap
- Storage and network failures never stop local work

LedgerSession is the object callers hold for a signed-in account. It owns
exactly one engine, one cache and one remote slot.
"""

import asyncio
from collections.abc import Awaitable
from datetime import date
from typing import Optional

from bita_ledger.agents import InvoiceExtractionAgent, build_invoice_records
from bita_ledger.audit import AuditLogger
from bita_ledger.config import Settings, get_settings
from bita_ledger.engine import LedgerEngine
from bita_ledger.models.audit import AuditEventBuilder
from bita_ledger.models.ledger import (
    AccountIdentity,
    ExtractedInvoice,
    Invoice,
    LineItem,
    MutationResult,
    ValidationIssue,
    Vendor,
    new_identifier,
)
from bita_ledger.queries import LedgerQueryService
from bita_ledger.services.backup import (
    BackupRecord,
    FirebaseBackupSlot,
    GoogleSheetsBackupSlot,
    GoogleSheetsClient,
    InMemoryBackupSlot,
    RemoteBackupSlot,
    RemoteUnavailableError,
)
from bita_ledger.services.storage import (
    CorruptSnapshotError,
    LocalStorageError,
    SnapshotCacheInterface,
    SqliteSnapshotCache,
)
from bita_ledger.validation import LedgerValidator


class SyncOrchestrator:
    """
    Mirrors the engine to the account's remote backup slot.

    Policy: download once at session start, upload after every write.
    All sync operations run one at a time under a single lock. An upload
    requested while another upload is already queued joins the queued one,
    which exports the freshest state when its turn comes.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        remote: RemoteBackupSlot,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._remote = remote
        self._audit_logger = audit_logger or AuditLogger()
        self._sync_lock = asyncio.Lock()
        self._queued_upload: Optional[asyncio.Future] = None
        self._account: Optional[AccountIdentity] = None
        self.last_uploaded_at: Optional[int] = None

    @property
    def account(self) -> Optional[AccountIdentity]:
        return self._account

    def set_account(self, account: Optional[AccountIdentity]) -> None:
        self._account = account
        self._remote.set_credentials(account.id_token if account else None)

    async def download_backup(self) -> bool:
        """
        Replace local state with the account's backup, if there is one.

        Returns True iff a restore happened. Every failure is logged and
        leaves local state as it was.
        """
        async with self._sync_lock:
            account = self._account
            if account is None:
                return False

            try:
                record = await self._remote.get(account.account_id)
            except (RemoteUnavailableError, CorruptSnapshotError) as e:
                await self._audit_logger.log(
                    AuditEventBuilder.backup_download_failed(account.account_id, str(e))
                )
                return False

            if record is None:
                await self._audit_logger.log(AuditEventBuilder.backup_absent(account.account_id))
                return False

            try:
                snapshot = record.to_snapshot()
                if not snapshot:
                    raise CorruptSnapshotError("Backup payload is empty")
                await self._engine.import_snapshot(snapshot)
            except CorruptSnapshotError as e:
                await self._audit_logger.log(
                    AuditEventBuilder.corrupt_snapshot("cloud backup", str(e))
                )
                return False
            except LocalStorageError:
                # The engine already holds the restored state and logged the
                # failed save; the next mutation saves again.
                pass

            await self._audit_logger.log(
                AuditEventBuilder.backup_restored(
                    account.account_id, len(snapshot), record.timestamp
                )
            )
            return True

    async def _upload_locked(self) -> bool:
        account = self._account
        if account is None:
            return False

        snapshot = self._engine.export_snapshot()
        record = BackupRecord.from_snapshot(snapshot)
        try:
            await self._remote.put(account.account_id, record)
        except RemoteUnavailableError as e:
            await self._audit_logger.log(
                AuditEventBuilder.backup_upload_failed(account.account_id, str(e))
            )
            raise

        self.last_uploaded_at = record.timestamp
        await self._audit_logger.log(
            AuditEventBuilder.backup_uploaded(account.account_id, len(snapshot), record.timestamp)
        )
        return True

    async def upload_backup(self) -> bool:
        """
        Overwrite the remote slot with the current full state.

        Returns False when no account is signed in.

        Raises:
            RemoteUnavailableError: the remote copy stays stale until the
                next successful upload
        """
        queued = self._queued_upload
        if queued is not None:
            # A queued upload has not exported yet, so it will carry our change.
            try:
                outcome = await asyncio.shield(queued)
            except asyncio.CancelledError:
                if not queued.cancelled():
                    raise
                # Its owner was cancelled before exporting; upload ourselves.
                return await self.upload_backup()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        queued = asyncio.get_running_loop().create_future()
        self._queued_upload = queued
        try:
            async with self._sync_lock:
                if self._queued_upload is queued:
                    self._queued_upload = None
                try:
                    outcome = await self._upload_locked()
                except Exception as e:
                    queued.set_result(e)
                    raise
                queued.set_result(outcome)
                return outcome
        finally:
            if self._queued_upload is queued:
                self._queued_upload = None
            if not queued.done():
                queued.cancel()

    async def delete_backup(self) -> bool:
        """Remove the account's remote backup. Returns False when signed out."""
        async with self._sync_lock:
            account = self._account
            if account is None:
                return False
            await self._remote.delete(account.account_id)
            await self._audit_logger.log(AuditEventBuilder.backup_deleted(account.account_id))
            return True


class LedgerSession:
    """
    Session context for one device user.

    Flow:
    1. open() → engine from local cache (or empty), then sign in if given
    2. sign_in() → download backup once, restore if present
    3. mutations → validate → engine write + local save → upload
    4. sign_out() → pending uploads finish or are abandoned; local data stays
    """

    def __init__(
        self,
        cache: SnapshotCacheInterface,
        remote: RemoteBackupSlot,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        background_uploads: bool = False,
    ):
        self._cache = cache
        self._remote = remote
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator()
        self._background_uploads = background_uploads
        self._engine: Optional[LedgerEngine] = None
        self._orchestrator: Optional[SyncOrchestrator] = None
        self._pending_uploads: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def engine(self) -> LedgerEngine:
        if self._engine is None:
            raise RuntimeError("Session is not open")
        return self._engine

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("Session is not open")
        return self._orchestrator

    @property
    def queries(self) -> LedgerQueryService:
        return LedgerQueryService(self.engine)

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    async def open(
        self,
        account_id: Optional[str] = None,
        id_token: Optional[str] = None,
    ) -> bool:
        """
        Open the local ledger and, if an account is given, sign it in.

        Returns True if the ledger was restored from the cloud backup.
        """
        if self._engine is None:
            self._engine = await LedgerEngine.open(self._cache, audit_logger=self._audit_logger)
            self._orchestrator = SyncOrchestrator(self._engine, self._remote, self._audit_logger)
        if account_id is None:
            return False
        return await self.sign_in(AccountIdentity(account_id=account_id, id_token=id_token))

    async def sign_in(self, account: AccountIdentity) -> bool:
        """Session start after identity verification: restore from backup once."""
        self._audit_logger.bind_account(account.account_id)
        self.orchestrator.set_account(account)
        restored = await self.orchestrator.download_backup()
        await self._audit_logger.log(AuditEventBuilder.session_started(account.account_id, restored))
        return restored

    async def sign_out(self, wait_for_uploads: bool = True) -> None:
        """
        End the account session.

        Local data is already durable, so abandoning uploads only delays
        the cloud copy.
        """
        abandoned = 0
        if wait_for_uploads:
            await self.flush()
        else:
            for task in list(self._pending_uploads):
                if not task.done():
                    task.cancel()
                    abandoned += 1
            await asyncio.gather(*self._pending_uploads, return_exceptions=True)

        account = self.orchestrator.account
        await self._audit_logger.log(
            AuditEventBuilder.session_ended(account.account_id if account else None, abandoned)
        )
        self.orchestrator.set_account(None)
        self._audit_logger.bind_account(None)

    async def delete_account(self) -> MutationResult:
        """
        Wipe everything kept for the account: cloud backup, local snapshot,
        and the in-memory ledger.

        Raises:
            LocalStorageError: local data could not be removed
        """
        result = MutationResult()
        await self.flush()
        try:
            await self.orchestrator.delete_backup()
        except RemoteUnavailableError as e:
            result.warnings.append(f"Cloud backup could not be deleted: {e}")

        await self._cache.clear_all()
        await self._audit_logger.log(AuditEventBuilder.local_data_cleared())
        await self.engine.reset()
        await self.sign_out(wait_for_uploads=False)
        return result

    async def flush(self) -> None:
        """Wait for background uploads to finish."""
        while self._pending_uploads:
            await asyncio.gather(*list(self._pending_uploads), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        await self._remote.aclose()
        if self._engine is not None:
            self._engine.close()
            self._engine = None
            self._orchestrator = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_vendors(self) -> list[Vendor]:
        return await self.engine.list_vendors()

    async def list_invoices(self) -> list[Invoice]:
        return await self.engine.list_invoices()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _warning_messages(issues: list[ValidationIssue]) -> list[str]:
        return [f"{issue.field}: {issue.message}" for issue in issues]

    async def _upload_in_background(self) -> bool:
        try:
            return await self.orchestrator.upload_backup()
        except RemoteUnavailableError:
            # Logged by the orchestrator; the next mutation uploads again.
            return False

    async def _sync_after_write(self, result: MutationResult) -> None:
        if self.orchestrator.account is None:
            return
        if self._background_uploads:
            task = asyncio.create_task(self._upload_in_background())
            self._pending_uploads.add(task)
            task.add_done_callback(self._pending_uploads.discard)
            result.upload_scheduled = True
            return
        try:
            result.uploaded = await self.orchestrator.upload_backup()
        except RemoteUnavailableError as e:
            result.warnings.append(f"Cloud backup is stale: {e}")

    async def _apply(self, result: MutationResult, *writes: Awaitable) -> MutationResult:
        """Run engine writes in order, then mirror the result remotely once."""
        for write in writes:
            try:
                await write
            except LocalStorageError as e:
                result.local_persisted = False
                result.warnings.append(f"Saved in memory only: {e}")
        await self._sync_after_write(result)
        return result

    async def add_vendor(
        self,
        name: str,
        contact_person: str = "",
        phone: str = "",
        email: str = "",
    ) -> MutationResult:
        """Create a vendor with a fresh identifier."""
        vendor = Vendor(
            id=new_identifier(),
            name=name,
            contact_person=contact_person,
            phone=phone,
            email=email,
        )
        return await self.save_vendor(vendor)

    async def save_vendor(self, vendor: Vendor) -> MutationResult:
        """Insert or replace a vendor."""
        warnings = self._validator.validate_vendor(vendor)
        result = MutationResult(entity_id=vendor.id, warnings=self._warning_messages(warnings))
        return await self._apply(result, self.engine.upsert_vendor(vendor))

    async def remove_vendor(self, vendor_id: str) -> MutationResult:
        """Delete a vendor together with its invoices."""
        result = MutationResult(entity_id=vendor_id)
        return await self._apply(result, self.engine.delete_vendor(vendor_id))

    async def add_invoice(
        self,
        vendor_id: str,
        issue_date: date,
        line_items: list[LineItem],
        invoice_number: str = "",
        total_amount: Optional[float] = None,
        paid_amount: float = 0.0,
    ) -> MutationResult:
        """
        Create an invoice with a fresh identifier.

        The total is the sum of line subtotals unless given explicitly, and
        is never recomputed afterwards.
        """
        if total_amount is None:
            total_amount = sum(item.subtotal for item in line_items)
        invoice = Invoice(
            id=new_identifier(),
            vendor_id=vendor_id,
            invoice_number=invoice_number,
            issue_date=issue_date,
            total_amount=total_amount,
            paid_amount=paid_amount,
            line_items=line_items,
        )
        return await self.save_invoice(invoice)

    async def save_invoice(self, invoice: Invoice) -> MutationResult:
        """Insert or replace an invoice."""
        vendor_ids = {vendor.id for vendor in await self.engine.list_vendors()}
        warnings = self._validator.validate_invoice(invoice, known_vendor_ids=vendor_ids)
        result = MutationResult(entity_id=invoice.id, warnings=self._warning_messages(warnings))
        return await self._apply(result, self.engine.upsert_invoice(invoice))

    async def remove_invoice(self, invoice_id: str) -> MutationResult:
        result = MutationResult(entity_id=invoice_id)
        return await self._apply(result, self.engine.delete_invoice(invoice_id))

    async def record_payment(
        self,
        invoice_id: str,
        paid_amount: float,
        payment_date: Optional[date] = None,
    ) -> MutationResult:
        """
        Set the running paid amount of an invoice.

        Raises:
            NotFoundError: no invoice with this id
        """
        self._validator.validate_payment(paid_amount)
        result = MutationResult(entity_id=invoice_id)
        return await self._apply(
            result,
            self.engine.set_invoice_payment(invoice_id, paid_amount, payment_date),
        )

    async def ingest_extraction(self, extracted: ExtractedInvoice) -> MutationResult:
        """
        Add a scanned invoice, creating its vendor if the name is new.

        Both records are validated before anything is written.
        """
        vendors = await self.engine.list_vendors()
        new_vendor, invoice = build_invoice_records(extracted, vendors)

        issues: list[ValidationIssue] = []
        vendor_ids = {vendor.id for vendor in vendors}
        if new_vendor is not None:
            issues.extend(self._validator.validate_vendor(new_vendor))
            vendor_ids.add(new_vendor.id)
        issues.extend(self._validator.validate_invoice(invoice, known_vendor_ids=vendor_ids))

        writes = []
        if new_vendor is not None:
            writes.append(self.engine.upsert_vendor(new_vendor))
        writes.append(self.engine.upsert_invoice(invoice))

        result = MutationResult(entity_id=invoice.id, warnings=self._warning_messages(issues))
        result = await self._apply(result, *writes)
        await self._audit_logger.log(
            AuditEventBuilder.extraction_ingested(
                invoice.id, invoice.vendor_id, new_vendor is not None
            )
        )
        return result

    async def scan_invoice(
        self,
        agent: InvoiceExtractionAgent,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
    ) -> Optional[MutationResult]:
        """Read an invoice image and add it. Returns None if nothing was read."""
        extracted = await agent.parse_invoice_image(image_bytes, mime_type)
        if extracted is None:
            return None
        return await self.ingest_extraction(extracted)


def create_backup_slot(settings: Optional[Settings] = None) -> RemoteBackupSlot:
    """Build the remote slot named by LEDGER_SYNC_BACKEND."""
    settings = settings or get_settings()
    backend = settings.sync.backend
    if backend == "firebase":
        return FirebaseBackupSlot(settings.firebase, settings.sync)
    if backend == "google_sheets":
        return GoogleSheetsBackupSlot(GoogleSheetsClient(settings.google_sheets))
    return InMemoryBackupSlot()


def create_session(
    settings: Optional[Settings] = None,
    cache: Optional[SnapshotCacheInterface] = None,
    remote: Optional[RemoteBackupSlot] = None,
) -> LedgerSession:
    """
    Factory function to create a session from configuration.

    Args:
        settings: Settings to use (defaults to get_settings())
        cache: Override the local cache (e.g. for tests)
        remote: Override the remote slot (e.g. for tests)

    Returns:
        An unopened LedgerSession; call open() next
    """
    settings = settings or get_settings()
    return LedgerSession(
        cache=cache or SqliteSnapshotCache(settings.storage),
        remote=remote or create_backup_slot(settings),
        background_uploads=settings.sync.background_uploads,
    )

