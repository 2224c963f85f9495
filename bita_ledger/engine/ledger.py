"""
Ledger Engine

The in-memory relational store that is the single source of truth on the
device. Every mutation runs under one write lock:

    mutate -> export whole database -> save locally -> return

so an older export can never overwrite a newer one.

DESIGN DECISION: The engine is an explicit object owned by a session,
not module-level state. Two sessions (or two tests) never share a
database.
"""

import asyncio
import json
import sqlite3
from datetime import date, datetime
from typing import Optional

from bita_ledger.audit import AuditLogger
from bita_ledger.engine.codec import SnapshotCodec
from bita_ledger.models.audit import AuditEventBuilder
from bita_ledger.models.ledger import Invoice, LineItem, Vendor
from bita_ledger.services.storage.interface import (
    CorruptSnapshotError,
    LocalStorageError,
    NotFoundError,
    SnapshotCacheInterface,
)


def _vendor_to_row(vendor: Vendor) -> tuple:
    return (
        vendor.id,
        vendor.name,
        vendor.contact_person,
        vendor.phone,
        vendor.email,
    )


def _row_to_vendor(row: sqlite3.Row) -> Vendor:
    return Vendor(
        id=row["id"],
        name=row["name"],
        contact_person=row["contactPerson"],
        phone=row["phone"],
        email=row["email"],
    )


def _invoice_to_row(invoice: Invoice) -> tuple:
    return (
        invoice.id,
        invoice.vendor_id,
        invoice.invoice_number,
        invoice.issue_date.isoformat(),
        invoice.payment_date.isoformat() if invoice.payment_date else None,
        invoice.total_amount,
        invoice.paid_amount,
        invoice.status.value,
        json.dumps([item.model_dump(by_alias=True) for item in invoice.line_items]),
    )


# Older rows carry whatever date text the vision model returned.
_STORED_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")


def _parse_stored_date(value) -> Optional[date]:
    """Read a stored date column. Unreadable text gives None."""
    if value is None or isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in _STORED_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _row_to_invoice(row: sqlite3.Row) -> Invoice:
    """
    Map a stored row to an Invoice.

    Raises:
        ValueError: the row cannot be read as an invoice (includes
            pydantic's ValidationError and malformed line item JSON)
    """
    items_json = row["lineItems"]
    items_data = json.loads(items_json) if items_json else []
    issue_date = _parse_stored_date(row["issueDate"])
    if issue_date is None:
        raise ValueError(f"Unreadable issue date: {row['issueDate']!r}")
    return Invoice(
        id=row["id"],
        vendor_id=row["vendorId"],
        invoice_number=row["invoiceNumber"],
        issue_date=issue_date,
        payment_date=_parse_stored_date(row["paymentDate"]),
        total_amount=row["totalAmount"],
        paid_amount=row["paidAmount"],
        status=row["status"],
        line_items=[LineItem.model_validate(item) for item in items_data],
    )


class LedgerEngine:
    """
    Typed CRUD over vendors and invoices, persisted as a whole-database
    snapshot after every change.

    Construct with LedgerEngine.open(); it applies the initialization
    policy (explicit snapshot, else local cache, else empty schema that is
    persisted at once).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        cache: SnapshotCacheInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._conn = conn
        self._cache = cache
        self._audit_logger = audit_logger or AuditLogger()
        self._write_lock = asyncio.Lock()
        self._revision: Optional[int] = None
        self._dirty = False

    @classmethod
    async def open(
        cls,
        cache: SnapshotCacheInterface,
        snapshot: Optional[bytes] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "LedgerEngine":
        """
        Create the engine for a session.

        Order of preference: explicit snapshot, local cache, empty schema.
        A corrupt or unreadable source is logged and skipped; the engine
        always comes up.

        When the cache could not be read at all, the empty schema is NOT
        saved: the stored copy may still be good and is only replaced by
        the next real mutation.
        """
        audit_logger = audit_logger or AuditLogger()
        conn: Optional[sqlite3.Connection] = None
        persist_now = False
        load_failed = False

        if snapshot:
            try:
                conn = SnapshotCodec.load(snapshot)
                persist_now = True
            except CorruptSnapshotError as e:
                await audit_logger.log(
                    AuditEventBuilder.corrupt_snapshot("supplied snapshot", str(e))
                )

        if conn is None:
            try:
                saved = await cache.load()
            except LocalStorageError as e:
                await audit_logger.log(AuditEventBuilder.local_storage_failed("load", str(e)))
                saved = None
                load_failed = True
            if saved:
                try:
                    conn = SnapshotCodec.load(saved)
                except CorruptSnapshotError as e:
                    await audit_logger.log(
                        AuditEventBuilder.corrupt_snapshot("local cache", str(e))
                    )

        if conn is None:
            conn = SnapshotCodec.load(None)
            persist_now = not load_failed

        engine = cls(conn, cache, audit_logger)
        if persist_now:
            try:
                await engine.persist()
            except LocalStorageError:
                # Already logged by persist(); the engine keeps serving.
                pass
        return engine

    @property
    def revision(self) -> Optional[int]:
        """Revision marker of the last successful local save."""
        return self._revision

    @property
    def has_unsaved_changes(self) -> bool:
        """True when the last local save failed and has not been retried."""
        return self._dirty

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist_locked(self) -> int:
        data = SnapshotCodec.export(self._conn)
        try:
            revision = await self._cache.save(data)
        except LocalStorageError as e:
            self._dirty = True
            await self._audit_logger.log(AuditEventBuilder.local_storage_failed("save", str(e)))
            raise
        self._dirty = False
        self._revision = revision
        await self._audit_logger.log(AuditEventBuilder.snapshot_persisted(len(data), revision))
        return revision

    async def persist(self) -> int:
        """
        Save the current state to the local cache.

        Raises:
            LocalStorageError: the in-memory state is kept and stays
                authoritative; the next mutation tries again
        """
        async with self._write_lock:
            return await self._persist_locked()

    def export_snapshot(self) -> bytes:
        """Full current state through the codec. No side effects."""
        return SnapshotCodec.export(self._conn)

    async def import_snapshot(self, data: bytes) -> None:
        """
        Replace the whole state with the given snapshot and save it locally.

        Raises:
            CorruptSnapshotError: data is not a valid image; current state
                is left untouched
            LocalStorageError: the new state is in memory but not yet saved
        """
        new_conn = SnapshotCodec.load(data)
        async with self._write_lock:
            old_conn, self._conn = self._conn, new_conn
            old_conn.close()
            await self._persist_locked()

    async def reset(self) -> None:
        """Discard all state and start from an empty schema (not persisted)."""
        new_conn = SnapshotCodec.load(None)
        async with self._write_lock:
            old_conn, self._conn = self._conn, new_conn
            old_conn.close()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _read_invoice(self, row: sqlite3.Row) -> Optional[Invoice]:
        """Map a row, or log it and return None when it cannot be read."""
        try:
            return _row_to_invoice(row)
        except ValueError as e:
            await self._audit_logger.log(
                AuditEventBuilder.corrupt_snapshot(f"invoice row {row['id']}", str(e))
            )
            return None

    async def list_vendors(self) -> list[Vendor]:
        """All vendors. Order is not guaranteed."""
        rows = self._conn.execute("SELECT * FROM vendors").fetchall()
        return [_row_to_vendor(row) for row in rows]

    async def list_invoices(self) -> list[Invoice]:
        """
        All readable invoices. Order is not guaranteed.

        A row that cannot be read is logged and left out of the result; it
        stays in the database untouched.
        """
        rows = self._conn.execute("SELECT * FROM invoices").fetchall()
        invoices = []
        for row in rows:
            invoice = await self._read_invoice(row)
            if invoice is not None:
                invoices.append(invoice)
        return invoices

    async def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        row = self._conn.execute(
            "SELECT * FROM vendors WHERE id = ?", (vendor_id,)
        ).fetchone()
        return _row_to_vendor(row) if row else None

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        row = self._conn.execute(
            "SELECT * FROM invoices WHERE id = ?", (invoice_id,)
        ).fetchone()
        return await self._read_invoice(row) if row else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def upsert_vendor(self, vendor: Vendor) -> None:
        """Insert or replace a vendor by id."""
        async with self._write_lock:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO vendors (id, name, contactPerson, phone, email) "
                    "VALUES (?, ?, ?, ?, ?)",
                    _vendor_to_row(vendor),
                )
            await self._audit_logger.log(AuditEventBuilder.vendor_upserted(vendor.id, vendor.name))
            await self._persist_locked()

    async def upsert_invoice(self, invoice: Invoice) -> Invoice:
        """
        Insert or replace an invoice by id.

        Status and payment date are re-derived from paid_amount before the
        write. Returns the invoice as stored.
        """
        invoice = invoice.normalized()
        async with self._write_lock:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO invoices (id, vendorId, invoiceNumber, issueDate, "
                    "paymentDate, totalAmount, paidAmount, status, lineItems) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _invoice_to_row(invoice),
                )
            await self._audit_logger.log(
                AuditEventBuilder.invoice_upserted(
                    invoice.id, invoice.vendor_id, invoice.total_amount
                )
            )
            await self._persist_locked()
        return invoice

    async def delete_vendor(self, vendor_id: str) -> int:
        """
        Delete a vendor and every invoice that references it, as one unit.

        Returns the number of invoices removed.
        """
        async with self._write_lock:
            with self._conn:
                self._conn.execute("DELETE FROM vendors WHERE id = ?", (vendor_id,))
                cursor = self._conn.execute(
                    "DELETE FROM invoices WHERE vendorId = ?", (vendor_id,)
                )
            removed = cursor.rowcount
            await self._audit_logger.log(AuditEventBuilder.vendor_deleted(vendor_id, removed))
            await self._persist_locked()
        return removed

    async def delete_invoice(self, invoice_id: str) -> None:
        async with self._write_lock:
            with self._conn:
                self._conn.execute("DELETE FROM invoices WHERE id = ?", (invoice_id,))
            await self._audit_logger.log(AuditEventBuilder.invoice_deleted(invoice_id))
            await self._persist_locked()

    async def set_invoice_payment(
        self,
        invoice_id: str,
        paid_amount: float,
        payment_date: Optional[date] = None,
    ) -> Invoice:
        """
        Record the running paid amount of an invoice.

        Status is recomputed; the payment date is set when the invoice is
        PAID (today unless given) and cleared otherwise.

        Raises:
            NotFoundError: no invoice with this id, or its row is unreadable
        """
        async with self._write_lock:
            row = self._conn.execute(
                "SELECT * FROM invoices WHERE id = ?", (invoice_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Invoice not found: {invoice_id}")
            current = await self._read_invoice(row)
            if current is None:
                raise NotFoundError(f"Invoice is unreadable: {invoice_id}")

            updated = current.with_payment(paid_amount, payment_date)
            with self._conn:
                self._conn.execute(
                    "UPDATE invoices SET paidAmount = ?, status = ?, paymentDate = ? WHERE id = ?",
                    (
                        updated.paid_amount,
                        updated.status.value,
                        updated.payment_date.isoformat() if updated.payment_date else None,
                        invoice_id,
                    ),
                )
            await self._audit_logger.log(
                AuditEventBuilder.payment_recorded(
                    invoice_id, updated.paid_amount, updated.status.value
                )
            )
            await self._persist_locked()
        return updated
