"""
Tests for BITA Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory and mocked backends)
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import date

from bita_ledger.models.ledger import (
    AccountIdentity,
    ExtractedInvoice,
    Invoice,
    LineItem,
    MutationResult,
    PaymentStatus,
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


class TestPaymentStatus:
    """Tests for status derivation."""

    def test_zero_paid_is_unpaid(self):
        assert derive_payment_status(0, 1000) == PaymentStatus.UNPAID

    def test_partial_payment(self):
        assert derive_payment_status(250, 1000) == PaymentStatus.PARTIAL

    def test_full_payment(self):
        assert derive_payment_status(1000, 1000) == PaymentStatus.PAID

    def test_overpayment_is_paid(self):
        assert derive_payment_status(1200, 1000) == PaymentStatus.PAID

    def test_status_values_match_stored_strings(self):
        assert PaymentStatus.UNPAID.value == "Unpaid"
        assert PaymentStatus.PARTIAL.value == "Partial"
        assert PaymentStatus.PAID.value == "Paid"


class TestLedgerModels:
    """Tests for vendor, line item and invoice models."""

    def test_vendor_strips_whitespace(self):
        vendor = Vendor(id="v1", name="  Acme Flour  ")
        assert vendor.name == "Acme Flour"

    def test_vendor_null_fields_become_blank(self):
        vendor = Vendor.model_validate(
            {"id": "v1", "name": "Acme", "contactPerson": None, "phone": None}
        )
        assert vendor.contact_person == ""
        assert vendor.phone == ""

    def test_vendor_requires_id(self):
        with pytest.raises(ValueError):
            Vendor(id="", name="Acme")

    def test_line_item_subtotal_is_quantity_times_price(self):
        item = LineItem(id="li1", name="Maida", quantity=3, unit_price=12.5)
        assert item.subtotal == 37.5

    def test_line_item_subtotal_follows_assignment(self):
        item = LineItem(id="li1", name="Maida", quantity=3, unit_price=10)
        item.quantity = 5
        assert item.subtotal == 50

    def test_line_item_dumps_camel_case_with_total(self):
        item = LineItem(id="li1", name="Maida", quantity=2, unit_price=10)
        dumped = item.model_dump(by_alias=True)
        assert dumped["unitPrice"] == 10
        assert dumped["total"] == 20

    def test_line_item_ignores_stored_total(self):
        item = LineItem.model_validate(
            {"id": "li1", "name": "Maida", "quantity": 2, "unitPrice": 10, "total": 999}
        )
        assert item.subtotal == 20

    def test_invoice_accepts_camel_case(self):
        invoice = Invoice.model_validate({
            "id": "i1",
            "vendorId": "v1",
            "invoiceNumber": "INV-1",
            "issueDate": "2024-03-04",
            "paymentDate": "",
            "totalAmount": 100,
            "paidAmount": None,
            "status": "Unpaid",
            "lineItems": [],
        })
        assert invoice.vendor_id == "v1"
        assert invoice.issue_date == date(2024, 3, 4)
        assert invoice.payment_date is None
        assert invoice.paid_amount == 0.0

    def test_balance_due(self, flour_invoice):
        assert flour_invoice.with_payment(400).balance_due == 600


class TestInvoicePayment:
    """Tests for payment application rules."""

    def test_full_payment_sets_date_to_today(self, flour_invoice):
        paid = flour_invoice.with_payment(1000, today=date(2024, 4, 1))
        assert paid.status == PaymentStatus.PAID
        assert paid.payment_date == date(2024, 4, 1)

    def test_explicit_payment_date_wins(self, flour_invoice):
        paid = flour_invoice.with_payment(1000, payment_date=date(2024, 3, 10))
        assert paid.payment_date == date(2024, 3, 10)

    def test_partial_payment_clears_date(self, flour_invoice):
        paid = flour_invoice.with_payment(1000, today=date(2024, 4, 1))
        partial = paid.with_payment(300)
        assert partial.status == PaymentStatus.PARTIAL
        assert partial.payment_date is None

    def test_already_paid_keeps_existing_date(self, flour_invoice):
        paid = flour_invoice.with_payment(1000, today=date(2024, 4, 1))
        topped_up = paid.with_payment(1100, today=date(2024, 5, 1))
        assert topped_up.payment_date == date(2024, 4, 1)

    def test_with_payment_does_not_mutate(self, flour_invoice):
        flour_invoice.with_payment(1000)
        assert flour_invoice.status == PaymentStatus.UNPAID
        assert flour_invoice.paid_amount == 0

    def test_normalized_fixes_inconsistent_status(self, flour_invoice):
        inconsistent = flour_invoice.model_copy(
            update={"status": PaymentStatus.PAID, "payment_date": date(2024, 3, 5)}
        )
        fixed = inconsistent.normalized()
        assert fixed.status == PaymentStatus.UNPAID
        assert fixed.payment_date is None


class TestExtractionModels:
    """Tests for AI extraction candidates."""

    def test_extracted_invoice_from_model_json(self):
        extracted = ExtractedInvoice.model_validate({
            "vendorName": "Acme Flour",
            "invoiceNumber": "A-77",
            "issueDate": "2024-02-29",
            "lineItems": [{"name": "Maida", "quantity": 2, "unitPrice": 40, "total": 80}],
            "totalAmount": 80,
        })
        assert extracted.vendor_name == "Acme Flour"
        assert extracted.issue_date == date(2024, 2, 29)
        assert extracted.line_items[0].unit_price == 40

    def test_unreadable_date_becomes_none(self):
        extracted = ExtractedInvoice.model_validate({"issueDate": "N/A"})
        assert extracted.issue_date is None

    def test_null_line_items_become_empty(self):
        extracted = ExtractedInvoice.model_validate({"lineItems": None})
        assert extracted.line_items == []


class TestSessionModels:
    """Tests for identity, results and validation issues."""

    def test_identifiers_are_unique_and_time_ordered(self):
        first = new_identifier()
        ids = {new_identifier() for _ in range(500)}
        assert len(ids) == 500
        assert len(first) == 28
        assert max(ids)[:12] >= first[:12]

    def test_account_identity_requires_id(self):
        with pytest.raises(ValueError):
            AccountIdentity(account_id="")

    def test_mutation_result_defaults(self):
        result = MutationResult(entity_id="v1")
        assert result.local_persisted is True
        assert result.uploaded is False
        assert result.warnings == []

    def test_validation_issue_severity(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.VENDOR_UPSERTED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.VENDOR_UPSERTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_builder_backup_upload_failed(self):
        event = AuditEventBuilder.backup_upload_failed("acct-1", "timeout")
        assert event.event_type == AuditEventType.BACKUP_UPLOAD_FAILED
        assert event.account_id == "acct-1"
        assert event.error_message == "timeout"

    def test_audit_event_builder_corrupt_snapshot_is_warning(self):
        event = AuditEventBuilder.corrupt_snapshot("local cache", "bad header")
        assert event.severity == AuditSeverity.WARNING

    def test_audit_event_to_log_dict(self):
        event = AuditEventBuilder.vendor_upserted("v1", "Acme Flour")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "vendor_upserted"
        assert log_dict["entity_id"] == "v1"
        assert "timestamp" in log_dict


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
