"""
Input Validation

DESIGN DECISION: Bad input is rejected BEFORE it reaches the engine.
A rejected vendor or invoice is never partially applied, and nothing
is written locally or remotely.

Validation NEVER silently fixes issues. It reports every problem
found so the caller can show them all at once.
"""

from typing import Optional

from bita_ledger.models.ledger import Invoice, ValidationIssue, Vendor


class LedgerValidationError(Exception):
    """Input rejected before reaching the engine."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        message = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(message or "Validation failed")


class LedgerValidator:
    """
    Validates vendors, invoices and payments on their way into the ledger.
    """

    def vendor_issues(self, vendor: Vendor) -> list[ValidationIssue]:
        issues = []
        if not vendor.name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Vendor name is required",
            ))
        if vendor.email and "@" not in vendor.email:
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_format",
                message=f"Not an email address: {vendor.email}",
                severity="warning",
            ))
        return issues

    def invoice_issues(self, invoice: Invoice) -> list[ValidationIssue]:
        issues = []
        if not invoice.vendor_id:
            issues.append(ValidationIssue(
                field="vendor_id",
                issue_type="missing",
                message="Invoice must reference a vendor",
            ))
        if invoice.total_amount < 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="invalid_value",
                message="Total amount cannot be negative",
            ))
        issues.extend(self.payment_issues(invoice.paid_amount))
        for position, item in enumerate(invoice.line_items):
            if item.quantity < 0 or item.unit_price < 0:
                issues.append(ValidationIssue(
                    field=f"line_items[{position}]",
                    issue_type="invalid_value",
                    message="Quantity and unit price cannot be negative",
                ))
        return issues

    def payment_issues(self, paid_amount: float) -> list[ValidationIssue]:
        if paid_amount < 0:
            return [ValidationIssue(
                field="paid_amount",
                issue_type="invalid_value",
                message="Paid amount cannot be negative",
            )]
        return []

    @staticmethod
    def _raise_on_errors(issues: list[ValidationIssue]) -> list[ValidationIssue]:
        """Raise if any issue is an error; return the warnings otherwise."""
        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            raise LedgerValidationError(errors)
        return issues

    def validate_vendor(self, vendor: Vendor) -> list[ValidationIssue]:
        """
        Check a vendor for creation or update.

        Returns warnings; raises LedgerValidationError on errors.
        """
        return self._raise_on_errors(self.vendor_issues(vendor))

    def validate_invoice(
        self,
        invoice: Invoice,
        known_vendor_ids: Optional[set[str]] = None,
    ) -> list[ValidationIssue]:
        """
        Check an invoice for creation or update.

        An unknown vendor is only a warning; such invoices display as
        "Unknown" but are kept.
        """
        issues = self.invoice_issues(invoice)
        if (
            known_vendor_ids is not None
            and invoice.vendor_id
            and invoice.vendor_id not in known_vendor_ids
        ):
            issues.append(ValidationIssue(
                field="vendor_id",
                issue_type="unknown_reference",
                message=f"No vendor with id {invoice.vendor_id}",
                severity="warning",
            ))
        return self._raise_on_errors(issues)

    def validate_payment(self, paid_amount: float) -> list[ValidationIssue]:
        return self._raise_on_errors(self.payment_issues(paid_amount))
