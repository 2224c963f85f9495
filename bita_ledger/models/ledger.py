"""
Core Data Models for BITA Ledger

These models define the schemas for everything held in the local database
and everything that crosses the session boundary.

DESIGN DECISION: Python attributes are snake_case, but the serialized
form (SQLite columns, the line item JSON blob) keeps the camelCase names
the ledger has always used. Snapshots written by earlier versions of the
app therefore load without migration.
"""

import secrets
import time
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS & HELPERS
# =============================================================================

class PaymentStatus(str, Enum):
    """
    Payment status for an invoice.

    Always derived from (paid_amount, total_amount), see derive_payment_status.
    """
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


def derive_payment_status(paid_amount: float, total_amount: float) -> PaymentStatus:
    """
    Derive the payment status of an invoice.

    paid == 0         -> UNPAID
    0 < paid < total  -> PARTIAL
    paid >= total     -> PAID
    """
    if paid_amount <= 0:
        return PaymentStatus.UNPAID
    if paid_amount < total_amount:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


def new_identifier() -> str:
    """
    Generate a record identifier.

    Identifiers are created on-device without coordination, so they are
    time-ordered (epoch milliseconds) with 64 random bits appended to keep
    records from two devices of the same account apart.
    """
    millis = int(time.time() * 1000)
    return f"{millis:012x}{secrets.token_hex(8)}"


_LEDGER_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    validate_assignment=True,
)


def _none_to_empty(v: Any) -> Any:
    return "" if v is None else v


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Vendor(BaseModel):
    """
    A wholesaler the bakery buys from.

    The name is required for creation (see LedgerValidator), but the model
    accepts a blank one so that older restored data still loads.
    """
    model_config = _LEDGER_CONFIG

    id: str = Field(..., min_length=1, description="Record identifier")
    name: str = Field(default="", description="Display name")
    contact_person: str = ""
    phone: str = ""
    email: str = ""

    @field_validator('name', 'contact_person', 'phone', 'email', mode='before')
    @classmethod
    def blank_for_null(cls, v: Any) -> Any:
        return _none_to_empty(v)


class LineItem(BaseModel):
    """
    A single line on an invoice. Embedded in Invoice, never its own row.

    The subtotal is always quantity x unit price. A stored subtotal
    (JSON key "total") is ignored on load and recomputed.
    """
    model_config = _LEDGER_CONFIG

    id: str = Field(..., min_length=1)
    name: str = ""
    category: str = ""
    quantity: float = 0.0
    unit_price: float = 0.0

    @field_validator('name', 'category', mode='before')
    @classmethod
    def blank_for_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator('quantity', 'unit_price', mode='before')
    @classmethod
    def zero_for_null(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    @computed_field(alias="total")
    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price


class Invoice(BaseModel):
    """
    A vendor invoice.

    total_amount is fixed when the invoice is created and is NOT recomputed
    from the line items afterwards. paid_amount is a running total; status
    and payment_date follow it (the engine keeps them consistent).
    """
    model_config = _LEDGER_CONFIG

    id: str = Field(..., min_length=1)
    vendor_id: str = ""
    invoice_number: str = ""
    issue_date: date
    payment_date: Optional[date] = None
    total_amount: float = 0.0
    paid_amount: float = 0.0
    status: PaymentStatus = PaymentStatus.UNPAID
    line_items: list[LineItem] = Field(default_factory=list)

    @field_validator('vendor_id', 'invoice_number', mode='before')
    @classmethod
    def blank_for_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator('total_amount', 'paid_amount', mode='before')
    @classmethod
    def zero_for_null(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    @field_validator('payment_date', mode='before')
    @classmethod
    def none_for_blank_date(cls, v: Any) -> Any:
        return None if v == "" else v

    @property
    def balance_due(self) -> float:
        return self.total_amount - self.paid_amount

    def with_payment(
        self,
        paid_amount: float,
        payment_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> "Invoice":
        """
        Return a copy with the payment applied.

        Status is re-derived. When the result is PAID the payment date is the
        one supplied, else the existing one if the invoice was already PAID,
        else today. Any other status clears the payment date.
        """
        status = derive_payment_status(paid_amount, self.total_amount)
        if status == PaymentStatus.PAID:
            if payment_date is None:
                if self.status == PaymentStatus.PAID and self.payment_date:
                    payment_date = self.payment_date
                else:
                    payment_date = today or date.today()
        else:
            payment_date = None
        return self.model_copy(
            update={
                "paid_amount": paid_amount,
                "status": status,
                "payment_date": payment_date,
            }
        )

    def normalized(self, today: Optional[date] = None) -> "Invoice":
        """Return a copy whose status and payment date agree with paid_amount."""
        return self.with_payment(self.paid_amount, self.payment_date, today=today)


# =============================================================================
# AI EXTRACTION CANDIDATES
# =============================================================================

class ExtractedLineItem(BaseModel):
    """A line item as read by the vision model. Not yet trusted."""
    model_config = _LEDGER_CONFIG

    name: str = ""
    category: str = ""
    quantity: float = 0.0
    unit_price: float = 0.0
    total: Optional[float] = None

    @field_validator('name', 'category', mode='before')
    @classmethod
    def blank_for_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator('quantity', 'unit_price', mode='before')
    @classmethod
    def zero_for_null(cls, v: Any) -> Any:
        return 0.0 if v is None else v


class ExtractedInvoice(BaseModel):
    """
    Structured candidate record returned by the vision model.

    CRITICAL: This is PROPOSED data. It only enters the ledger through
    the normal upsert path.
    """
    model_config = _LEDGER_CONFIG

    vendor_name: Optional[str] = None
    invoice_number: Optional[str] = None
    issue_date: Optional[date] = None
    line_items: list[ExtractedLineItem] = Field(default_factory=list)
    total_amount: Optional[float] = None

    @field_validator('issue_date', mode='before')
    @classmethod
    def drop_unparseable_date(cls, v: Any) -> Any:
        """Models sometimes answer "N/A" or a free-form date; treat as missing."""
        if v is None or isinstance(v, date):
            return v
        try:
            return date.fromisoformat(str(v).strip())
        except ValueError:
            return None

    @field_validator('line_items', mode='before')
    @classmethod
    def empty_for_null(cls, v: Any) -> Any:
        return [] if v is None else v


# =============================================================================
# SESSION & QUERY MODELS
# =============================================================================

class AccountIdentity(BaseModel):
    """Authenticated account handed over by the identity provider."""

    account_id: str = Field(..., min_length=1)
    id_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the remote backend, if it needs one"
    )


class MutationResult(BaseModel):
    """
    Outcome of a session mutation.

    Storage and network failures are not fatal; they show up here as
    flags and warnings while the in-memory ledger stays authoritative.
    """

    entity_id: Optional[str] = None
    local_persisted: bool = True
    uploaded: bool = False
    upload_scheduled: bool = False
    warnings: list[str] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value')"
    )
    message: str
    severity: str = Field(default="error", pattern="^(error|warning)$")


class DashboardSummary(BaseModel):
    """Headline figures over the whole ledger."""

    total_unpaid: float = 0.0
    total_expenditure: float = 0.0
    paid_this_month: float = 0.0
    unpaid_count: int = 0
    vendor_count: int = 0


class PriceHistoryPoint(BaseModel):
    """Unit price of an item on one invoice."""

    invoice_date: date
    price: float
    vendor_name: str
