"""
Ledger Query Service

DESIGN DECISION: Derived figures are computed DETERMINISTICALLY from
what the engine returns. Nothing here writes, and nothing here is
estimated: an invoice with a missing vendor is reported as "Unknown",
never dropped.
"""

from datetime import date
from typing import Optional

from bita_ledger.engine import LedgerEngine
from bita_ledger.models.ledger import (
    DashboardSummary,
    Invoice,
    PaymentStatus,
    PriceHistoryPoint,
    Vendor,
)


UNKNOWN_VENDOR = "Unknown"


class LedgerQueryService:
    """
    Read-only views over the ledger: dashboard figures, outstanding
    invoices and item price history.
    """

    def __init__(self, engine: LedgerEngine):
        self._engine = engine

    @staticmethod
    def vendor_name(vendor_id: str, vendors: list[Vendor]) -> str:
        for vendor in vendors:
            if vendor.id == vendor_id:
                return vendor.name
        return UNKNOWN_VENDOR

    async def dashboard_summary(self, today: Optional[date] = None) -> DashboardSummary:
        """
        Headline figures.

        paid_this_month counts PAID invoices whose payment date falls in
        the month of `today`.
        """
        today = today or date.today()
        invoices = await self._engine.list_invoices()
        vendors = await self._engine.list_vendors()

        paid_this_month = sum(
            inv.total_amount
            for inv in invoices
            if inv.status == PaymentStatus.PAID
            and inv.payment_date is not None
            and (inv.payment_date.year, inv.payment_date.month) == (today.year, today.month)
        )

        return DashboardSummary(
            total_unpaid=sum(inv.total_amount - inv.paid_amount for inv in invoices),
            total_expenditure=sum(inv.total_amount for inv in invoices),
            paid_this_month=paid_this_month,
            unpaid_count=sum(1 for inv in invoices if inv.status != PaymentStatus.PAID),
            vendor_count=len(vendors),
        )

    async def outstanding_invoices(self, limit: int = 5) -> list[Invoice]:
        """Invoices not yet PAID, largest total first."""
        invoices = await self._engine.list_invoices()
        outstanding = [inv for inv in invoices if inv.status != PaymentStatus.PAID]
        outstanding.sort(key=lambda inv: inv.total_amount, reverse=True)
        return outstanding[:limit]

    async def price_history(self, search: str = "") -> dict[str, list[PriceHistoryPoint]]:
        """
        Unit price of every purchased item over time.

        Items are keyed by lower-cased, trimmed name; `search` filters keys
        by substring. Points are in issue-date order.
        """
        invoices = await self._engine.list_invoices()
        vendors = await self._engine.list_vendors()
        needle = search.strip().lower()

        history: dict[str, list[PriceHistoryPoint]] = {}
        for inv in invoices:
            vendor_name = self.vendor_name(inv.vendor_id, vendors)
            for item in inv.line_items:
                key = item.name.lower().strip()
                if not key or needle not in key:
                    continue
                history.setdefault(key, []).append(PriceHistoryPoint(
                    invoice_date=inv.issue_date,
                    price=item.unit_price,
                    vendor_name=vendor_name,
                ))

        for points in history.values():
            points.sort(key=lambda point: point.invoice_date)
        return history
