"""
Invoice Extraction Agent

DESIGN DECISION: The vision model is an external collaborator. It gets an
image and returns either a structured candidate or nothing.

CRITICAL BOUNDARIES:
- CAN: read vendor name, invoice number, date, line items and total
- CANNOT: write to the ledger (candidates go through the normal upsert path)
- CANNOT: override line item arithmetic (subtotals are always qty x price)

The invoice-level total is taken as given, exactly like manual entry.
"""

import json
import time
from datetime import date
from typing import Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from bita_ledger.config import GeminiSettings, get_settings
from bita_ledger.models.ledger import (
    ExtractedInvoice,
    Invoice,
    LineItem,
    PaymentStatus,
    Vendor,
    new_identifier,
)


logger = structlog.get_logger(__name__)

AI_CONTACT_PLACEHOLDER = "AI Identified"

EXTRACTION_PROMPT = """You are reading a wholesale invoice or receipt issued to a bakery.

Extract the following into JSON:
1. vendorName: the name of the wholesaler/vendor
2. invoiceNumber: the bill/invoice number
3. issueDate: the invoice date in YYYY-MM-DD format
4. lineItems: array of {name, category, quantity, unitPrice, total}
   (category is a short group such as Flour, Dairy, Sugar)
5. totalAmount: the grand total

Rules:
- Use null for anything you cannot read
- Return ONLY the raw JSON object, no markdown and no preamble"""

FALLBACK_PROMPT = (
    "Extract invoice data as JSON: vendorName, invoiceNumber, issueDate, "
    "lineItems, totalAmount."
)


class ExtractionError(Exception):
    """The model answered, but not with a usable candidate."""
    pass


def clean_model_json(text: str) -> str:
    """Strip code fences and anything outside the outermost braces."""
    cleaned = text.replace("```json", "").replace("```", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return cleaned


def parse_extraction(text: str) -> ExtractedInvoice:
    """
    Parse a model answer into a candidate.

    Raises:
        ExtractionError: not JSON, or not an object of the expected shape
    """
    try:
        data = json.loads(clean_model_json(text))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Model did not return JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError("Model returned JSON that is not an object")
    try:
        return ExtractedInvoice.model_validate(data)
    except ValidationError as e:
        raise ExtractionError(f"Unexpected extraction shape: {e}") from e


class InvoiceExtractionAgent:
    """
    Reads invoice images with a multimodal model.

    Tries the primary model first and the fallback model second. Every
    failure ends in None so the caller can offer manual entry.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._models: dict[str, genai.GenerativeModel] = {}
        if self._settings.is_configured:
            genai.configure(api_key=self._settings.api_key)

    def _get_model(self, model_name: str) -> genai.GenerativeModel:
        """Get or create a model handle."""
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(
                model_name=model_name,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                },
            )
        return self._models[model_name]

    async def _ask(
        self,
        model_name: str,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
    ) -> ExtractedInvoice:
        model = self._get_model(model_name)
        response = await model.generate_content_async(
            [prompt, {"mime_type": mime_type, "data": image_bytes}]
        )
        return parse_extraction(response.text)

    async def parse_invoice_image(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
    ) -> Optional[ExtractedInvoice]:
        """
        Extract a candidate invoice from an image.

        Returns None when extraction is disabled or both models fail.
        """
        if not self._settings.is_configured:
            logger.warning("extraction_disabled", reason="missing_api_key")
            return None

        attempts = [(self._settings.model_name, EXTRACTION_PROMPT)]
        if self._settings.fallback_model_name:
            attempts.append((self._settings.fallback_model_name, FALLBACK_PROMPT))

        for model_name, prompt in attempts:
            try:
                extracted = await self._ask(model_name, prompt, image_bytes, mime_type)
            except Exception as e:
                logger.error("extraction_failed", model=model_name, error=str(e))
                continue
            logger.info(
                "extraction_succeeded",
                model=model_name,
                vendor_name=extracted.vendor_name,
                line_items=len(extracted.line_items),
            )
            return extracted

        return None


def build_invoice_records(
    extracted: ExtractedInvoice,
    vendors: list[Vendor],
    today: Optional[date] = None,
) -> tuple[Optional[Vendor], Invoice]:
    """
    Turn a candidate into ledger records.

    Returns (new_vendor, invoice). new_vendor is None when the candidate's
    vendor matches an existing one by name (case-insensitive); otherwise
    it must be upserted before the invoice.
    """
    today = today or date.today()
    vendor_name = (extracted.vendor_name or "").strip() or "New Vendor"

    new_vendor = None
    vendor_id = None
    for vendor in vendors:
        if vendor.name.strip().lower() == vendor_name.lower():
            vendor_id = vendor.id
            break
    if vendor_id is None:
        new_vendor = Vendor(
            id=new_identifier(),
            name=vendor_name,
            contact_person=AI_CONTACT_PLACEHOLDER,
        )
        vendor_id = new_vendor.id

    line_items = [
        LineItem(
            id=new_identifier(),
            name=item.name,
            category=item.category,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )
        for item in extracted.line_items
    ]

    total_amount = extracted.total_amount
    if total_amount is None:
        total_amount = sum(item.subtotal for item in line_items)

    invoice = Invoice(
        id=new_identifier(),
        vendor_id=vendor_id,
        invoice_number=extracted.invoice_number or f"BITA-GEN-{int(time.time() * 1000)}",
        issue_date=extracted.issue_date or today,
        total_amount=total_amount,
        paid_amount=0.0,
        status=PaymentStatus.UNPAID,
        line_items=line_items,
    )
    return new_vendor, invoice
