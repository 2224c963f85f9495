"""
Tests for the invoice extraction agent.

The Gemini SDK is replaced with mocks; no model is called.
"""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bita_ledger.agents import (
    ExtractionError,
    InvoiceExtractionAgent,
    build_invoice_records,
    parse_extraction,
)
from bita_ledger.agents.extraction import AI_CONTACT_PLACEHOLDER, clean_model_json
from bita_ledger.config import GeminiSettings
from bita_ledger.models.ledger import (
    ExtractedInvoice,
    ExtractedLineItem,
    PaymentStatus,
    Vendor,
)


MODEL_ANSWER = """```json
{
  "vendorName": "Acme Flour",
  "invoiceNumber": "A-77",
  "issueDate": "2024-02-29",
  "lineItems": [
    {"name": "Maida", "category": "Flour", "quantity": 10, "unitPrice": 40, "total": 400}
  ],
  "totalAmount": 410
}
```"""


def _response(text: str) -> MagicMock:
    response = MagicMock()
    response.text = text
    return response


class TestParsing:
    """Tests for turning model answers into candidates."""

    def test_clean_strips_fences_and_preamble(self):
        assert clean_model_json('Sure! ```json\n{"a": 1}\n``` Hope that helps') == '{"a": 1}'

    def test_parse_model_answer(self):
        extracted = parse_extraction(MODEL_ANSWER)
        assert extracted.vendor_name == "Acme Flour"
        assert extracted.issue_date == date(2024, 2, 29)
        assert extracted.line_items[0].unit_price == 40
        assert extracted.total_amount == 410

    def test_not_json(self):
        with pytest.raises(ExtractionError):
            parse_extraction("I could not read this invoice.")

    def test_json_array_is_rejected(self):
        with pytest.raises(ExtractionError):
            parse_extraction("[1, 2, 3]")

    def test_wrong_shape_is_rejected(self):
        with pytest.raises(ExtractionError):
            parse_extraction('{"lineItems": "many"}')


class TestInvoiceExtractionAgent:
    """Tests for model selection and failure handling."""

    def test_missing_api_key_returns_none(self):
        agent = InvoiceExtractionAgent(GeminiSettings(api_key=""))
        assert asyncio.run(agent.parse_invoice_image(b"image")) is None

    @patch("bita_ledger.agents.extraction.genai")
    def test_primary_model_answer(self, mock_genai):
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=_response(MODEL_ANSWER))
        mock_genai.GenerativeModel.return_value = model

        agent = InvoiceExtractionAgent(GeminiSettings(api_key="test-key"))
        extracted = asyncio.run(agent.parse_invoice_image(b"image-bytes", "image/png"))

        assert extracted.vendor_name == "Acme Flour"
        mock_genai.configure.assert_called_once_with(api_key="test-key")
        prompt, image = model.generate_content_async.await_args.args[0]
        assert image == {"mime_type": "image/png", "data": b"image-bytes"}
        assert mock_genai.GenerativeModel.call_args.kwargs["model_name"] == "gemma-3-27b-it"

    @patch("bita_ledger.agents.extraction.genai")
    def test_falls_back_to_second_model(self, mock_genai):
        primary = MagicMock()
        primary.generate_content_async = AsyncMock(side_effect=RuntimeError("model overloaded"))
        fallback = MagicMock()
        fallback.generate_content_async = AsyncMock(return_value=_response(MODEL_ANSWER))
        models = {"gemma-3-27b-it": primary, "gemini-1.5-flash": fallback}
        mock_genai.GenerativeModel.side_effect = lambda model_name, **kwargs: models[model_name]

        agent = InvoiceExtractionAgent(GeminiSettings(api_key="test-key"))
        extracted = asyncio.run(agent.parse_invoice_image(b"image"))

        assert extracted.invoice_number == "A-77"
        fallback.generate_content_async.assert_awaited_once()

    @patch("bita_ledger.agents.extraction.genai")
    def test_both_models_fail(self, mock_genai):
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=_response("no idea"))
        mock_genai.GenerativeModel.return_value = model

        agent = InvoiceExtractionAgent(GeminiSettings(api_key="test-key"))
        assert asyncio.run(agent.parse_invoice_image(b"image")) is None
        assert model.generate_content_async.await_count == 2

    @patch("bita_ledger.agents.extraction.genai")
    def test_no_fallback_configured(self, mock_genai):
        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=RuntimeError("down"))
        mock_genai.GenerativeModel.return_value = model

        agent = InvoiceExtractionAgent(GeminiSettings(api_key="test-key", fallback_model_name=None))
        assert asyncio.run(agent.parse_invoice_image(b"image")) is None
        assert model.generate_content_async.await_count == 1


class TestBuildInvoiceRecords:
    """Tests for mapping candidates to ledger records."""

    def test_new_vendor(self):
        extracted = parse_extraction(MODEL_ANSWER)
        new_vendor, invoice = build_invoice_records(extracted, vendors=[])

        assert new_vendor.name == "Acme Flour"
        assert new_vendor.contact_person == AI_CONTACT_PLACEHOLDER
        assert invoice.vendor_id == new_vendor.id
        assert invoice.total_amount == 410
        assert invoice.paid_amount == 0
        assert invoice.status == PaymentStatus.UNPAID
        assert invoice.line_items[0].subtotal == 400

    def test_existing_vendor_matched_case_insensitively(self):
        extracted = ExtractedInvoice(vendor_name="  acme flour ")
        existing = Vendor(id="v1", name="Acme Flour")
        new_vendor, invoice = build_invoice_records(extracted, vendors=[existing])
        assert new_vendor is None
        assert invoice.vendor_id == "v1"

    def test_defaults_for_missing_fields(self):
        extracted = ExtractedInvoice(
            line_items=[
                ExtractedLineItem(name="Eggs", quantity=30, unit_price=6),
                ExtractedLineItem(name="Milk", quantity=4, unit_price=55),
            ],
        )
        new_vendor, invoice = build_invoice_records(extracted, vendors=[], today=date(2024, 3, 15))
        assert new_vendor.name == "New Vendor"
        assert invoice.issue_date == date(2024, 3, 15)
        assert invoice.invoice_number.startswith("BITA-GEN-")
        assert invoice.total_amount == 400

    def test_line_items_get_fresh_ids(self):
        extracted = parse_extraction(MODEL_ANSWER)
        _, first = build_invoice_records(extracted, vendors=[])
        _, second = build_invoice_records(extracted, vendors=[])
        assert first.line_items[0].id != second.line_items[0].id
        assert first.id != second.id


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
