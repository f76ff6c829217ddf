"""Unit tests for decoding model output."""

import json

import pytest

from receiptlens.extraction.errors import (
    ErrorCode,
    MissingFieldError,
    NotAReceiptError,
    ResponseParseError,
)
from receiptlens.extraction.parser import decode_response, parse_response, strip_code_fences
from tests.utils import receipt_json, receipt_payload

pytestmark = pytest.mark.unit


class TestStripCodeFences:
    """Test cases for markdown fence removal."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_plain_text_untouched(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestDecodeResponse:
    """Test cases for decode_response."""

    def test_fenced_receipt_is_decoded(self):
        raw = decode_response(f"```json\n{receipt_json()}\n```")

        assert raw.vendor_name == "Grocery Store Inc."
        assert len(raw.receipt_items) == 2
        assert raw.total == 9.71

    def test_invalid_json(self):
        with pytest.raises(ResponseParseError) as exc_info:
            decode_response("Sorry, I cannot read this receipt.")

        assert exc_info.value.reason == ResponseParseError.MALFORMED
        assert exc_info.value.error_code == ErrorCode.AI_RESPONSE_ERROR

    def test_top_level_array_is_rejected(self):
        with pytest.raises(ResponseParseError, match="JSON object"):
            decode_response("[1, 2, 3]")

    def test_not_a_receipt(self):
        content = json.dumps({"is_receipt": False, "reason": "This is a photo of a cat"})

        with pytest.raises(NotAReceiptError) as exc_info:
            decode_response(content)

        assert exc_info.value.reason == "This is a photo of a cat"
        assert exc_info.value.client_message == "This is a photo of a cat"
        assert exc_info.value.error_code == ErrorCode.NOT_A_RECEIPT

    def test_not_a_receipt_without_reason(self):
        with pytest.raises(NotAReceiptError, match="does not appear to be a receipt"):
            decode_response('{"is_receipt": false}')

    @pytest.mark.parametrize("vendor", [None, "", "   "])
    def test_missing_vendor(self, vendor):
        with pytest.raises(MissingFieldError) as exc_info:
            decode_response(receipt_json(vendor_name=vendor))

        assert exc_info.value.field == "vendor_name"
        assert exc_info.value.error_code == ErrorCode.AI_RESPONSE_ERROR

    @pytest.mark.parametrize("items", [None, [], "Milk 3.99"])
    def test_missing_items(self, items):
        with pytest.raises(MissingFieldError) as exc_info:
            decode_response(receipt_json(receipt_items=items))

        assert exc_info.value.field == "receipt_items"
        assert exc_info.value.error_code == ErrorCode.NO_ITEMS_FOUND
        assert "Could not identify any items" in exc_info.value.client_message

    @pytest.mark.parametrize("total", [None, -1, "abc", True])
    def test_clear_image_requires_non_negative_total(self, total):
        with pytest.raises(ResponseParseError, match="Total must be a positive number"):
            decode_response(receipt_json(total=total))

    def test_unclear_image_allows_null_total(self):
        raw = decode_response(
            receipt_json(
                total=None,
                image_quality={"is_clear": False, "issues": ["Image is blurry"]},
            )
        )
        assert raw.total is None
        assert raw.image_is_unclear

    def test_unclear_image_rejects_negative_total(self):
        with pytest.raises(ResponseParseError, match="or null if image quality is poor"):
            decode_response(
                receipt_json(total=-5, image_quality={"is_clear": False, "issues": []})
            )

    def test_numeric_strings_are_accepted(self):
        raw = decode_response(receipt_json(total="1,234.50", subtotal="1234.50", tax="0"))
        assert raw.total == 1234.5
        assert raw.subtotal == 1234.5

    def test_lenient_item_coercion(self):
        """Test that bad item fields are coerced rather than rejected."""
        raw = decode_response(
            receipt_json(
                receipt_items=[
                    {"item_name": None, "item_cost": -3, "quantity": 0},
                    {"item_name": "Tea", "item_cost": "2.5", "quantity": "2"},
                    "not an item",
                ]
            )
        )

        assert len(raw.receipt_items) == 2
        assert raw.receipt_items[0].item_name == "Unknown Item"
        assert raw.receipt_items[0].item_cost == 0.0
        assert raw.receipt_items[0].quantity == 1
        assert raw.receipt_items[1].item_cost == 2.5
        assert raw.receipt_items[1].quantity == 2

    def test_non_finite_numbers_are_not_accepted(self):
        """Test that 1e999 decodes as infinity and is treated as no number."""
        content = receipt_json().replace('"quantity": 2', '"quantity": 1e999')
        content = content.replace('"item_cost": 3.99', '"item_cost": 1e999')

        raw = decode_response(content)

        assert raw.receipt_items[0].item_cost == 0.0
        assert raw.receipt_items[1].quantity == 1

    @pytest.mark.parametrize("total", ["1e999", "NaN", "-Infinity"])
    def test_non_finite_total_is_rejected(self, total):
        content = receipt_json().replace('"total": 9.71', f'"total": {total}')

        with pytest.raises(ResponseParseError) as exc_info:
            decode_response(content)

        assert exc_info.value.error_code == ErrorCode.AI_RESPONSE_ERROR

    def test_unknown_fields_are_ignored(self):
        raw = decode_response(receipt_json(store_address="1 Main St"))
        assert not hasattr(raw, "store_address")


def test_parse_response_returns_repaired_receipt():
    receipt = parse_response(receipt_json(currency="€", date="15/03/2024", subtotal=None))

    assert receipt.currency == "EUR"
    assert receipt.date == "2024-03-15"
    # explicit tax_inclusive False keeps the exclusive regime
    assert receipt.subtotal == 8.99


def test_parse_response_is_deterministic():
    content = json.dumps(receipt_payload())
    assert parse_response(content) == parse_response(content)
