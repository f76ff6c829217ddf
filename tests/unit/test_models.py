"""Unit tests for data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from receiptlens.models import (
    ExtractionRecord,
    ExtractionStatus,
    ImageQuality,
    RawModelRecord,
    ReceiptData,
    ReceiptItem,
    StorageResult,
    UploadedImage,
    ValidationReport,
)

pytestmark = pytest.mark.unit


class TestReceiptItem:
    """Test cases for ReceiptItem model."""

    def test_create_receipt_item_minimal(self):
        """Test creating a receipt item with only required fields."""
        item = ReceiptItem(item_name="Coffee", item_cost=3.5)
        assert item.item_name == "Coffee"
        assert item.quantity == 1
        assert item.original_name is None

    def test_negative_cost_rejected(self):
        with pytest.raises(ValidationError):
            ReceiptItem(item_name="Refund", item_cost=-1.0)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            ReceiptItem(item_name="Coffee", item_cost=3.5, quantity=0)


class TestReceiptData:
    """Test cases for ReceiptData model."""

    def test_defaults(self):
        receipt = ReceiptData(vendor_name="Coffee Shop", confidence_score=0.95)

        assert receipt.currency == "USD"
        assert receipt.tax == 0.0
        assert receipt.total is None
        assert receipt.tax_details.tax_inclusive is False
        assert receipt.tax_details.additional_taxes == []
        assert receipt.receipt_items == []

    @pytest.mark.parametrize("score", [-0.1, 1.01])
    def test_confidence_bounds(self, score):
        with pytest.raises(ValidationError):
            ReceiptData(vendor_name="Coffee Shop", confidence_score=score)


class TestImageQuality:
    """Test cases for lenient ImageQuality parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [(False, False), ("false", False), ("False ", False), (True, True), (None, True)],
    )
    def test_is_clear_coercion(self, value, expected):
        assert ImageQuality(is_clear=value).is_clear is expected

    def test_non_list_issues_become_empty(self):
        assert ImageQuality(issues="blurry").issues == []


class TestRawModelRecord:
    """Test cases for the lenient decode target."""

    def test_wrong_types_become_none(self):
        raw = RawModelRecord.model_validate(
            {
                "vendor_name": ["not", "a", "string"],
                "total": {"amount": 5},
                "subtotal": "n/a",
                "tax_details": "included",
                "image_quality": [],
                "date": 20240315,
            }
        )

        assert raw.vendor_name is None
        assert raw.total is None
        assert raw.subtotal is None
        assert raw.tax_details is None
        assert raw.image_quality is None
        assert raw.date == "20240315"
        assert raw.image_is_unclear is False

    def test_tax_inclusive_strings(self):
        raw = RawModelRecord.model_validate({"tax_details": {"tax_inclusive": "TRUE"}})
        assert raw.tax_details.tax_inclusive is True

        raw = RawModelRecord.model_validate({"tax_details": {"tax_inclusive": "maybe"}})
        assert raw.tax_details.tax_inclusive is None


class TestExtractionRecord:
    """Test cases for ExtractionRecord model."""

    def test_extracted_at_defaults_to_now(self):
        record = ExtractionRecord(
            status=ExtractionStatus.SUCCESS,
            extraction_id="abc",
            currency="USD",
            vendor_name="Coffee Shop",
            confidence_score=0.95,
        )
        assert isinstance(record.extracted_at, datetime)
        assert record.extracted_at.tzinfo is not None

    def test_status_serializes_as_string(self):
        record = ExtractionRecord(
            status=ExtractionStatus.PARTIAL,
            extraction_id="abc",
            currency="USD",
            vendor_name="Coffee Shop",
            confidence_score=0.5,
        )
        assert record.model_dump(mode="json")["status"] == "partial"


def test_uploaded_image_size():
    upload = UploadedImage(filename="a.jpg", content_type="image/jpeg", content=b"12345")
    assert upload.size == 5


def test_declared_size_applies_only_to_unread_uploads():
    unread = UploadedImage(
        filename="a.jpg", content_type="image/jpeg", content=b"", declared_size=2048
    )
    read = UploadedImage(
        filename="a.jpg", content_type="image/jpeg", content=b"123", declared_size=2048
    )

    assert unread.size == 2048
    assert read.size == 3


def test_storage_result_is_frozen():
    result = StorageResult(success=True, value="abc.jpg")
    with pytest.raises(ValidationError):
        result.success = False


def test_validation_report_alias():
    report = ValidationReport(is_valid=True)
    assert report.model_dump(by_alias=True)["isValid"] is True
