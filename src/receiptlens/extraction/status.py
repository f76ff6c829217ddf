"""Classification of an extraction into success, partial or failed."""

from collections.abc import Sequence

from receiptlens.models import ExtractionStatus, ReceiptData

MAX_WARNINGS_FOR_SUCCESS = 2
MIN_CONFIDENCE_FOR_SUCCESS = 0.7


def classify_extraction(receipt: ReceiptData, warnings: Sequence[str]) -> ExtractionStatus:
    """Decision list; the first matching rule wins.

    Missing vendor, total or items always fails, regardless of confidence.
    """
    if not receipt.vendor_name or not receipt.total or not receipt.receipt_items:
        return ExtractionStatus.FAILED

    if (
        len(warnings) > MAX_WARNINGS_FOR_SUCCESS
        or receipt.confidence_score < MIN_CONFIDENCE_FOR_SUCCESS
    ):
        return ExtractionStatus.PARTIAL

    return ExtractionStatus.SUCCESS
