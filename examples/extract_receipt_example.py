"""Example usage of the receipt extraction use case.

This example runs one receipt image through validation, extraction, status
classification and persistence, the same path the HTTP endpoint takes.
"""

import asyncio
import sys
from pathlib import Path

from receiptlens.config import load_settings
from receiptlens.main import read_upload
from receiptlens.models import ExtractionOptions
from receiptlens.service import ReceiptExtractionError, build_service


async def main(image_path: Path):
    """Example of extracting receipt data from an image file."""
    service = build_service(load_settings())

    try:
        record = await service.extract_receipt_details(
            read_upload(image_path),
            ExtractionOptions(include_metadata=True, save_image=False),
        )
    except ReceiptExtractionError as e:
        print(f"Extraction failed [{e.response.error_code}]: {e.response.message}")
        for detail in e.response.details:
            print(f"  {detail}")
        return

    print(f"Status: {record.status}")
    print(f"Vendor: {record.vendor_name}")
    print(f"Date: {record.date}")
    print(f"Total: {record.total} {record.currency}")
    print(f"Tax: {record.tax} (inclusive: {record.tax_details.tax_inclusive})")
    print(f"Confidence: {record.confidence_score:.2f}")

    # Access individual items
    print("\nItems:")
    for item in record.receipt_items:
        print(f"  - {item.item_name} x{item.quantity}: {item.item_cost}")

    if record.extraction_metadata:
        print(f"\nProcessing time: {record.extraction_metadata.processing_time_ms}ms")
        for warning in record.extraction_metadata.warnings:
            print(f"Warning: {warning}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python extract_receipt_example.py RECEIPT_IMAGE")
    asyncio.run(main(Path(sys.argv[1])))
