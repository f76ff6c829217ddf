"""Consistency checks over extracted receipt data and upload constraints.

Everything here is pure: the checks accept either a pydantic model or the
plain mapping a caller posted, and return advisory warning strings rather
than raising.
"""

from collections.abc import Iterable, Mapping
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

from receiptlens.extraction.errors import FileValidationError
from receiptlens.models import UploadedImage

TOLERANCE = 0.01

SUPPORTED_CURRENCIES = [
    "USD",
    "EUR",
    "GBP",
    "CAD",
    "AUD",
    "SGD",
    "CHF",
    "JPY",
    "CNY",
    "INR",
    "NZD",
    "HKD",
]

ALLOWED_MIME_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
ALLOWED_EXTENSIONS = [".jpg", ".jpeg", ".png", ".webp"]
MAX_FILE_SIZE = 10 * 1024 * 1024


def is_supported_currency(currency: str | None) -> bool:
    return bool(currency) and currency.upper() in SUPPORTED_CURRENCIES


def _as_mapping(data: Any) -> Mapping[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, Mapping):
        return data
    return {}


def _item_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def items_total(items: Iterable[Mapping[str, Any] | BaseModel] | None) -> float:
    """Sum of item_cost x quantity, with quantity defaulting to 1."""
    total = 0.0
    for item in items or []:
        if not isinstance(item, (Mapping, BaseModel)):
            continue
        fields = _as_mapping(item)
        cost = _to_float(fields.get("item_cost")) or 0.0
        quantity = _to_float(fields.get("quantity")) or 1
        total += cost * quantity
    return total


def check_totals(
    subtotal: float,
    tax: float,
    total: float,
    tax_inclusive: bool,
    items: Iterable[Mapping[str, Any] | BaseModel] | None = None,
) -> str | None:
    """Return a warning when subtotal, tax and total disagree, else None.

    Tax-inclusive receipts that itemize at post-tax prices (items sum to the
    total rather than the subtotal) are accepted.
    """
    if tax_inclusive:
        expected_subtotal = total - tax
        if abs(expected_subtotal - subtotal) <= TOLERANCE:
            return None
        if abs(items_total(items) - total) <= TOLERANCE:
            return None
        return (
            f"Tax-inclusive receipt validation: Expected subtotal of "
            f"{expected_subtotal:.2f} (total {total} - tax {tax}), "
            f"but found {subtotal}"
        )

    calculated_total = subtotal + tax
    if abs(calculated_total - total) <= TOLERANCE:
        return None
    return (
        f"Mathematical inconsistency: subtotal ({subtotal}) + tax ({tax}) = "
        f"{calculated_total:.2f}, but total is {total}"
    )


def validate_extraction_consistency(
    data: Mapping[str, Any] | BaseModel,
) -> list[str]:
    """Compute consistency warnings for an extraction, in a fixed order.

    Checks: mathematical consistency, vendor name, items, date, currency.
    """
    fields = _as_mapping(data)
    warnings: list[str] = []

    subtotal = _to_float(fields.get("subtotal"))
    tax = _to_float(fields.get("tax"))
    total = _to_float(fields.get("total"))
    if subtotal is not None and tax is not None and total is not None:
        tax_details = fields.get("tax_details") or {}
        tax_inclusive = _as_mapping(tax_details).get("tax_inclusive") is True
        items = _item_list(fields.get("receipt_items"))
        warning = check_totals(subtotal, tax, total, tax_inclusive, items)
        if warning:
            warnings.append(warning)

    if not fields.get("vendor_name"):
        warnings.append("Vendor name could not be extracted")

    if not _item_list(fields.get("receipt_items")):
        warnings.append("No receipt items could be extracted")

    if not fields.get("date"):
        warnings.append("Receipt date could not be determined")

    currency = fields.get("currency")
    if currency and not is_supported_currency(str(currency)):
        warnings.append(f"Unsupported currency detected: {currency}")

    return warnings


def merge_warnings(*groups: Iterable[str] | None) -> list[str]:
    """Concatenate warning lists in order, dropping exact repeats."""
    merged: list[str] = []
    for group in groups:
        for warning in group or []:
            if warning not in merged:
                merged.append(warning)
    return merged


def suggest_fixes(data: Mapping[str, Any] | BaseModel, warnings: list[str]) -> list[str]:
    """Human hints for re-capturing a receipt based on what went wrong."""
    fields = _as_mapping(data)
    suggestions: list[str] = []

    if not fields.get("date"):
        suggestions.append("Try uploading a clearer image with visible date information")

    if not fields.get("vendor_name"):
        suggestions.append(
            "Ensure the store/restaurant name is clearly visible in the image"
        )

    if not _item_list(fields.get("receipt_items")):
        suggestions.append(
            "Make sure all items and prices are clearly visible and not cut off"
        )

    if any(
        "Mathematical inconsistency" in w or "Tax-inclusive receipt validation" in w
        for w in warnings
    ):
        suggestions.append("Verify the receipt totals are clearly visible and not damaged")

    return suggestions


def validate_receipt_file(
    upload: UploadedImage | None, max_file_size: int = MAX_FILE_SIZE
) -> None:
    """Check an upload against the accepted type, extension and size.

    Raises:
        FileValidationError: If the upload is missing or violates a constraint
    """
    if upload is None:
        raise FileValidationError("No file uploaded. Please upload a receipt image.")

    if upload.size > max_file_size:
        raise FileValidationError(
            f"File size exceeds limit. Maximum size allowed is "
            f"{max_file_size / 1024 / 1024:g}MB, received "
            f"{upload.size / 1024 / 1024:.2f}MB."
        )

    if upload.content_type not in ALLOWED_MIME_TYPES:
        raise FileValidationError(
            f"Invalid file type. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}. "
            f"Received: {upload.content_type}"
        )

    if upload.size == 0:
        raise FileValidationError(
            "Uploaded file is empty. Please upload a valid receipt image."
        )

    extension = PurePath(upload.filename).suffix
    if extension.lower() not in ALLOWED_EXTENSIONS:
        raise FileValidationError(
            f"Invalid file extension. Allowed extensions: "
            f"{', '.join(ALLOWED_EXTENSIONS)}. Received: {extension}"
        )
