"""Decoding of raw model text into receipt records."""

import json
import re
from typing import Any

from pydantic import ValidationError

from receiptlens.extraction.errors import (
    MissingFieldError,
    NotAReceiptError,
    ResponseParseError,
)
from receiptlens.extraction.repair import repair_receipt
from receiptlens.logging import get_logger
from receiptlens.models import RawModelRecord, ReceiptData

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    return _CODE_FENCE.sub("", content).strip()


def _is_non_negative_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        return value >= 0
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "")) >= 0
        except ValueError:
            return False
    return False


def decode_response(content: str) -> RawModelRecord:
    """Decode model text into a RawModelRecord.

    Raises:
        ResponseParseError: If the text is not a JSON object or fails field checks
        MissingFieldError: If the vendor name or item list is missing
        NotAReceiptError: If the model flagged the image as not a receipt
    """
    cleaned = strip_code_fences(content)
    logger.debug(f"AI response (cleaned): {cleaned}")

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseParseError(ResponseParseError.MALFORMED, f"invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ResponseParseError(
            ResponseParseError.MALFORMED, "expected a JSON object at the top level"
        )

    if parsed.get("is_receipt") is False:
        raise NotAReceiptError(parsed.get("reason"))

    try:
        raw = RawModelRecord.model_validate(parsed)
    except ValidationError as e:
        raise ResponseParseError(ResponseParseError.MALFORMED, str(e)) from e

    if not raw.vendor_name:
        raise MissingFieldError("vendor_name", "Vendor name is required")

    if not raw.receipt_items:
        raise MissingFieldError(
            "receipt_items", "At least one receipt item is required"
        )

    total = parsed.get("total")
    if raw.image_is_unclear:
        if total is not None and not _is_non_negative_number(total):
            raise ResponseParseError(
                ResponseParseError.MALFORMED,
                "Total must be a positive number or null if image quality is poor",
            )
    elif not _is_non_negative_number(total):
        raise ResponseParseError(
            ResponseParseError.MALFORMED, "Total must be a positive number"
        )

    return raw


def parse_response(content: str) -> ReceiptData:
    """Decode model text and repair it into a canonical receipt record."""
    return repair_receipt(decode_response(content))
