"""Normalization of decoded model output into canonical receipt records."""

import re

from dateutil import parser as date_parser

from receiptlens.extraction.validation import (
    SUPPORTED_CURRENCIES,
    TOLERANCE,
    check_totals,
    items_total,
)
from receiptlens.logging import get_logger
from receiptlens.models import (
    AdditionalTax,
    RawModelRecord,
    ReceiptData,
    ReceiptItem,
    TaxDetails,
)

logger = get_logger(__name__)

DEFAULT_CURRENCY = "USD"

# Currencies whose receipts usually print tax-inclusive prices
TAX_INCLUSIVE_CURRENCIES = ["EUR", "GBP", "CHF", "AUD", "NZD"]

CONFIDENCE_CONSISTENT = 0.95
CONFIDENCE_INCONSISTENT = 0.80
CONFIDENCE_POOR_IMAGE = 0.70
CONFIDENCE_POOR_IMAGE_NO_TOTAL = 0.50

LOW_CONFIDENCE_THRESHOLD = 0.9
UNKNOWN_ITEM_NAME = "Unknown Item (unclear image)"

_CURRENCY_SYMBOLS = {"€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}

# Checked in order; the first keyword found in the vendor name wins
_VENDOR_CURRENCY_HINTS: list[tuple[tuple[str, ...], str]] = [
    (("australia", "sydney", "melbourne", "brisbane"), "AUD"),
    (("canada", "toronto", "vancouver", "montreal"), "CAD"),
    (("singapore",), "SGD"),
    (("switzerland", "swiss", "zurich", "geneva"), "CHF"),
    (("europe", "euro"), "EUR"),
    (("uk", "britain", "london"), "GBP"),
    (("new zealand", "auckland", "wellington"), "NZD"),
    (("hong kong",), "HKD"),
    (("japan", "tokyo", "osaka"), "JPY"),
    (("china", "beijing", "shanghai"), "CNY"),
    (("india", "mumbai", "delhi", "bangalore"), "INR"),
]


def _mentions(text: str, keyword: str) -> bool:
    # Short keywords like "uk" only count as whole words
    if len(keyword) <= 3:
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def infer_currency(vendor_name: str | None) -> str:
    """Guess the currency from place names in the vendor name, default USD."""
    vendor = (vendor_name or "").lower()
    for keywords, currency in _VENDOR_CURRENCY_HINTS:
        if any(_mentions(vendor, keyword) for keyword in keywords):
            return currency
    return DEFAULT_CURRENCY


def normalize_currency(currency: str | None, vendor_name: str | None) -> str:
    """Return a supported ISO code for the raw currency value."""
    code = (currency or "").strip()
    if code in _CURRENCY_SYMBOLS:
        return _CURRENCY_SYMBOLS[code]
    if code.upper() in SUPPORTED_CURRENCIES:
        return code.upper()
    return infer_currency(vendor_name)


def normalize_date(value: str | None) -> str | None:
    """Parse a date in any common format to YYYY-MM-DD, or None."""
    if not value:
        return None
    try:
        return date_parser.parse(value).date().isoformat()
    except (ValueError, OverflowError):
        return None


def resolve_tax_inclusive(explicit: bool | None, currency: str) -> bool:
    if explicit is not None:
        logger.info(f"Explicit tax type detected from receipt: tax_inclusive = {explicit}")
        return explicit
    inclusive = currency in TAX_INCLUSIVE_CURRENCIES
    logger.info(
        f"No explicit tax type found in receipt. Using currency default for "
        f"{currency}: tax_inclusive = {inclusive}"
    )
    return inclusive


def score_confidence(
    subtotal: float | None,
    tax: float,
    total: float | None,
    tax_inclusive: bool,
    items: list[ReceiptItem],
    image_is_unclear: bool,
) -> float:
    """Rule-based confidence; poor image quality overrides the math check."""
    score = CONFIDENCE_CONSISTENT
    if subtotal is not None and total is not None:
        if check_totals(subtotal, tax, total, tax_inclusive, items) is not None:
            score = CONFIDENCE_INCONSISTENT

    if image_is_unclear:
        if total is None:
            score = CONFIDENCE_POOR_IMAGE_NO_TOTAL
            logger.info(
                f"Very poor image quality (total is null). "
                f"Setting confidence score to {score}"
            )
        else:
            score = CONFIDENCE_POOR_IMAGE
            logger.info(
                f"Poor image quality (but total extracted). "
                f"Setting confidence score to {score}"
            )
    return score


def repair_receipt(raw: RawModelRecord) -> ReceiptData:
    """Turn a decoded model record into a canonical ReceiptData.

    Never raises on content: unknown currencies are inferred, unparseable
    dates become None, tax is reconciled with its components, and a missing
    subtotal is derived according to the tax regime. A subtotal read from
    the receipt is always kept as-is.
    """
    currency = normalize_currency(raw.currency, raw.vendor_name)
    raw_tax_details = raw.tax_details
    tax_inclusive = resolve_tax_inclusive(
        raw_tax_details.tax_inclusive if raw_tax_details else None, currency
    )
    additional_taxes = [
        AdditionalTax(name=tax.name, amount=tax.amount)
        for tax in (raw_tax_details.additional_taxes if raw_tax_details else [])
    ]
    items = [ReceiptItem(**item.model_dump()) for item in raw.receipt_items]

    tax = raw.tax if raw.tax is not None else 0.0
    if additional_taxes:
        tax_sum = sum(t.amount for t in additional_taxes)
        if abs(tax - tax_sum) > TOLERANCE:
            logger.info(
                f"Multiple taxes detected. Original tax: {raw.tax}, "
                f"Sum of additional taxes: {tax_sum:.2f}. Using sum."
            )
            tax = round(tax_sum, 2)

    total = raw.total
    subtotal = raw.subtotal
    if subtotal is not None:
        logger.info(f"Using extracted subtotal: {subtotal}")
    elif tax_inclusive:
        if total is not None:
            subtotal = round(total - tax, 2)
    elif items:
        subtotal = round(items_total(items), 2)
        logger.info(
            f"Calculated subtotal from items: {subtotal}. "
            f"If incorrect, check if receipt shows explicit subtotal."
        )

    confidence = score_confidence(
        subtotal, tax, total, tax_inclusive, items, raw.image_is_unclear
    )

    return ReceiptData(
        date=normalize_date(raw.date),
        currency=currency,
        vendor_name=raw.vendor_name or "",
        receipt_items=items,
        subtotal=subtotal,
        tax=tax,
        tax_details=TaxDetails(
            tax_rate=raw_tax_details.tax_rate if raw_tax_details else None,
            tax_type=raw_tax_details.tax_type if raw_tax_details else None,
            tax_inclusive=tax_inclusive,
            additional_taxes=additional_taxes,
        ),
        total=total,
        payment_method=raw.payment_method,
        receipt_number=raw.receipt_number,
        confidence_score=confidence,
        image_quality=raw.image_quality,
    )


def quality_warnings(receipt: ReceiptData) -> list[str]:
    """Warnings about image readability and overall extraction confidence."""
    warnings: list[str] = []
    quality = receipt.image_quality
    if quality is not None and not quality.is_clear:
        warnings.extend(f"Image Quality: {issue}" for issue in quality.issues)
        for index, item in enumerate(receipt.receipt_items, start=1):
            if item.item_name == UNKNOWN_ITEM_NAME:
                warnings.append(
                    f"Image Quality: Item name for item {index} could not be "
                    f"identified due to poor readability."
                )
            if item.item_cost == 0:
                warnings.append(
                    f"Image Quality: Item cost for '{item.item_name}' (item {index}) "
                    f"set to 0.00 due to poor readability or missing value."
                )

    if receipt.confidence_score < LOW_CONFIDENCE_THRESHOLD:
        warnings.append("Low confidence in extraction accuracy")
    return warnings
