"""Data models for receipt extraction, persistence and API responses."""

import math
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class ExtractionStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ReceiptItem(BaseModel):
    """Individual line item on a receipt."""

    item_name: str
    item_cost: float = Field(ge=0.0)
    quantity: int = Field(default=1, ge=1)
    original_name: str | None = None


class AdditionalTax(BaseModel):
    name: str
    amount: float = Field(ge=0.0)


class TaxDetails(BaseModel):
    """Tax breakdown; tax_inclusive is always resolved on canonical records."""

    tax_rate: str | None = None
    tax_type: str | None = None
    tax_inclusive: bool = False
    additional_taxes: list[AdditionalTax] = Field(default_factory=list)


class ImageQuality(BaseModel):
    is_clear: bool = True
    issues: list[str] = Field(default_factory=list)

    @field_validator("is_clear", mode="before")
    @classmethod
    def _is_clear(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() != "false"
        return value is not False

    @field_validator("issues", mode="before")
    @classmethod
    def _issues(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(issue) for issue in value if issue]


class ExtractionMetadata(BaseModel):
    processing_time_ms: int = Field(ge=0)
    model_identifier: str
    warnings: list[str] = Field(default_factory=list)


class ReceiptData(BaseModel):
    """Canonical receipt record produced by parsing and repairing model output."""

    date: str | None = None  # YYYY-MM-DD
    currency: str = "USD"
    vendor_name: str
    receipt_items: list[ReceiptItem] = Field(default_factory=list)
    subtotal: float | None = None
    tax: float = 0.0
    tax_details: TaxDetails = Field(default_factory=TaxDetails)
    total: float | None = None
    payment_method: str | None = None
    receipt_number: str | None = None
    confidence_score: float = Field(ge=0.0, le=1.0)
    image_quality: ImageQuality | None = None
    extraction_metadata: ExtractionMetadata | None = None


class ExtractionRecord(BaseModel):
    """Receipt extraction as returned to callers and persisted."""

    status: ExtractionStatus
    extraction_id: str
    date: str | None = None
    currency: str
    vendor_name: str
    receipt_items: list[ReceiptItem] = Field(default_factory=list)
    subtotal: float | None = None
    tax: float = 0.0
    tax_details: TaxDetails = Field(default_factory=TaxDetails)
    total: float | None = None
    payment_method: str | None = None
    receipt_number: str | None = None
    confidence_score: float = Field(ge=0.0, le=1.0)
    image_quality: ImageQuality | None = None
    image_url: str | None = None
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    extraction_metadata: ExtractionMetadata | None = None


class ExtractionOptions(BaseModel):
    """Per-request extraction options."""

    custom_id: str | None = None
    save_image: bool = True
    include_metadata: bool = False
    language_hint: str | None = None


class UploadedImage(BaseModel):
    """An uploaded receipt image as received from a caller."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    content: bytes
    # Size reported by the transport when the body was not read
    declared_size: int | None = None

    @property
    def size(self) -> int:
        if self.declared_size is not None and not self.content:
            return self.declared_size
        return len(self.content)


class StorageResult(BaseModel, Generic[T]):
    """Outcome of a best-effort storage call.

    Attributes:
        success: Whether the call succeeded
        value: The returned value (only present if success=True)
        error: Error message (only present if success=False)
    """

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the call succeeded")
    value: T | None = Field(None, description="Returned value on success")
    error: str | None = Field(
        None, description="Error message (only present if success=False)"
    )


class ExtractionErrorResponse(BaseModel):
    status: str = "error"
    error_code: str
    message: str
    extraction_id: str
    details: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ValidationReport(BaseModel):
    is_valid: bool = Field(serialization_alias="isValid")
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ServiceHealth(BaseModel):
    status: str
    capabilities: list[str] = Field(default_factory=list)
    version: str


def _lenient_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    elif not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    # inf and nan never describe a printed amount
    return number if math.isfinite(number) else None


def _lenient_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int | float):
        return str(value)
    return None


class RawReceiptItem(BaseModel):
    """A line item as the model returned it, coerced without rejecting."""

    model_config = ConfigDict(extra="ignore")

    item_name: str = "Unknown Item"
    item_cost: float = 0.0
    quantity: int = 1
    original_name: str | None = None

    @field_validator("item_name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _lenient_text(value) or "Unknown Item"

    @field_validator("item_cost", mode="before")
    @classmethod
    def _cost(cls, value: Any) -> float:
        number = _lenient_number(value)
        return number if number is not None and number >= 0 else 0.0

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> int:
        number = _lenient_number(value)
        if number is None or number < 1:
            return 1
        return int(number)

    @field_validator("original_name", mode="before")
    @classmethod
    def _original_name(cls, value: Any) -> str | None:
        return _lenient_text(value)


class RawAdditionalTax(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = "Tax"
    amount: float = 0.0

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _lenient_text(value) or "Tax"

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> float:
        number = _lenient_number(value)
        return number if number is not None and number >= 0 else 0.0


class RawTaxDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tax_rate: str | None = None
    tax_type: str | None = None
    tax_inclusive: bool | None = None
    additional_taxes: list[RawAdditionalTax] = Field(default_factory=list)

    @field_validator("tax_rate", "tax_type", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _lenient_text(value)

    @field_validator("tax_inclusive", mode="before")
    @classmethod
    def _inclusive(cls, value: Any) -> bool | None:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        return None

    @field_validator("additional_taxes", mode="before")
    @classmethod
    def _taxes(cls, value: Any) -> list:
        return [tax for tax in value if isinstance(tax, dict)] if isinstance(value, list) else []


class RawModelRecord(BaseModel):
    """Receipt fields decoded from model output, before repair.

    Field values are coerced leniently: anything of the wrong type becomes
    None (or a neutral default) rather than failing validation.
    """

    model_config = ConfigDict(extra="ignore")

    date: str | None = None
    currency: str | None = None
    vendor_name: str | None = None
    receipt_items: list[RawReceiptItem] = Field(default_factory=list)
    subtotal: float | None = None
    tax: float | None = None
    tax_details: RawTaxDetails | None = None
    total: float | None = None
    payment_method: str | None = None
    receipt_number: str | None = None
    image_quality: ImageQuality | None = None

    @field_validator(
        "date", "currency", "vendor_name", "payment_method", "receipt_number",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _lenient_text(value)

    @field_validator("subtotal", "tax", "total", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return _lenient_number(value)

    @field_validator("receipt_items", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list:
        return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []

    @field_validator("tax_details", "image_quality", mode="before")
    @classmethod
    def _object(cls, value: Any) -> Any:
        return value if isinstance(value, dict | BaseModel) else None

    @property
    def image_is_unclear(self) -> bool:
        return self.image_quality is not None and not self.image_quality.is_clear


class ImageFileInfo(BaseModel):
    file_name: str
    size: int
    created_at: datetime
    url: str
