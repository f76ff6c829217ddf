"""Receipt extraction use case and its supporting queries."""

import asyncio
import time
import uuid
from collections.abc import Callable
from typing import Protocol, TypeVar

from receiptlens import __version__
from receiptlens.config import Settings
from receiptlens.extraction.errors import ErrorCode, ExtractionError
from receiptlens.extraction.extractor import ReceiptExtractor
from receiptlens.extraction.status import classify_extraction
from receiptlens.extraction.validation import (
    MAX_FILE_SIZE,
    SUPPORTED_CURRENCIES,
    merge_warnings,
    suggest_fixes,
    validate_extraction_consistency,
    validate_receipt_file,
)
from receiptlens.integrations.anthropic_gateway import AnthropicGateway
from receiptlens.logging import get_logger
from receiptlens.models import (
    ExtractionErrorResponse,
    ExtractionMetadata,
    ExtractionOptions,
    ExtractionRecord,
    ServiceHealth,
    StorageResult,
    UploadedImage,
    ValidationReport,
)
from receiptlens.storage.images import LocalImageStore
from receiptlens.storage.records import SqlRecordStore

logger = get_logger(__name__)

T = TypeVar("T")

CAPABILITIES = [
    "Multi-language receipt processing",
    "Currency detection (12 currencies)",
    "Image optimization and storage",
    "Mathematical validation",
    "Confidence scoring",
    "Comprehensive error handling",
]


class ImageStore(Protocol):
    def save(self, image_bytes: bytes, image_id: str, filename: str | None = None) -> str: ...

    def url_for(self, stored_name: str) -> str: ...


class RecordStore(Protocol):
    def save(self, record: ExtractionRecord) -> str: ...

    def get_by_extraction_id(self, extraction_id: str) -> ExtractionRecord | None: ...

    def list_page(self, limit: int = 50, offset: int = 0) -> list[ExtractionRecord]: ...

    def ping(self) -> bool: ...


class ReceiptExtractionError(Exception):
    """Raised by the use case with the client-facing error envelope."""

    def __init__(self, response: ExtractionErrorResponse) -> None:
        self.response = response
        super().__init__(response.message)


def error_response(
    extraction_id: str, error: BaseException, processing_time_ms: int
) -> ExtractionErrorResponse:
    """Map a pipeline failure onto the client error taxonomy."""
    if isinstance(error, ExtractionError):
        error_code = error.error_code
        message = error.client_message
    else:
        error_code = ErrorCode.EXTRACTION_FAILED
        message = ExtractionError.client_message

    details: list[str] = []
    if error_code == ErrorCode.NOT_A_RECEIPT:
        details.append("Please upload an image of a receipt or invoice")
    details.append(f"Processing time: {processing_time_ms}ms")
    if error_code != ErrorCode.NOT_A_RECEIPT:
        details.append(f"Error details: {error}")

    return ExtractionErrorResponse(
        error_code=error_code.value,
        message=message,
        extraction_id=extraction_id,
        details=details,
    )


async def _run_storage_call(func: Callable[..., T], *args) -> StorageResult[T]:
    # Storage adapters are blocking; run them off the event loop
    loop = asyncio.get_running_loop()
    try:
        value = await loop.run_in_executor(None, func, *args)
    except Exception as e:
        return StorageResult(success=False, error=str(e))
    return StorageResult(success=True, value=value)


class ReceiptService:
    """Coordinates validation, image storage, extraction and persistence."""

    def __init__(
        self,
        extractor: ReceiptExtractor,
        image_store: ImageStore | None = None,
        record_store: RecordStore | None = None,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.extractor = extractor
        self.image_store = image_store
        self.record_store = record_store
        self.max_file_size = max_file_size

    async def extract_receipt_details(
        self, upload: UploadedImage | None, options: ExtractionOptions | None = None
    ) -> ExtractionRecord:
        """Extract receipt data from an uploaded image.

        The image save always happens before the model call, and the
        persistence attempt always follows response assembly. Failures of
        either are logged and do not affect the returned record.

        Raises:
            ReceiptExtractionError: With the client error envelope on failure
        """
        options = options or ExtractionOptions()
        extraction_id = options.custom_id or str(uuid.uuid4())
        start_time = time.perf_counter()
        logger.info(f"Starting receipt extraction - ID: {extraction_id}")

        try:
            validate_receipt_file(upload, self.max_file_size)

            image_url = None
            if options.save_image and self.image_store is not None:
                saved = await _run_storage_call(
                    self.image_store.save, upload.content, extraction_id, upload.filename
                )
                if saved.success and saved.value:
                    image_url = self.image_store.url_for(saved.value)
                    logger.info(f"Image saved: {saved.value}")
                else:
                    logger.warning(
                        f"Failed to save image for extraction {extraction_id}: {saved.error}"
                    )

            receipt = await self.extractor.extract(
                upload.content,
                media_type=upload.content_type,
                language_hint=options.language_hint,
            )
        except ExtractionError as e:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(f"Receipt extraction failed - ID: {extraction_id}: {e}")
            raise ReceiptExtractionError(error_response(extraction_id, e, elapsed_ms)) from e

        attached = receipt.extraction_metadata.warnings if receipt.extraction_metadata else []
        warnings = merge_warnings(attached, validate_extraction_consistency(receipt))
        status = classify_extraction(receipt, warnings)

        metadata = ExtractionMetadata(
            processing_time_ms=int((time.perf_counter() - start_time) * 1000),
            model_identifier=(
                receipt.extraction_metadata.model_identifier
                if receipt.extraction_metadata
                else self.extractor.gateway.model_identifier
            ),
            warnings=warnings,
        )
        record = ExtractionRecord(
            status=status,
            extraction_id=extraction_id,
            date=receipt.date,
            currency=receipt.currency,
            vendor_name=receipt.vendor_name,
            receipt_items=receipt.receipt_items,
            subtotal=receipt.subtotal,
            tax=receipt.tax,
            tax_details=receipt.tax_details,
            total=receipt.total,
            payment_method=receipt.payment_method,
            receipt_number=receipt.receipt_number,
            confidence_score=receipt.confidence_score,
            image_quality=receipt.image_quality,
            image_url=image_url,
            extraction_metadata=metadata if options.include_metadata else None,
        )

        if self.record_store is not None:
            stored = record.model_copy(update={"extraction_metadata": metadata}, deep=True)
            persisted = await _run_storage_call(self.record_store.save, stored)
            if not persisted.success:
                logger.warning(
                    f"Failed to persist extraction {extraction_id}: {persisted.error}"
                )

        logger.info(
            f"Receipt extraction completed - ID: {extraction_id}, Status: {status}, "
            f"Processing time: {metadata.processing_time_ms}ms"
        )
        return record

    async def get_extraction_by_id(self, extraction_id: str) -> ExtractionRecord | None:
        logger.info(f"Extraction history lookup requested for ID: {extraction_id}")
        if self.record_store is None:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self.record_store.get_by_extraction_id, extraction_id
        )

    async def list_extractions(self, limit: int = 50, offset: int = 0) -> list[ExtractionRecord]:
        if self.record_store is None:
            return []
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.record_store.list_page, limit, offset)

    def validate_extraction(self, data: dict) -> ValidationReport:
        """Run the consistency checks standalone on caller-supplied data."""
        warnings = validate_extraction_consistency(data)
        return ValidationReport(
            is_valid=not warnings,
            warnings=warnings,
            suggestions=suggest_fixes(data, warnings),
        )

    def get_supported_currencies(self) -> list[str]:
        return list(SUPPORTED_CURRENCIES)

    async def get_service_health(self) -> ServiceHealth:
        if self.record_store is not None:
            result = await _run_storage_call(self.record_store.ping)
            if not result.success:
                logger.warning(f"Service health check failed: {result.error}")
                return ServiceHealth(status="degraded", capabilities=[], version=__version__)
        return ServiceHealth(status="healthy", capabilities=CAPABILITIES, version=__version__)


def build_service(settings: Settings) -> ReceiptService:
    """Wire the production collaborators from settings.

    Raises:
        ConfigurationError: If the model API key is missing
    """
    gateway = AnthropicGateway(api_key=settings.require_api_key(), model=settings.model)
    extractor = ReceiptExtractor(
        gateway,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        max_attempts=settings.max_attempts,
        base_delay=settings.retry_base_delay,
    )
    return ReceiptService(
        extractor,
        image_store=LocalImageStore(settings.upload_dir),
        record_store=SqlRecordStore(settings.database_url),
        max_file_size=settings.max_file_size,
    )
