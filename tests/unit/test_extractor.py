"""Unit tests for the extraction orchestrator."""

import json

import pytest
from tenacity import wait_none

from receiptlens.extraction.errors import (
    ConfigurationError,
    ErrorCode,
    ExtractionFailedError,
    ModelServiceError,
    NotAReceiptError,
)
from receiptlens.extraction.extractor import ReceiptExtractor
from tests.utils import FakeGateway, make_image_bytes, receipt_json

pytestmark = pytest.mark.unit


@pytest.fixture
def image_bytes():
    return make_image_bytes(fmt="JPEG")


def _extractor(gateway, **kwargs):
    return ReceiptExtractor(gateway, wait=wait_none(), **kwargs)


class TestPromptRendering:
    """Test cases for instruction prompt rendering."""

    def test_prompt_lists_currencies(self):
        prompt = _extractor(FakeGateway(receipt_json()))._render_prompt()

        assert "USD, EUR, GBP, CAD" in prompt
        assert "EUR, GBP, CHF, AUD, NZD" in prompt
        assert '"is_receipt": false' in prompt
        assert "most likely written in" not in prompt

    def test_prompt_includes_language_hint(self):
        prompt = _extractor(FakeGateway(receipt_json()))._render_prompt("German")
        assert "The receipt is most likely written in German." in prompt


class TestExtractSuccess:
    """Test cases for successful extraction."""

    @pytest.mark.asyncio
    async def test_extract_returns_receipt_with_metadata(self, image_bytes):
        gateway = FakeGateway(receipt_json())
        extractor = _extractor(gateway)

        receipt = await extractor.extract(image_bytes, media_type="image/png")

        assert receipt.vendor_name == "Grocery Store Inc."
        assert receipt.confidence_score == 0.95
        assert receipt.extraction_metadata is not None
        assert receipt.extraction_metadata.model_identifier == "fake-vision-model"
        assert receipt.extraction_metadata.processing_time_ms >= 0
        assert receipt.extraction_metadata.warnings == []

        assert len(gateway.calls) == 1
        call = gateway.calls[0]
        assert call["temperature"] == 0.1
        assert call["max_tokens"] == 2000
        assert call["prompt"].image_bytes == image_bytes
        assert call["prompt"].media_type == "image/png"

    @pytest.mark.asyncio
    async def test_custom_sampling_parameters(self, image_bytes):
        gateway = FakeGateway(receipt_json())
        extractor = _extractor(gateway, temperature=0.0, max_tokens=4096)

        await extractor.extract(image_bytes)

        assert gateway.calls[0]["temperature"] == 0.0
        assert gateway.calls[0]["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_metadata_warnings_quality_then_consistency(self, image_bytes):
        receipt = await _extractor(FakeGateway(receipt_json(total=20.0))).extract(
            image_bytes
        )

        warnings = receipt.extraction_metadata.warnings
        assert warnings[0] == "Low confidence in extraction accuracy"
        assert warnings[1].startswith("Mathematical inconsistency")
        assert len(warnings) == 2


class TestRetries:
    """Test cases for the retry loop."""

    @pytest.mark.asyncio
    async def test_malformed_answer_is_retried(self, image_bytes):
        gateway = FakeGateway("not json at all", receipt_json())

        receipt = await _extractor(gateway).extract(image_bytes)

        assert receipt.vendor_name == "Grocery Store Inc."
        assert len(gateway.calls) == 2

    @pytest.mark.asyncio
    async def test_service_error_is_retried(self, image_bytes):
        gateway = FakeGateway(
            ModelServiceError("Overloaded", status_code=529),
            ModelServiceError("Overloaded", status_code=529),
            receipt_json(),
        )

        receipt = await _extractor(gateway).extract(image_bytes)

        assert receipt.total == 9.71
        assert len(gateway.calls) == 3

    @pytest.mark.asyncio
    async def test_not_a_receipt_ends_on_first_attempt(self, image_bytes):
        gateway = FakeGateway(json.dumps({"is_receipt": False, "reason": "A landscape photo"}))

        with pytest.raises(NotAReceiptError, match="A landscape photo"):
            await _extractor(gateway).extract(image_bytes)

        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_configuration_error_is_not_retried(self, image_bytes):
        gateway = FakeGateway(ConfigurationError("API key rejected by AI service"))

        with pytest.raises(ConfigurationError):
            await _extractor(gateway).extract(image_bytes)

        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_extraction_failed(self, image_bytes):
        gateway = FakeGateway(ModelServiceError("Overloaded", status_code=529))

        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(gateway).extract(image_bytes)

        error = exc_info.value
        assert len(gateway.calls) == 3
        assert error.attempts == 3
        assert isinstance(error.last_error, ModelServiceError)
        assert error.error_code == ErrorCode.AI_SERVICE_UNAVAILABLE
        assert "after 3 attempts" in str(error)

    @pytest.mark.asyncio
    async def test_attempt_budget_is_configurable(self, image_bytes):
        gateway = FakeGateway("{}")

        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(gateway, max_attempts=2).extract(image_bytes)

        assert len(gateway.calls) == 2
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_missing_items_keep_their_error_code(self, image_bytes):
        gateway = FakeGateway(receipt_json(receipt_items=[]))

        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(gateway).extract(image_bytes)

        assert exc_info.value.error_code == ErrorCode.NO_ITEMS_FOUND
