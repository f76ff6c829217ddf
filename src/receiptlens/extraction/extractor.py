"""Extraction orchestrator: prompt, model call, parsing and retries."""

import time
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.wait import wait_base

from receiptlens.extraction.errors import (
    ConfigurationError,
    ExtractionFailedError,
    NotAReceiptError,
)
from receiptlens.extraction.parser import parse_response
from receiptlens.extraction.repair import TAX_INCLUSIVE_CURRENCIES, quality_warnings
from receiptlens.extraction.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    backoff_wait,
    should_retry,
)
from receiptlens.extraction.validation import (
    SUPPORTED_CURRENCIES,
    merge_warnings,
    validate_extraction_consistency,
)
from receiptlens.integrations.anthropic_gateway import ModelPrompt
from receiptlens.logging import get_logger
from receiptlens.models import ExtractionMetadata, ReceiptData

logger = get_logger(__name__)

PROMPT_TEMPLATE = "extraction_instructions.jinja2"


class ModelGateway(Protocol):
    @property
    def model_identifier(self) -> str: ...

    async def complete(
        self, prompt: ModelPrompt, temperature: float, max_tokens: int
    ) -> str: ...


class ReceiptExtractor:
    """
    Turns receipt image bytes into a canonical ReceiptData.

    Each attempt renders the instruction prompt, calls the model gateway and
    parses the answer. Failures are retried with exponential backoff, except
    for not-a-receipt answers and configuration errors which end the call on
    first occurrence.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        wait: wait_base | None = None,
        prompts_dir: str | None = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            gateway: Model gateway used for completions
            temperature: Sampling temperature (default: 0.1, near-deterministic)
            max_tokens: Output token budget (default: 2000)
            max_attempts: Attempt budget (default: 3)
            base_delay: Backoff base in seconds (default: 1.0)
            wait: Override the tenacity wait strategy (tests pass wait_none())
            prompts_dir: Directory containing Jinja2 templates
                (default: the package's prompts/ directory)
        """
        self.gateway = gateway
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.wait = wait if wait is not None else backoff_wait(base_delay)

        if prompts_dir is None:
            prompts_dir = str(Path(__file__).parent.parent / "prompts")

        self.jinja_env = Environment(
            loader=FileSystemLoader(prompts_dir),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render_prompt(self, language_hint: str | None = None) -> str:
        template = self.jinja_env.get_template(PROMPT_TEMPLATE)
        return template.render(
            currencies=SUPPORTED_CURRENCIES,
            inclusive_currencies=TAX_INCLUSIVE_CURRENCIES,
            language_hint=language_hint,
        )

    def _should_retry(self, retry_state: RetryCallState) -> bool:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if error is None:
            return False
        return should_retry(error, retry_state.attempt_number, self.max_attempts)

    async def _attempt(self, prompt: ModelPrompt, attempt_number: int) -> ReceiptData:
        logger.info(f"Extracting receipt data - Attempt {attempt_number}")
        try:
            content = await self.gateway.complete(
                prompt, temperature=self.temperature, max_tokens=self.max_tokens
            )
            return parse_response(content)
        except Exception as e:
            logger.warning(f"Extraction attempt {attempt_number} failed: {e}")
            raise

    async def extract(
        self,
        image_bytes: bytes,
        media_type: str = "image/jpeg",
        language_hint: str | None = None,
    ) -> ReceiptData:
        """
        Extract structured receipt data from an image.

        Args:
            image_bytes: Raw image content
            media_type: MIME type of the image
            language_hint: Optional language the receipt is written in

        Returns:
            ReceiptData with extraction_metadata attached

        Raises:
            NotAReceiptError: If the model says the image is not a receipt
            ConfigurationError: If the gateway rejects its credentials
            ExtractionFailedError: If every attempt failed
        """
        start_time = time.perf_counter()
        prompt = ModelPrompt(
            instruction_text=self._render_prompt(language_hint),
            image_bytes=image_bytes,
            media_type=media_type,
        )

        retrying = AsyncRetrying(
            retry=self._should_retry,
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    receipt = await self._attempt(
                        prompt, attempt.retry_state.attempt_number
                    )
        except (NotAReceiptError, ConfigurationError):
            raise
        except Exception as e:
            attempts = retrying.statistics.get("attempt_number", self.max_attempts)
            logger.error(f"All extraction attempts failed: {e}")
            raise ExtractionFailedError(e, attempts) from e

        metadata = ExtractionMetadata(
            processing_time_ms=int((time.perf_counter() - start_time) * 1000),
            model_identifier=self.gateway.model_identifier,
            warnings=merge_warnings(
                quality_warnings(receipt), validate_extraction_consistency(receipt)
            ),
        )
        logger.info(
            f"Receipt extraction successful in {metadata.processing_time_ms}ms"
        )
        return receipt.model_copy(update={"extraction_metadata": metadata})
