"""Anthropic Messages API gateway for single-turn vision prompts."""

import base64

from anthropic import (
    APIConnectionError,
    APIStatusError,
    AsyncAnthropic,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
from pydantic import BaseModel, ConfigDict

from receiptlens.extraction.errors import (
    ConfigurationError,
    ExtractionIncompleteError,
    ExtractionRefusedError,
    ModelGatewayError,
    ModelServiceError,
)

# The Messages API only knows the canonical JPEG media type
_MEDIA_TYPE_ALIASES = {"image/jpg": "image/jpeg"}


class ModelPrompt(BaseModel):
    """Instruction text plus the inlined receipt image."""

    model_config = ConfigDict(frozen=True)

    instruction_text: str
    image_bytes: bytes
    media_type: str = "image/jpeg"


class AnthropicGateway:
    """
    Model gateway backed by Claude's vision-capable Messages API.

    The SDK's own retries are disabled: the extraction orchestrator owns the
    retry loop, and this class only translates SDK failures into the
    pipeline's error types.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5",
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the Anthropic gateway.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-haiku-4-5)
            timeout: Per-request timeout in seconds (default: 60)
        """
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required for AI service")
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model

    @property
    def model_identifier(self) -> str:
        return self.model

    async def complete(
        self, prompt: ModelPrompt, temperature: float, max_tokens: int
    ) -> str:
        """
        Send the prompt and return the model's text answer.

        Args:
            prompt: Instruction text and image
            temperature: Sampling temperature
            max_tokens: Output token budget

        Returns:
            The concatenated text blocks of the response

        Raises:
            ConfigurationError: If the API key is rejected
            ModelServiceError: On network, timeout, rate-limit or 5xx failures
            ExtractionRefusedError: If the model refuses the request
            ExtractionIncompleteError: If the response is truncated
            ModelGatewayError: For other API errors or an empty answer
        """
        media_type = _MEDIA_TYPE_ALIASES.get(prompt.media_type, prompt.media_type)
        image_data = base64.standard_b64encode(prompt.image_bytes).decode("ascii")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": image_data,
                                },
                            },
                            {"type": "text", "text": prompt.instruction_text},
                        ],
                    }
                ],
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            raise ConfigurationError(f"API key rejected by AI service: {e}") from e
        except RateLimitError as e:
            raise ModelServiceError(
                f"AI service rate limit exceeded: {e}", status_code=e.status_code
            ) from e
        except APIConnectionError as e:
            # Includes APITimeoutError
            raise ModelServiceError(f"AI service network error or timeout: {e}") from e
        except APIStatusError as e:
            if e.status_code >= 500:
                raise ModelServiceError(
                    f"AI service unavailable (status {e.status_code}): {e}",
                    status_code=e.status_code,
                ) from e
            raise ModelGatewayError(
                f"AI service request failed (status {e.status_code}): {e}"
            ) from e

        if response.stop_reason == "refusal":
            raise ExtractionRefusedError("Model refused to process the request")

        if response.stop_reason == "max_tokens":
            raise ExtractionIncompleteError(
                "Response truncated due to token limit. Try increasing max_tokens."
            )

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if not text.strip():
            raise ModelGatewayError("No response content from AI model")
        return text
