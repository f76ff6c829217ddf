"""Exception hierarchy for the extraction pipeline and its client error codes."""

from enum import StrEnum


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_A_RECEIPT = "NOT_A_RECEIPT"
    NO_ITEMS_FOUND = "NO_ITEMS_FOUND"
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"
    AI_RESPONSE_ERROR = "AI_RESPONSE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


class ExtractionError(Exception):
    """Base exception for extraction errors."""

    error_code: ErrorCode = ErrorCode.EXTRACTION_FAILED
    client_message = "Failed to extract receipt data"


class FileValidationError(ExtractionError):
    """Raised when an upload violates the accepted file constraints."""

    error_code = ErrorCode.VALIDATION_ERROR

    @property
    def client_message(self) -> str:
        return str(self)


class NotAReceiptError(ExtractionError):
    """Raised when the model classifies the image as something other than a receipt."""

    error_code = ErrorCode.NOT_A_RECEIPT

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or "This image does not appear to be a receipt or invoice"
        super().__init__(self.reason)

    @property
    def client_message(self) -> str:
        return self.reason


class ResponseParseError(ExtractionError):
    """Raised when the model output cannot be turned into a receipt record."""

    error_code = ErrorCode.AI_RESPONSE_ERROR
    client_message = (
        "AI service returned invalid response. The receipt might be unclear."
    )

    MALFORMED = "malformed"
    MISSING_FIELD = "missing required field"

    def __init__(self, reason: str, detail: str) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"Failed to parse AI response ({reason}): {detail}")


class MissingFieldError(ResponseParseError):
    """Raised when a required field is absent from the model output."""

    def __init__(self, field: str, detail: str) -> None:
        self.field = field
        super().__init__(ResponseParseError.MISSING_FIELD, detail)

    @property
    def error_code(self) -> ErrorCode:  # type: ignore[override]
        if self.field == "receipt_items":
            return ErrorCode.NO_ITEMS_FOUND
        return ErrorCode.AI_RESPONSE_ERROR

    @property
    def client_message(self) -> str:  # type: ignore[override]
        if self.field == "receipt_items":
            return (
                "Could not identify any items on the receipt. "
                "The image might be unclear or incomplete."
            )
        return ResponseParseError.client_message


class ModelGatewayError(ExtractionError):
    """Raised when the model call fails for a reason not covered below."""


class ModelServiceError(ModelGatewayError):
    """Raised on network, timeout, rate-limit or server-side model failures."""

    error_code = ErrorCode.AI_SERVICE_UNAVAILABLE
    client_message = "AI service is temporarily unavailable. Please try again."

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ExtractionRefusedError(ModelGatewayError):
    """Raised when the model refuses to process the request."""


class ExtractionIncompleteError(ModelGatewayError):
    """Raised when the response is truncated due to token limits."""

    error_code = ErrorCode.AI_RESPONSE_ERROR
    client_message = ResponseParseError.client_message


class ConfigurationError(ExtractionError):
    """Raised when credentials are missing or rejected."""

    error_code = ErrorCode.CONFIGURATION_ERROR
    client_message = "Service configuration error. Please contact support."


class ExtractionFailedError(ExtractionError):
    """Raised once every extraction attempt has failed."""

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Failed to extract receipt data after {attempts} attempts: {last_error}"
        )

    @property
    def error_code(self) -> ErrorCode:  # type: ignore[override]
        if isinstance(self.last_error, ExtractionError):
            return self.last_error.error_code
        return ErrorCode.EXTRACTION_FAILED

    @property
    def client_message(self) -> str:  # type: ignore[override]
        if isinstance(self.last_error, ExtractionError):
            return self.last_error.client_message
        return ExtractionError.client_message
