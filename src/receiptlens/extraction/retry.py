"""Retry policy for model calls, independent of any timer."""

from tenacity import wait_exponential

from receiptlens.extraction.errors import (
    ConfigurationError,
    FileValidationError,
    NotAReceiptError,
)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0

_TERMINAL_ERRORS = (NotAReceiptError, ConfigurationError, FileValidationError)


def should_retry(error: BaseException, attempt_number: int, max_attempts: int) -> bool:
    """Decide whether a failed attempt gets another try.

    Does NOT retry on:
    - Not-a-receipt classifications (the model answered; asking again is waste)
    - Missing or rejected credentials
    - Upload validation failures
    - The final attempt of the budget

    Everything else (network, timeout, malformed output, missing fields)
    is retried.

    Args:
        error: The exception raised by the attempt
        attempt_number: 1-based number of the attempt that failed
        max_attempts: Total attempt budget

    Returns:
        True if another attempt should be made, False otherwise
    """
    if attempt_number >= max_attempts:
        return False
    return not isinstance(error, _TERMINAL_ERRORS)


def backoff_wait(base_delay: float = DEFAULT_BASE_DELAY) -> wait_exponential:
    """Exponential wait between attempts: base, 2 x base, 4 x base, ..."""
    return wait_exponential(multiplier=base_delay)


def backoff_schedule(max_attempts: int, base_delay: float = DEFAULT_BASE_DELAY) -> list[float]:
    """The delays that precede attempts 2..max_attempts, in seconds."""
    return [base_delay * 2 ** (n - 1) for n in range(1, max_attempts)]
