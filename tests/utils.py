import io
import json
import re
from typing import Any

from PIL import Image


def clean_cli_output(output: str) -> str:
    """
    Remove ANSI escape codes, Rich formatting characters, whitespace, and newlines
    from CLI output to make assertions robust against terminal wrapping.
    """
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    output = ansi_escape.sub("", output)
    return re.sub(r"[\s│╭╮╰╯─]", "", output)


def receipt_payload(**overrides: Any) -> dict[str, Any]:
    """A well-formed model answer for a small US grocery receipt."""
    payload: dict[str, Any] = {
        "is_receipt": True,
        "image_quality": {"is_clear": True, "issues": []},
        "date": "2024-03-15",
        "currency": "USD",
        "vendor_name": "Grocery Store Inc.",
        "receipt_items": [
            {"item_name": "Milk", "item_cost": 3.99, "quantity": 1, "original_name": None},
            {"item_name": "Bread", "item_cost": 2.50, "quantity": 2, "original_name": None},
        ],
        "subtotal": 8.99,
        "tax": 0.72,
        "tax_details": {
            "tax_rate": "8%",
            "tax_type": "Sales Tax",
            "tax_inclusive": False,
            "additional_taxes": [],
        },
        "total": 9.71,
        "payment_method": "Card",
        "receipt_number": "R-1001",
    }
    payload.update(overrides)
    return payload


def receipt_json(**overrides: Any) -> str:
    return json.dumps(receipt_payload(**overrides))


def make_image_bytes(size: tuple[int, int] = (64, 48), fmt: str = "PNG") -> bytes:
    """Encode a solid-color test image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(200, 180, 160)).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeGateway:
    """Model gateway that replays canned answers or raises canned errors."""

    def __init__(self, *responses: str | BaseException, model: str = "fake-vision-model"):
        self._responses = list(responses)
        self.model = model
        self.calls: list[dict[str, Any]] = []

    @property
    def model_identifier(self) -> str:
        return self.model

    async def complete(self, prompt, temperature: float, max_tokens: int) -> str:
        self.calls.append(
            {"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens}
        )
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        return response
