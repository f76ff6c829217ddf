"""ReceiptLens integrations module."""

from receiptlens.integrations.anthropic_gateway import AnthropicGateway, ModelPrompt

__all__ = [
    "AnthropicGateway",
    "ModelPrompt",
]
