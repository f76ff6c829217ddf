import base64
import os
import sys
from pathlib import Path

from anthropic import Anthropic, AnthropicError
from anthropic.types import MessageParam
from dotenv import load_dotenv

from receiptlens.extraction.extractor import ReceiptExtractor
from receiptlens.integrations import AnthropicGateway

load_dotenv()


def count_tokens(image_path: Path | None = None):
    target_model = os.environ.get("ANTHROPIC_MODEL", "claude-haiku-4-5")
    api_key = os.environ.get("ANTHROPIC_API_KEY", "your-api-key")

    client = Anthropic(api_key=api_key)
    extractor = ReceiptExtractor(AnthropicGateway(api_key=api_key, model=target_model))
    instruction_text = extractor._render_prompt()

    print(f"Counting tokens for model: {target_model}")

    try:
        text_messages: list[MessageParam] = [
            {"role": "user", "content": instruction_text}
        ]
        prompt_tokens = client.messages.count_tokens(
            model=target_model, messages=text_messages
        ).input_tokens

        print("\n--- Results ---")
        print(f"Extraction instructions: {prompt_tokens} tokens")

        if image_path is not None:
            image_data = base64.standard_b64encode(image_path.read_bytes()).decode("ascii")
            image_messages: list[MessageParam] = [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/jpeg",
                                "data": image_data,
                            },
                        },
                        {"type": "text", "text": instruction_text},
                    ],
                }
            ]
            total_tokens = client.messages.count_tokens(
                model=target_model, messages=image_messages
            ).input_tokens
            print(f"Instructions + {image_path.name}: {total_tokens} tokens")

    except AnthropicError as e:
        print(f"Error counting tokens: {e}")
        print("\nNote: Make sure ANTHROPIC_API_KEY is set in your environment.")


if __name__ == "__main__":
    count_tokens(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
