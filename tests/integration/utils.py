import functools
import io
import os

import pytest
from PIL import Image, ImageDraw


def skip_if_missing_env_vars(required_vars):
    """
    Decorator to skip tests if required environment variables are not set.

    Args:
        required_vars (list): List of environment variable names to check.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            missing = [var for var in required_vars if not os.getenv(var)]
            if missing:
                pytest.skip(
                    f"Missing required environment variables: {', '.join(missing)}. "
                    "Ensure they are set in your environment or .env file."
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator


def render_receipt_image(lines: list[str]) -> bytes:
    """Draw receipt text lines onto a white JPEG, one line per row."""
    width, line_height = 480, 28
    img = Image.new("RGB", (width, line_height * (len(lines) + 2)), color="white")
    draw = ImageDraw.Draw(img)
    for index, line in enumerate(lines, start=1):
        draw.text((24, index * line_height), line, fill="black", font_size=20)

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()
