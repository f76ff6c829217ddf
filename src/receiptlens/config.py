"""Environment-driven settings for the extraction service."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from receiptlens.extraction.errors import ConfigurationError


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    anthropic_api_key: str | None
    model: str
    temperature: float
    max_tokens: int
    max_attempts: int
    retry_base_delay: float
    max_file_size: int
    upload_dir: str
    database_url: str
    cors_origins: list[str]
    host: str
    port: int

    def require_api_key(self) -> str:
        """Return the model API key or raise if it is not configured."""
        if not self.anthropic_api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY is required for the extraction service"
            )
        return self.anthropic_api_key


def load_settings(env_file: str | None = None) -> Settings:
    """Build settings from the environment, loading a .env file first."""
    load_dotenv(env_file)
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        model=os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5"),
        temperature=float(os.getenv("MODEL_TEMPERATURE", "0.1")),
        max_tokens=int(os.getenv("MODEL_MAX_TOKENS", "2000")),
        max_attempts=int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "3")),
        retry_base_delay=float(os.getenv("RETRY_BASE_DELAY", "1.0")),
        max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./receipts.db"),
        cors_origins=_parse_csv(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )
