"""Centralized OpenAI model configuration."""

import os

from dotenv import load_dotenv

from .errors import ExtractionConfigError

load_dotenv()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ExtractionConfigError(
            f"Environment variable {name} must be set for record extraction; no fallback is available."
        )
    return value


def extraction_model() -> str:
    """Model used by the record extractor, resolved at call time."""
    return _require_env("EXTRACTION_MODEL")


def openai_api_key() -> str:
    return _require_env("OPENAI_API_KEY")


__all__ = [
    "extraction_model",
    "openai_api_key",
]
