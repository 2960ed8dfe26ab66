"""Shared utilities for OpenAI Responses API operations.

This module consolidates the patterns the extractor relies on:
- Client construction (wrapped for LangSmith tracing)
- JSON response parsing with markdown fence stripping
- Response text extraction from Responses API payloads
"""

import json
import logging
from typing import Any

from langsmith.wrappers import wrap_openai
from openai import AsyncOpenAI

from .models import openai_api_key

logger = logging.getLogger(__name__)


class ResponseParseError(ValueError):
    """Model output could not be decoded as a JSON object."""


def get_async_client() -> AsyncOpenAI:
    """Build a traced async client; raises ExtractionConfigError without a key."""
    return wrap_openai(AsyncOpenAI(api_key=openai_api_key()))


def strip_json_fences(value: str) -> str:
    """Remove Markdown code fences if present.

    Handles both ```json and plain ``` fences.

    Args:
        value: Raw string that may contain markdown code fences

    Returns:
        Cleaned string with fences removed
    """
    value = value.strip()
    if value.startswith("```"):
        first_newline = value.find("\n")
        if first_newline != -1:
            value = value[first_newline + 1 :]
        else:
            # Single-line fence: ```json {...}```
            value = value[3:]
            if value.lower().startswith("json"):
                value = value[4:]
        value = value.rstrip()
        if value.endswith("```"):
            value = value[:-3]
    return value.strip()


def parse_json_object(raw: str, context: str = "response") -> dict[str, Any]:
    """Parse model output that must be a single JSON object.

    Args:
        raw: Raw string from model output
        context: Description for logging (e.g., "record extraction")

    Returns:
        Parsed dictionary

    Raises:
        ResponseParseError: output is not valid JSON or not an object
    """
    cleaned = strip_json_fences(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse %s JSON: %s", context, exc)
        raise ResponseParseError(f"Invalid JSON in {context}: {exc}") from exc
    if not isinstance(parsed, dict):
        logger.warning("Expected a JSON object for %s, got %s", context, type(parsed).__name__)
        raise ResponseParseError(f"Expected a JSON object in {context}")
    return parsed


def extract_responses_api_text(response: Any) -> str:
    """Extract text content from OpenAI Responses API payload.

    The Responses API returns content in a different structure than
    chat completions. This handles both the convenience output_text
    attribute and the full output structure.

    Args:
        response: Response object from client.responses.create()

    Returns:
        Extracted text content, empty string if none found
    """
    # Try the convenience attribute first
    text = getattr(response, "output_text", "") or ""
    if text:
        return text

    # Fall back to parsing the full output structure
    output_items = getattr(response, "output", None) or []
    collected: list[str] = []
    for item in output_items:
        if getattr(item, "type", None) != "message":
            continue
        for content_item in getattr(item, "content", []) or []:
            content_type = getattr(content_item, "type", None)
            # Handle both "output_text" and "text" content types
            if content_type in ("output_text", "text"):
                piece = getattr(content_item, "text", "")
                if piece:
                    collected.append(piece)
    return "".join(collected)
