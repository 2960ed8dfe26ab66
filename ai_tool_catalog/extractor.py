"""Infer a structured catalog record from scraped page content.

The extraction capability is a text-in/JSON-out model call. Its output is
never trusted implicitly: the reply is fence-stripped, parsed, checked for the
required fields and for category closure, then normalized into an
:class:`ExtractedRecord`. Every expected failure comes back as an
:class:`ExtractionFailure` value rather than an exception.
"""

import logging
from dataclasses import dataclass
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

from openai import APIError
from openai import AuthenticationError

from .errors import ErrorKind
from .errors import ExtractionConfigError
from .models import extraction_model
from .openai_utils import ResponseParseError
from .openai_utils import extract_responses_api_text
from .openai_utils import get_async_client
from .openai_utils import parse_json_object
from .schemas import CategoryRef
from .schemas import ContentKind
from .schemas import ExtractedRecord
from .schemas import ScrapedContent
from .schemas import ToolStatus

logger = logging.getLogger(__name__)

TOOL_TYPES = ["CHATBOT", "AGENT", "IMAGE", "WRITING", "CODE", "SEARCH", "VIDEO", "AUDIO", "CREATIVE", "DEV", "RESEARCH"]

ALLOWED_TAGS = [
    "LLM", "Prod", "Dev", "Test", "Creative", "Open", "Beta", "Gen", "Art", "Content", "Mkt", "AI", "OSS",
    "Research", "OpenAI", "IDE", "Notes", "Edit", "Voice", "TTS", "Avatar", "Ent", "Auto", "Google", "Fast",
    "Search", "Trans", "Productivity", "General", "Experimental", "Agents", "Automation", "No-code", "Coding",
    "Design", "3D", "Data", "Modeling", "Collaboration", "Writing", "Audio", "Video",
]  # fmt: skip

_CANONICAL_TAGS = {tag.lower(): tag for tag in ALLOWED_TAGS}

MAX_SUMMARY_CHARS = 100
MAX_LIST_ITEMS = 5
MAX_TAGS = 7

SYSTEM_PROMPT = f"""\
You are a catalog specialist for AI tools and related resources. Analyze the webpage content you are given
and extract structured information for a catalog entry.

Return ONLY a JSON object (no markdown, no commentary) with exactly these fields:
{{
  "name": "official product name, without taglines",
  "type": "one of: {', '.join(TOOL_TYPES)}",
  "categoryId": "ID of the best matching category from the provided list, copied exactly",
  "summary": "one factual sentence, at most {MAX_SUMMARY_CHARS} characters",
  "whatItIs": "1-2 sentences explaining what it is and does",
  "capabilities": ["3-5 key capabilities stated on the page"],
  "bestFor": ["3-5 ideal use cases or audiences"],
  "tags": ["3-7 tags from the allowed list"],
  "status": "one of: active, inactive, beta, deprecated",
  "contentType": "one of: tool, website, video, podcast, article",
  "notes": "pricing, caveats or other notable observations; empty string if none"
}}

Allowed tags: {', '.join(ALLOWED_TAGS)}

Rules:
1. Infer the type from the primary function.
2. categoryId MUST be one of the listed category IDs.
3. Only list capabilities the page actually mentions; do not invent them.
4. Use status "beta" when you see beta/preview indicators, otherwise "active".
5. Return ONLY the JSON object."""

CompletionFn = Callable[[str, str], Awaitable[str]]


@dataclass(frozen=True)
class ExtractionFailure:
    error_type: ErrorKind
    message: str
    raw_output: Optional[str] = None


ExtractionResult = Union[ExtractedRecord, ExtractionFailure]


def build_user_prompt(content: ScrapedContent, categories: Iterable[CategoryRef]) -> str:
    category_lines = "\n".join(f'- ID: "{c.id}", Name: "{c.name}"' for c in categories)
    return f"""Analyze this webpage and provide structured catalog information.

URL: {content.url}
Title: {content.title}
Description: {content.description}
Keywords: {', '.join(content.meta_keywords)}

Page Content (excerpt):
{content.body_text}

Available Categories (use the exact ID for categoryId):
{category_lines}

Return ONLY the JSON object."""


async def openai_completion(instructions: str, prompt: str) -> str:
    """Default capability: one OpenAI Responses API call."""
    client = get_async_client()
    response = await client.responses.create(
        model=extraction_model(),
        instructions=instructions,
        input=[{"role": "user", "content": [{"type": "input_text", "text": prompt}]}],
    )
    return extract_responses_api_text(response)


def _string_list(value: Any, limit: Optional[int] = None) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:limit] if limit is not None else items


def _controlled_tags(value: Any) -> List[str]:
    tags: List[str] = []
    for tag in _string_list(value):
        canonical = _CANONICAL_TAGS.get(tag.lower())
        if canonical and canonical not in tags:
            tags.append(canonical)
    return tags[:MAX_TAGS]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 1].rstrip() + "…"


def _enum_or_default(enum_cls, value: Any, default):
    try:
        return enum_cls(_text(value).lower())
    except ValueError:
        return default


def normalize_record(
    data: dict[str, Any],
    known_categories: List[CategoryRef],
    fallback_category_id: Optional[str] = None,
) -> ExtractionResult:
    """Validate and normalize a parsed capability reply."""
    name = _text(data.get("name"))
    tool_type = _text(data.get("type")).upper()
    category_id = _text(data.get("categoryId"))
    if not name or not tool_type or not category_id:
        missing = [key for key, val in (("name", name), ("type", tool_type), ("categoryId", category_id)) if not val]
        return ExtractionFailure(ErrorKind.EXTRACTION_PARSE_ERROR, f"Missing required fields: {', '.join(missing)}")
    if tool_type not in TOOL_TYPES:
        return ExtractionFailure(
            ErrorKind.EXTRACTION_PARSE_ERROR,
            f"Extractor returned type {tool_type!r}; expected one of {', '.join(TOOL_TYPES)}",
        )

    known_ids = {c.id for c in known_categories}
    if category_id not in known_ids:
        if fallback_category_id and fallback_category_id in known_ids:
            logger.warning(f"Extractor proposed unknown category {category_id!r}; using {fallback_category_id!r}")
            category_id = fallback_category_id
        else:
            return ExtractionFailure(
                ErrorKind.EXTRACTION_FAILED,
                f"Extractor proposed a category that does not exist: {category_id!r}",
            )

    return ExtractedRecord(
        name=name,
        type=tool_type,
        category_id=category_id,
        summary=_truncate(_text(data.get("summary")), MAX_SUMMARY_CHARS),
        what_it_is=_text(data.get("whatItIs")),
        capabilities=_string_list(data.get("capabilities"), MAX_LIST_ITEMS),
        best_for=_string_list(data.get("bestFor"), MAX_LIST_ITEMS),
        tags=_controlled_tags(data.get("tags")),
        status=_enum_or_default(ToolStatus, data.get("status"), ToolStatus.ACTIVE),
        content_type=_enum_or_default(ContentKind, data.get("contentType"), ContentKind.TOOL),
        notes=_text(data.get("notes")),
    )


class RecordExtractor:
    def __init__(self, completion: Optional[CompletionFn] = None, fallback_category_id: Optional[str] = None):
        self._completion = completion or openai_completion
        self.fallback_category_id = fallback_category_id

    async def extract(self, content: ScrapedContent, known_categories: List[CategoryRef]) -> ExtractionResult:
        if not known_categories:
            return ExtractionFailure(ErrorKind.EXTRACTION_FAILED, "No categories available to file the record under")

        prompt = build_user_prompt(content, known_categories)
        try:
            raw = await self._completion(SYSTEM_PROMPT, prompt)
        except (ExtractionConfigError, AuthenticationError) as exc:
            logger.error(f"Extraction capability not configured: {exc}")
            return ExtractionFailure(ErrorKind.EXTRACTION_CONFIG_ERROR, "Extraction service not configured")
        except APIError as exc:
            logger.error(f"Extraction request failed for {content.url}: {exc}")
            return ExtractionFailure(ErrorKind.EXTRACTION_FAILED, "Extraction service request failed")

        if not raw or not raw.strip():
            return ExtractionFailure(ErrorKind.EXTRACTION_PARSE_ERROR, "Extraction service returned no output")

        try:
            data = parse_json_object(raw, context="record extraction")
        except ResponseParseError as exc:
            logger.debug(f"Unparseable extraction output: {raw[:500]}")
            return ExtractionFailure(ErrorKind.EXTRACTION_PARSE_ERROR, str(exc), raw_output=raw)

        result = normalize_record(data, known_categories, self.fallback_category_id)
        if isinstance(result, ExtractionFailure):
            return ExtractionFailure(result.error_type, result.message, raw_output=raw)
        return result
