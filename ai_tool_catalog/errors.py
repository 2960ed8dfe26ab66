"""Error types shared by the ingestion pipeline and the catalog store."""

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminator reported as `errorType` by the /analyze-url endpoint."""

    INVALID_URL = "INVALID_URL"
    FETCH_FAILED = "FETCH_FAILED"
    PARSE_FAILED = "PARSE_FAILED"
    EXTRACTION_CONFIG_ERROR = "EXTRACTION_CONFIG_ERROR"
    EXTRACTION_PARSE_ERROR = "EXTRACTION_PARSE_ERROR"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


class ExtractionConfigError(RuntimeError):
    """The extraction capability is not configured (missing key or model)."""


class CatalogError(Exception):
    """Base class for rejected catalog store operations."""


class NotFoundError(CatalogError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class CatalogValidationError(CatalogError):
    """An operation would break a store invariant; nothing was written."""


class CategoryNotEmptyError(CatalogError):
    def __init__(self, category_id: str, tool_count: int):
        super().__init__(f"Category {category_id} still holds {tool_count} tool(s)")
        self.category_id = category_id
        self.tool_count = tool_count


class SyncError(Exception):
    """A server call made on behalf of an optimistic local mutation failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
