"""Pydantic models for catalog entities and pipeline payloads.

Attributes are snake_case in Python; the JSON wire format is camelCase
(``categoryId``, ``toolIds``, ``whatItIs``...), bridged by aliases.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel


class ContentKind(str, Enum):
    TOOL = "tool"
    WEBSITE = "website"
    VIDEO = "video"
    PODCAST = "podcast"
    ARTICLE = "article"


class ToolStatus(str, Enum):
    ACTIVE = "active"
    BETA = "beta"
    DEPRECATED = "deprecated"
    INACTIVE = "inactive"


class DeletePolicy(str, Enum):
    CASCADE = "cascade"
    REJECT_IF_NONEMPTY = "reject-if-nonempty"


def dedupe_tags(tags: List[str]) -> List[str]:
    """Drop blanks and case-insensitive repeats, keeping the first spelling."""
    seen: set[str] = set()
    result = []
    for tag in tags:
        cleaned = tag.strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        result.append(cleaned)
    return result


class CatalogModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def changes(self, nullable: tuple[str, ...] = ()) -> dict[str, Any]:
        """Fields explicitly sent in a partial update; nulls only where a column allows them."""
        fields = self.model_dump(exclude_unset=True)
        return {key: value for key, value in fields.items() if value is not None or key in nullable}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolCreate(CatalogModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    type: str = Field(min_length=1)
    summary: str = ""
    what_it_is: str = ""
    capabilities: List[str] = Field(default_factory=list)
    best_for: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    category_id: str = Field(min_length=1)
    is_pinned: bool = False
    status: ToolStatus = ToolStatus.ACTIVE
    content_type: ContentKind = ContentKind.TOOL
    notes: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: List[str]) -> List[str]:
        return dedupe_tags(value)


class Tool(ToolCreate):
    id: str
    created_at: datetime


class ToolUpdate(CatalogModel):
    """Partial update; only fields present in the request body are applied."""

    name: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = Field(default=None, min_length=1)
    summary: Optional[str] = None
    what_it_is: Optional[str] = None
    capabilities: Optional[List[str]] = None
    best_for: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    category_id: Optional[str] = Field(default=None, min_length=1)
    is_pinned: Optional[bool] = None
    status: Optional[ToolStatus] = None
    content_type: Optional[ContentKind] = None
    notes: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return None if value is None else dedupe_tags(value)


# ---------------------------------------------------------------------------
# Categories and collections
# ---------------------------------------------------------------------------


class Category(CatalogModel):
    id: str
    name: str
    tool_ids: List[str] = Field(default_factory=list)
    collapsed: bool = False
    sort_order: int = 0


class CategoryRef(CatalogModel):
    """The slice of a category the extractor needs."""

    id: str
    name: str


class CategoryCreate(CatalogModel):
    name: str = Field(min_length=1)
    collapsed: bool = False
    sort_order: Optional[int] = None
    tool_ids: List[str] = Field(default_factory=list)


class CategoryUpdate(CatalogModel):
    name: Optional[str] = Field(default=None, min_length=1)
    collapsed: Optional[bool] = None
    sort_order: Optional[int] = None
    tool_ids: Optional[List[str]] = None


class Collection(CatalogModel):
    id: str
    name: str
    tool_ids: List[str] = Field(default_factory=list)
    sort_order: int = 0


class CollectionCreate(CatalogModel):
    name: str = Field(min_length=1)
    tool_ids: List[str] = Field(default_factory=list)
    sort_order: Optional[int] = None


class CollectionUpdate(CatalogModel):
    name: Optional[str] = Field(default=None, min_length=1)
    tool_ids: Optional[List[str]] = None
    sort_order: Optional[int] = None


class MoveRequest(CatalogModel):
    from_category_id: str
    to_category_id: str
    position: Optional[int] = Field(default=None, ge=0)


class ReorderRequest(CatalogModel):
    tool_ids: List[str]


# ---------------------------------------------------------------------------
# Ingestion pipeline
# ---------------------------------------------------------------------------


class AnalyzeRequest(CatalogModel):
    url: str


class ScrapedContent(CatalogModel):
    url: str
    title: str = ""
    description: str = ""
    og_image: Optional[str] = None
    body_text: str = ""
    meta_keywords: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.title or self.description or self.body_text)


class ExtractedRecord(CatalogModel):
    """A validated, normalized extraction result ready to become a Tool."""

    name: str
    type: str
    category_id: str
    summary: str = ""
    what_it_is: str = ""
    capabilities: List[str] = Field(default_factory=list)
    best_for: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: ToolStatus = ToolStatus.ACTIVE
    content_type: ContentKind = ContentKind.TOOL
    notes: str = ""

    def to_tool_create(self, url: str) -> ToolCreate:
        return ToolCreate(
            name=self.name,
            url=url,
            type=self.type,
            summary=self.summary,
            what_it_is=self.what_it_is,
            capabilities=list(self.capabilities),
            best_for=list(self.best_for),
            tags=list(self.tags),
            category_id=self.category_id,
            status=self.status,
            content_type=self.content_type,
            notes=self.notes or None,
        )
