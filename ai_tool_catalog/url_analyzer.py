"""End-to-end URL analysis: classify, fetch, scrape, extract, merge."""

import logging
from typing import Literal
from typing import Optional
from typing import Union

from pydantic import Field

from .catalog_db import CatalogStore
from .category_cache import CategoryCache
from .config import category_cache_ttl_seconds
from .config import fallback_category_id
from .content_classifier import classify
from .content_classifier import merge_content_type
from .errors import ErrorKind
from .extractor import ExtractionFailure
from .extractor import RecordExtractor
from .fetcher import FetchFailure
from .fetcher import FetchFailureKind
from .fetcher import PageFetcher
from .logging_config import IndentLogger
from .logging_utils import RunRecorder
from .logging_utils import pipeline_summary
from .schemas import CatalogModel
from .schemas import ExtractedRecord
from .schemas import ScrapedContent
from .scraper import ContentScraper

logger = logging.getLogger(__name__)

PIPELINE_NAME = "analyze_url"


class AnalysisSuccess(CatalogModel):
    success: Literal[True] = True
    data: ExtractedRecord
    scraped: ScrapedContent


class AnalysisFailure(CatalogModel):
    success: Literal[False] = False
    error: str
    error_type: ErrorKind = Field(alias="errorType")


AnalysisOutcome = Union[AnalysisSuccess, AnalysisFailure]


class UrlAnalyzer:
    """Runs the ingestion pipeline for one URL per call.

    Invocations share nothing but the category cache, which hands each run its
    own snapshot of the known categories.
    """

    def __init__(
        self,
        categories: CategoryCache,
        fetcher: Optional[PageFetcher] = None,
        scraper: Optional[ContentScraper] = None,
        extractor: Optional[RecordExtractor] = None,
        recorder: Optional[RunRecorder] = None,
    ):
        self.categories = categories
        self.fetcher = fetcher or PageFetcher()
        self.scraper = scraper or ContentScraper()
        self.extractor = extractor or RecordExtractor(fallback_category_id=fallback_category_id())
        self.recorder = recorder

    @classmethod
    def for_store(cls, store: CatalogStore, **kwargs) -> "UrlAnalyzer":
        """Analyzer whose category cache is loaded from, and invalidated by, the store."""
        cache = CategoryCache(store.category_refs, ttl_seconds=category_cache_ttl_seconds())
        store.add_category_listener(cache.invalidate)
        kwargs.setdefault("recorder", store.record_pipeline_run)
        return cls(cache, **kwargs)

    async def analyze_url(self, url: str) -> AnalysisOutcome:
        url = url.strip()
        with pipeline_summary(PIPELINE_NAME, recorder=self.recorder) as summary:
            summary.add_attribute("url", url)
            try:
                outcome = await self._run(url, summary, IndentLogger(logger))
            except Exception as exc:
                logger.exception(f"Unexpected error analyzing {url}: {exc}")
                outcome = AnalysisFailure(
                    error="Failed to analyze URL",
                    error_type=ErrorKind.EXTRACTION_FAILED,
                )
            if isinstance(outcome, AnalysisFailure):
                summary.mark_failed(error_type=outcome.error_type.value, note=outcome.error)
            return outcome

    async def _run(self, url: str, summary, ilog: IndentLogger) -> AnalysisOutcome:
        ilog.info(f"Analyzing {url}")
        ilog.indent()

        url_kind = classify(url)
        summary.add_attribute("url_kind", url_kind.value)
        ilog.debug(f"URL classified as {url_kind.value}")

        page = await self.fetcher.fetch(url)
        if isinstance(page, FetchFailure):
            ilog.warning(f"Fetch failed ({page.kind.value}): {page.message}")
            if page.kind == FetchFailureKind.INVALID_URL:
                return AnalysisFailure(error="Invalid URL format", error_type=ErrorKind.INVALID_URL)
            summary.add_attribute("fetch_failure", page.kind.value)
            summary.add_metric("http_status", page.status)
            return AnalysisFailure(error=f"Failed to fetch URL: {page.message}", error_type=ErrorKind.FETCH_FAILED)
        summary.add_metric("html_bytes", len(page.html))

        scraped = self.scraper.scrape(page)
        if scraped.is_empty():
            ilog.warning("Page yielded no title, description or body text")
            return AnalysisFailure(error="No usable content found on page", error_type=ErrorKind.PARSE_FAILED)
        summary.add_metric("body_chars", len(scraped.body_text))
        ilog.info(f"Scraped {scraped.title!r}")

        known_categories = self.categories.get()
        summary.add_metric("known_categories", len(known_categories))
        result = await self.extractor.extract(scraped, known_categories)
        if isinstance(result, ExtractionFailure):
            ilog.warning(f"Extraction failed ({result.error_type.value}): {result.message}")
            return AnalysisFailure(error=result.message, error_type=result.error_type)

        record = result.model_copy(update={"content_type": merge_content_type(url_kind, result.content_type)})
        summary.add_attribute("content_type", record.content_type.value)
        ilog.info(f"Extracted {record.name!r} -> category {record.category_id}")
        return AnalysisSuccess(data=record, scraped=scraped)
