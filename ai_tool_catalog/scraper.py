"""Turn fetched markup into normalized title/description/image/keywords/body."""

import logging
import re
from typing import List
from typing import Optional

from bs4 import BeautifulSoup
from bs4 import Tag

from .config import body_excerpt_chars
from .fetcher import RawPage
from .schemas import ScrapedContent

logger = logging.getLogger(__name__)

# Elements that never carry page content
CHROME_TAGS = ["script", "style", "noscript", "template", "iframe", "svg", "nav", "footer", "header", "aside", "form"]

# Most content-likely containers, highest precedence first
BODY_SELECTORS = ["main", "article", ".content", "#content", "body"]

MAX_KEYWORDS = 10

_WHITESPACE = re.compile(r"\s+")


def _meta_content(soup: BeautifulSoup, key: str) -> str:
    """Content of the first <meta> whose property or name equals key."""
    key = key.lower()
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: lambda value: value is not None and value.lower() == key})
        if isinstance(tag, Tag):
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return ""


def _first_non_empty(*values: str) -> str:
    for value in values:
        if value:
            return value
    return ""


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _parse_keywords(raw: str) -> List[str]:
    keywords = [part.strip() for part in raw.split(",")]
    return [k for k in keywords if k][:MAX_KEYWORDS]


def _body_excerpt(soup: BeautifulSoup, limit: int) -> str:
    for selector in BODY_SELECTORS:
        node = soup.select_one(selector)
        if node is not None:
            return _collapse(node.get_text(" "))[:limit]
    # Fragment without a <body>
    return _collapse(soup.get_text(" "))[:limit]


class ContentScraper:
    def __init__(self, excerpt_chars: Optional[int] = None):
        self.excerpt_chars = excerpt_chars if excerpt_chars is not None else body_excerpt_chars()

    def scrape(self, raw: RawPage) -> ScrapedContent:
        return scrape_html(raw.html, url=raw.url, excerpt_chars=self.excerpt_chars)


def scrape_html(html: str, *, url: str, excerpt_chars: int = 3000) -> ScrapedContent:
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    document_title = _collapse(title_tag.get_text()) if title_tag else ""

    title = _first_non_empty(
        _meta_content(soup, "og:title"),
        _meta_content(soup, "twitter:title"),
        document_title,
    )
    description = _first_non_empty(
        _meta_content(soup, "og:description"),
        _meta_content(soup, "twitter:description"),
        _meta_content(soup, "description"),
    )
    image = _first_non_empty(
        _meta_content(soup, "og:image"),
        _meta_content(soup, "twitter:image"),
    )
    keywords = _parse_keywords(_meta_content(soup, "keywords"))

    for tag in soup(CHROME_TAGS):
        tag.decompose()

    body_text = _body_excerpt(soup, excerpt_chars)

    logger.debug(f"Scraped {url}: title={bool(title)} description={bool(description)} body_chars={len(body_text)}")
    return ScrapedContent(
        url=url,
        title=_collapse(title),
        description=_collapse(description),
        og_image=image or None,
        body_text=body_text,
        meta_keywords=keywords,
    )
