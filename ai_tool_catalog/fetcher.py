"""Single-page fetcher with a hard deadline and typed failures."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from typing import Union
from urllib.parse import urlparse

import httpx

from .config import fetch_timeout_seconds

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class FetchFailureKind(str, Enum):
    INVALID_URL = "invalid_url"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK = "network"


@dataclass(frozen=True)
class RawPage:
    url: str
    final_url: str
    status_code: int
    html: str


@dataclass(frozen=True)
class FetchFailure:
    kind: FetchFailureKind
    message: str
    status: Optional[int] = None


FetchResult = Union[RawPage, FetchFailure]


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host and no embedded whitespace."""
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlparse(url)
        # Accessing .port raises ValueError for garbage like "http://host:abc"
        parsed.port
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


class PageFetcher:
    """Fetch one URL per call; no caching and no retries.

    An ``httpx.AsyncClient`` may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise a short-lived client is opened per call.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, default_timeout: Optional[float] = None):
        self._client = client
        self._default_timeout = default_timeout if default_timeout is not None else fetch_timeout_seconds()

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        if not is_valid_url(url):
            return FetchFailure(FetchFailureKind.INVALID_URL, f"Invalid URL format: {url!r}")

        deadline = timeout if timeout is not None else self._default_timeout
        try:
            # wait_for cancels the in-flight request when the deadline passes
            response = await asyncio.wait_for(self._get(url, deadline), timeout=deadline)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"Fetch timed out after {deadline}s: {url}")
            return FetchFailure(FetchFailureKind.TIMEOUT, f"Timed out after {deadline}s")
        except httpx.HTTPError as exc:
            logger.warning(f"Fetch failed for {url}: {exc}")
            return FetchFailure(FetchFailureKind.NETWORK, str(exc) or exc.__class__.__name__)

        if not response.is_success:
            logger.info(f"Fetch returned HTTP {response.status_code} for {url}")
            return FetchFailure(
                FetchFailureKind.HTTP_ERROR,
                f"HTTP {response.status_code} {response.reason_phrase}".strip(),
                status=response.status_code,
            )

        return RawPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=response.text,
        )

    async def _get(self, url: str, timeout: float) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=BROWSER_HEADERS, follow_redirects=True, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            return await client.get(url, headers=BROWSER_HEADERS)
