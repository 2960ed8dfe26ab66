"""Classify a URL into a coarse content kind.

The classifier is a pure function of the URL's hostname and path: no I/O and
no state, so calling it twice with the same URL always gives the same answer.
Domain structure is a stronger and cheaper signal than free-text inference for
videos, podcasts and articles, so a non-``tool`` result here overrides
whatever content type the extractor proposes.
"""

import logging
from typing import Any
from urllib.parse import urlparse

from .schemas import ContentKind

logger = logging.getLogger(__name__)


# Classification rules, checked in order; the first matching kind wins
CLASSIFICATION_RULES: list[tuple[ContentKind, dict[str, Any]]] = [
    (
        ContentKind.VIDEO,
        {
            "hosts": ["youtube.com", "youtu.be", "vimeo.com", "dailymotion.com", "twitch.tv"],
        },
    ),
    (
        ContentKind.PODCAST,
        {
            "hosts": [
                "spotify.com",
                "podcasts.apple.com",
                "anchor.fm",
                "transistor.fm",
                "podbean.com",
                "buzzsprout.com",
            ],
        },
    ),
    (
        ContentKind.ARTICLE,
        {
            "hosts": ["medium.com", "substack.com", "dev.to"],
            "host_labels": ["hashnode", "blog"],
            "path_segments": ["/blog/", "/article/", "/post/"],
        },
    ),
]


def _host_matches(hostname: str, domain: str) -> bool:
    """Exact domain or any subdomain of it (www.youtube.com, m.youtube.com)."""
    return hostname == domain or hostname.endswith("." + domain)


def _matches(hostname: str, path: str, rule: dict[str, Any]) -> bool:
    if any(_host_matches(hostname, domain) for domain in rule.get("hosts", [])):
        return True
    labels = hostname.split(".")
    # hashnode.dev / hashnode.com and blog.example.com; the last label is the TLD
    if any(label in labels[:-1] for label in rule.get("host_labels", [])):
        return True
    return any(segment in path for segment in rule.get("path_segments", []))


def classify(url: str) -> ContentKind:
    """Map a URL to tool | video | podcast | article (website is never inferred)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return ContentKind.TOOL
    hostname = (parsed.hostname or "").lower()
    path = parsed.path.lower()

    for kind, rule in CLASSIFICATION_RULES:
        if _matches(hostname, path, rule):
            return kind
    return ContentKind.TOOL


def merge_content_type(url_kind: ContentKind, proposed: ContentKind) -> ContentKind:
    """URL signal wins unless it is the default ``tool``."""
    if url_kind != ContentKind.TOOL:
        return url_kind
    return proposed
