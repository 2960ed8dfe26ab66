"""Tests for URL content classification."""

import pytest

from ai_tool_catalog.content_classifier import classify
from ai_tool_catalog.content_classifier import merge_content_type
from ai_tool_catalog.schemas import ContentKind


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.youtube.com/watch?v=abc", ContentKind.VIDEO),
            ("https://youtu.be/abc", ContentKind.VIDEO),
            ("https://m.youtube.com/watch?v=abc", ContentKind.VIDEO),
            ("https://vimeo.com/123456", ContentKind.VIDEO),
            ("https://open.spotify.com/episode/xyz", ContentKind.PODCAST),
            ("https://podcasts.apple.com/us/podcast/id1", ContentKind.PODCAST),
            ("https://anchor.fm/show", ContentKind.PODCAST),
            ("https://medium.com/@someone/a-story", ContentKind.ARTICLE),
            ("https://someone.substack.com/p/issue", ContentKind.ARTICLE),
            ("https://dev.to/user/post", ContentKind.ARTICLE),
            ("https://someone.hashnode.dev/how-i-built", ContentKind.ARTICLE),
            ("https://blog.example.com/launch", ContentKind.ARTICLE),
            ("https://example.com/blog/my-post", ContentKind.ARTICLE),
            ("https://example.com/article/123", ContentKind.ARTICLE),
            ("https://example.com/post/123", ContentKind.ARTICLE),
            ("https://chat.openai.com", ContentKind.TOOL),
            ("https://cursor.com/pricing", ContentKind.TOOL),
        ],
    )
    def test_known_urls(self, url, expected):
        assert classify(url) == expected

    def test_youtube_watch_url_is_video(self):
        """A YouTube watch link is a video."""
        assert classify("https://www.youtube.com/watch?v=abc") == ContentKind.VIDEO

    def test_blog_path_is_article(self):
        """A /blog/ path marks an article on any host."""
        assert classify("https://example.com/blog/my-post") == ContentKind.ARTICLE

    def test_lookalike_host_is_not_matched(self):
        """Host matching works on whole domain labels."""
        assert classify("https://notyoutube.com/watch") == ContentKind.TOOL

    def test_path_segment_needs_boundaries(self):
        """/blogging-tools/ is not a /blog/ segment."""
        assert classify("https://example.com/blogging-tools") == ContentKind.TOOL

    @pytest.mark.parametrize("path", ["/post", "/blog", "/article"])
    def test_bare_segment_without_trailing_slash_is_tool(self, path):
        """Article segments match only when both slashes are present."""
        assert classify(f"https://example.com{path}") == ContentKind.TOOL

    def test_video_host_beats_article_path(self):
        """Video hosts are checked before article paths."""
        assert classify("https://www.youtube.com/post/abc") == ContentKind.VIDEO

    def test_website_is_never_inferred(self):
        assert classify("https://example.com/") == ContentKind.TOOL

    @pytest.mark.parametrize("url", ["", "not a url", "http://[::1"])
    def test_unparseable_input_defaults_to_tool(self, url):
        assert classify(url) == ContentKind.TOOL

    def test_deterministic(self):
        """Same URL, same answer."""
        url = "https://vimeo.com/channels/staffpicks"
        assert {classify(url) for _ in range(5)} == {ContentKind.VIDEO}


class TestMergeContentType:
    """Tests for merge_content_type()."""

    def test_url_signal_wins_when_specific(self):
        assert merge_content_type(ContentKind.VIDEO, ContentKind.TOOL) == ContentKind.VIDEO

    def test_extractor_wins_when_url_is_default(self):
        assert merge_content_type(ContentKind.TOOL, ContentKind.WEBSITE) == ContentKind.WEBSITE

    def test_url_signal_overrides_other_proposals(self):
        assert merge_content_type(ContentKind.PODCAST, ContentKind.ARTICLE) == ContentKind.PODCAST
