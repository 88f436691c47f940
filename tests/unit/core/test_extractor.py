"""Tests for link extraction."""

import pytest

from deepcrawl.core.extractor import extract_links
from deepcrawl.foundation.errors import InvalidUrlError


BASE = "https://example.com/docs/index"


class TestExtractLinks:
    """Test suite for extract_links."""

    def test_resolves_and_normalizes(self):
        links = extract_links(["guide", "/About/", "https://Other.org/Page#top"], BASE)
        assert links == [
            "https://example.com/docs/guide",
            "https://example.com/about",
            "https://other.org/page",
        ]

    @pytest.mark.parametrize("href", [
        "mailto:team@example.com",
        "tel:+123456",
        "javascript:void(0)",
        "JavaScript:alert(1)",
        "data:text/html,hi",
        "#section",
        "",
        "   ",
        "ftp://example.com/file",
    ])
    def test_skips_non_crawlable_links(self, href):
        assert extract_links([href], BASE) == []

    def test_drops_self_references(self):
        assert extract_links(["", "#", "/docs/index", "/docs/index#part", "/docs/index/"], BASE) == []

    def test_deduplicates_preserving_order(self):
        links = extract_links(["/b", "/a", "/b#x", "/B", "/a/"], BASE)
        assert links == ["https://example.com/b", "https://example.com/a"]

    def test_invalid_link_skipped(self):
        links = extract_links(["http://[bad", "/ok"], BASE)
        assert links == ["https://example.com/ok"]

    def test_invalid_base_raises(self):
        with pytest.raises(InvalidUrlError):
            extract_links(["/x"], "not a url")
