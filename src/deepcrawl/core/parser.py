"""HTML parsing into title, text, raw links and metadata."""

import re
from typing import List, Optional, Protocol, runtime_checkable

from bs4 import BeautifulSoup

from ..foundation.errors import ParseError
from ..foundation.logging import get_logger
from ..models.crawl import PageMeta
from ..models.scrape import ParsedPage


DEFAULT_MAX_TEXT_LENGTH = 10000
NO_TITLE = "No title"
STRIPPED_TAGS = ["script", "style", "noscript", "svg"]

_WHITESPACE = re.compile(r"\s+")

logger = get_logger(__name__)


@runtime_checkable
class Parser(Protocol):
    """Turns an HTML document into a :class:`ParsedPage`."""

    def parse(self, html: str, url: str) -> ParsedPage:
        ...


class SoupParser:
    """BeautifulSoup-based parser using the stdlib ``html.parser`` backend."""

    def __init__(self, max_text_length: int = DEFAULT_MAX_TEXT_LENGTH, features: str = "html.parser"):
        self.max_text_length = max_text_length
        self.features = features

    def parse(self, html: str, url: str) -> ParsedPage:
        """Parse ``html`` fetched from ``url``.

        Raises:
            ParseError: If the document cannot be parsed
        """
        try:
            soup = BeautifulSoup(html, self.features)

            title = self._extract_title(soup)
            meta = PageMeta(
                description=self._extract_description(soup),
                keywords=self._extract_keywords(soup),
            )

            for tag in soup(STRIPPED_TAGS):
                tag.decompose()

            root = soup.body or soup
            text = _WHITESPACE.sub(" ", root.get_text(" ")).strip()[:self.max_text_length]

            links = [a["href"] for a in soup.find_all("a", href=True) if isinstance(a["href"], str)]
        except Exception as e:
            raise ParseError(f"Failed to parse HTML: {e}", url=url) from e

        logger.debug(f"Parsed {url}: title length {len(title)}, {len(links)} links")

        return ParsedPage(title=title, text=text, links=links, meta=meta)

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> str:
        for tag_name in ("title", "h1"):
            tag = soup.find(tag_name)
            if tag is not None:
                text = tag.get_text().strip()
                if text:
                    return text
        return NO_TITLE

    @staticmethod
    def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> Optional[str]:
        tag = soup.find("meta", attrs={attr: value})
        if tag is None:
            return None
        content = tag.get("content")
        if not isinstance(content, str):
            return None
        return content.strip() or None

    def _extract_description(self, soup: BeautifulSoup) -> Optional[str]:
        return (
            self._meta_content(soup, "name", "description")
            or self._meta_content(soup, "property", "og:description")
        )

    def _extract_keywords(self, soup: BeautifulSoup) -> Optional[List[str]]:
        content = self._meta_content(soup, "name", "keywords")
        if not content:
            return None
        keywords = [keyword.strip() for keyword in content.split(",")]
        return [keyword for keyword in keywords if keyword] or None
