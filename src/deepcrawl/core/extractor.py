"""Link discovery: resolve, normalize and filter raw hrefs."""

from typing import Dict, Iterable, List

from ..foundation.errors import InvalidUrlError
from ..foundation.logging import get_logger
from .normalizer import is_http_url, normalize_url, resolve_url


SKIPPED_PREFIXES = ("mailto:", "tel:", "javascript:", "data:", "#")

logger = get_logger(__name__)


def extract_links(raw_links: Iterable[str], base_url: str) -> List[str]:
    """Turn raw ``href`` values into crawlable absolute URLs.

    Links are resolved against ``base_url`` and normalized. Non-http(s)
    schemes, fragment-only links and references to the page itself are
    dropped, and duplicates are removed keeping document order. A link
    that fails to resolve is skipped.

    Args:
        raw_links: href attribute values as found in the document
        base_url: URL of the page the links were found on

    Returns:
        Unique normalized http(s) URLs

    Raises:
        InvalidUrlError: If ``base_url`` itself is malformed
    """
    normalized_base = normalize_url(base_url)
    unique: Dict[str, None] = {}
    found = 0

    for href in raw_links:
        found += 1
        if not href or not href.strip():
            continue

        trimmed = href.strip()
        if trimmed.lower().startswith(SKIPPED_PREFIXES):
            continue

        try:
            absolute = resolve_url(normalized_base, trimmed)
        except InvalidUrlError as e:
            logger.debug(f"Skipping invalid link {href!r}: {e.message}")
            continue

        if not is_http_url(absolute) or absolute == normalized_base:
            continue

        unique[absolute] = None

    links = list(unique)
    logger.debug(f"Extracted {len(links)} of {found} links from {base_url}")
    return links
