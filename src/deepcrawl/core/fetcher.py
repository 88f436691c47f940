"""HTML fetching over HTTP.

The engine talks to any object satisfying :class:`Fetcher`. Two
implementations ship with the package: :class:`HttpxFetcher` for real
network access and :class:`InMemoryFetcher`, a deterministic stand-in
serving canned pages.
"""

import asyncio
from typing import Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

import httpx

from ..foundation.errors import FetchError, FetchTimeoutError, InvalidUrlError
from ..foundation.logging import get_logger
from ..models.scrape import FetchResult
from .normalizer import normalize_url


DEFAULT_USER_AGENT = "DeepCrawler/1.0"
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_MAX_RESPONSE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_REDIRECTS = 5

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")

logger = get_logger(__name__)


@runtime_checkable
class Fetcher(Protocol):
    """Downloads a single HTML page."""

    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
    ) -> FetchResult:
        """Fetch ``url``; ``timeout`` is in milliseconds.

        Raises:
            FetchError: On any failure, including non-HTML responses
        """
        ...


def is_html_content_type(content_type: str) -> bool:
    lowered = content_type.lower()
    return any(kind in lowered for kind in HTML_CONTENT_TYPES)


class HttpxFetcher:
    """Fetcher backed by :class:`httpx.AsyncClient`.

    The body is streamed so oversized responses are abandoned as soon as
    they cross ``max_response_size`` bytes.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: int = DEFAULT_TIMEOUT_MS,
        max_response_size: int = DEFAULT_MAX_RESPONSE_SIZE,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ):
        self.timeout = timeout
        self.max_response_size = max_response_size
        self.user_agent = user_agent
        self.max_redirects = max_redirects
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=self.max_redirects,
            )
        return self._client

    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
    ) -> FetchResult:
        """Fetch an HTML page.

        Args:
            url: Absolute http(s) URL
            timeout: Timeout in milliseconds (defaults to the instance timeout)
            user_agent: User-Agent header override

        Returns:
            FetchResult with the decoded body

        Raises:
            FetchTimeoutError: If the request times out
            FetchError: On connection errors, non-2xx status, non-HTML
                content or oversized bodies
        """
        timeout_ms = timeout or self.timeout
        headers = {
            "User-Agent": user_agent or self.user_agent,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": "en-US,en;q=0.9",
        }

        logger.debug(f"Fetching {url} (timeout {timeout_ms} ms)")

        try:
            async with self._get_client().stream(
                "GET",
                url,
                headers=headers,
                timeout=timeout_ms / 1000,
                follow_redirects=True,
            ) as response:
                return await self._read_response(url, response)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Failed to fetch {url}: timed out after {timeout_ms} ms",
                url=url,
                timeout=timeout_ms,
            ) from e
        except httpx.TooManyRedirects as e:
            raise FetchError(f"Failed to fetch {url}: too many redirects", url=url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Failed to fetch {url}: {e}", url=url) from e

    async def _read_response(self, url: str, response: httpx.Response) -> FetchResult:
        status_code = response.status_code
        if not response.is_success:
            raise FetchError(
                f"Failed to fetch {url}: HTTP {status_code}",
                status_code=status_code,
                url=url,
            )

        content_type = response.headers.get("content-type", "")
        if not is_html_content_type(content_type):
            raise FetchError(
                f"Failed to fetch {url}: non-HTML content type: {content_type or 'unknown'}",
                status_code=status_code,
                url=url,
            )

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_response_size:
            raise self._too_large(url, status_code)

        chunks: List[bytes] = []
        total_size = 0
        async for chunk in response.aiter_bytes():
            total_size += len(chunk)
            if total_size > self.max_response_size:
                raise self._too_large(url, status_code)
            chunks.append(chunk)

        body = b"".join(chunks)
        try:
            html = body.decode(response.charset_encoding or "utf-8", errors="replace")
        except LookupError:
            html = body.decode("utf-8", errors="replace")

        logger.debug(f"Fetched {url}: {status_code}, {total_size} bytes")

        return FetchResult(
            url=str(response.url),
            status_code=status_code,
            html=html,
            content_type=content_type,
            size=total_size,
        )

    def _too_large(self, url: str, status_code: int) -> FetchError:
        return FetchError(
            f"Failed to fetch {url}: response size exceeds limit of {self.max_response_size} bytes",
            status_code=status_code,
            url=url,
        )

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        if self._owns_client:
            self._client = None

    async def __aenter__(self) -> "HttpxFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


PageSource = Union[str, FetchResult, Exception]


class InMemoryFetcher:
    """Serves pages from a mapping of URL to HTML, FetchResult or exception.

    Keys are normalized, so ``https://Example.com`` and
    ``https://example.com/`` address the same page. Unknown URLs fail
    with an HTTP 404 :class:`FetchError`. Every requested URL is appended
    to :attr:`requested`.
    """

    def __init__(self, pages: Optional[Mapping[str, PageSource]] = None, delay: float = 0.0):
        self.pages: Dict[str, PageSource] = {}
        self.delay = delay
        self.requested: List[str] = []
        for url, source in (pages or {}).items():
            self.add_page(url, source)

    def add_page(self, url: str, source: PageSource) -> None:
        self.pages[normalize_url(url)] = source

    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
    ) -> FetchResult:
        self.requested.append(url)

        if self.delay:
            await asyncio.sleep(self.delay)

        try:
            key = normalize_url(url)
        except InvalidUrlError as e:
            raise FetchError(f"Failed to fetch {url}: {e.message}", url=url) from e

        source = self.pages.get(key)
        if source is None:
            raise FetchError(f"Failed to fetch {url}: HTTP 404", status_code=404, url=url)
        if isinstance(source, Exception):
            raise source
        if isinstance(source, FetchResult):
            return source

        return FetchResult(
            url=url,
            status_code=200,
            html=source,
            content_type="text/html; charset=utf-8",
            size=len(source.encode("utf-8")),
        )

    async def close(self) -> None:
        return None
