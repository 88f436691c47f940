"""Single-page and batch scraping (no link following)."""

import asyncio
import time
from collections import deque
from typing import Deque, Dict, Iterable, Optional, Union

from ..foundation.errors import CrawlerError, ValidationError
from ..foundation.logging import get_logger
from ..models.crawl import CrawlError, PageData
from ..models.scrape import BatchScrapeResult, BatchScrapeStats
from .engine import CrawlEngine
from .extractor import extract_links
from .fetcher import DEFAULT_TIMEOUT_MS
from .normalizer import normalize_url


DEFAULT_BATCH_CONCURRENCY = 5

logger = get_logger(__name__)


class BatchScraper:
    """Scrapes independent URLs with the engine's fetch path and parser.

    Fetches go through the engine's rate limiter (when it has one); robots
    rules are not consulted for explicitly requested URLs.
    """

    def __init__(self, engine: CrawlEngine, timeout: int = DEFAULT_TIMEOUT_MS):
        self.engine = engine
        self.timeout = timeout
        self.metrics = engine.metrics

    async def scrape_single(self, url: str, timeout: Optional[int] = None) -> PageData:
        """Fetch, parse and extract one URL.

        Args:
            url: Absolute http(s) URL
            timeout: Fetch timeout in milliseconds

        Returns:
            PageData at depth 0 keyed by the normalized URL

        Raises:
            InvalidUrlError: If the URL is malformed
            FetchError: If the page cannot be fetched
            ParseError: If the HTML cannot be parsed
        """
        normalized = normalize_url(url)
        fetch_result = await self.engine.fetch(normalized, timeout or self.timeout)

        with self.metrics.timer("parse"):
            parsed = self.engine.parser.parse(fetch_result.html, normalized)

        return PageData(
            url=normalized,
            title=parsed.title,
            text=parsed.text,
            links=extract_links(parsed.links, fetch_result.url),
            depth=0,
            meta=parsed.meta,
        )

    async def _scrape_outcome(self, url: str, timeout: Optional[int]) -> Union[PageData, CrawlError]:
        self.metrics.increment_counter("scrape.count")
        try:
            with self.metrics.timer("scrape"):
                page = await self.scrape_single(url, timeout)
        except CrawlerError as e:
            self.metrics.increment_counter("scrape.failure")
            logger.warning(f"Failed to scrape {url}: {e.message}")
            return CrawlError(url=url, error=e.message)
        except Exception as e:
            self.metrics.increment_counter("scrape.failure")
            logger.error(f"Unexpected error scraping {url}: {e}")
            return CrawlError(url=url, error=str(e) or e.__class__.__name__)

        self.metrics.increment_counter("scrape.success")
        return page

    async def scrape_batch(
        self,
        urls: Iterable[str],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        timeout: Optional[int] = None,
    ) -> BatchScrapeResult:
        """Scrape ``urls`` with at most ``concurrency`` in flight.

        A new scrape starts as soon as any running one finishes. Results
        and errors are listed in completion order; a failing URL never
        affects the others.

        Raises:
            ValidationError: If ``concurrency`` is less than one
        """
        if concurrency < 1:
            raise ValidationError("concurrency must be at least 1", field="concurrency")

        started = time.perf_counter()
        pending: Deque[str] = deque(urls)
        total = len(pending)
        running: Dict[asyncio.Task, str] = {}
        result = BatchScrapeResult()

        logger.info(f"Batch scrape started: {total} URLs, concurrency {concurrency}")

        try:
            while pending or running:
                while pending and len(running) < concurrency:
                    url = pending.popleft()
                    running[asyncio.create_task(self._scrape_outcome(url, timeout))] = url

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)

                # Tasks finishing in the same wake-up are taken in start order
                for task in [task for task in running if task in done]:
                    del running[task]
                    outcome = task.result()
                    if isinstance(outcome, CrawlError):
                        result.errors.append(outcome)
                    else:
                        result.results.append(outcome)
        finally:
            for task in running:
                task.cancel()

        result.stats = BatchScrapeStats(
            total=total,
            success=len(result.results),
            failed=len(result.errors),
            duration=int((time.perf_counter() - started) * 1000),
        )

        logger.info(
            f"Batch scrape completed: {result.stats.success}/{total} succeeded, "
            f"{result.stats.failed} failed in {result.stats.duration} ms"
        )
        return result
