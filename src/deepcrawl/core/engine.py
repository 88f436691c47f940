"""Breadth-first crawl engine."""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from ..foundation.errors import (
    CrawlerError, EngineFatalError, FetchError, FetchTimeoutError, InvalidUrlError
)
from ..foundation.logging import get_logger
from ..foundation.metrics import MetricsCollector, get_metrics_collector
from ..models.crawl import CrawlError, CrawlOptions, CrawlResult, JobMetrics, PageData, QueueItem
from ..models.scrape import FetchResult
from .extractor import extract_links
from .fetcher import DEFAULT_USER_AGENT, Fetcher
from .normalizer import get_origin, normalize_url
from .parser import Parser, SoupParser
from .queue import CrawlQueue
from .rate_limiter import RateLimiter
from .robots import RobotsChecker
from .rules import CrawlRules
from .tracker import MetricsTracker


ProgressCallback = Callable[[JobMetrics], Awaitable[None]]

logger = get_logger(__name__)


class CrawlEngine:
    """Runs breadth-first crawls over injected fetch and parse capabilities.

    One engine may serve many crawls concurrently; all per-crawl state
    (queue, visited set, counters) lives inside :meth:`run`. The only
    state shared between crawls is the per-origin crawl-delay
    bookkeeping, which drops an origin once its delay has elapsed.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        parser: Optional[Parser] = None,
        robots_checker: Optional[RobotsChecker] = None,
        rate_limiter: Optional[RateLimiter] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        respect_robots: bool = True,
        max_crawl_delay: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.parser = parser or SoupParser()
        self.robots_checker = robots_checker
        self.rate_limiter = rate_limiter
        self.user_agent = user_agent
        self.respect_robots = respect_robots
        self.max_crawl_delay = max_crawl_delay
        self.metrics = metrics or get_metrics_collector()
        self._clock = clock

        self._origin_locks: Dict[str, asyncio.Lock] = {}
        self._last_fetch: Dict[str, float] = {}

    async def run(
        self,
        options: CrawlOptions,
        on_progress: Optional[ProgressCallback] = None,
        job_id: Optional[str] = None,
    ) -> CrawlResult:
        """Crawl breadth-first from ``options.start_url``.

        Items are taken from the queue in batches of at most
        ``min(concurrency, max_pages - pages_scraped)`` and fetched
        concurrently. Results are applied in queue order, so with a
        concurrency of one the traversal is strictly sequential.

        Args:
            options: Crawl settings
            on_progress: Awaited with a metrics snapshot after every batch
                and once more when the crawl ends
            job_id: Recorded on the result

        Returns:
            CrawlResult with every scraped page and per-URL error

        Raises:
            EngineFatalError: If the seed URL is malformed
        """
        started = time.perf_counter()

        try:
            seed = normalize_url(options.start_url)
            rules = CrawlRules(options)
        except InvalidUrlError as e:
            self.metrics.increment_counter("crawl.failure")
            raise EngineFatalError(
                f"Cannot start crawl: invalid start URL {options.start_url!r}"
            ) from e

        self.metrics.increment_counter("crawl.count")
        logger.info(
            f"Crawl started: {seed} (strategy={options.strategy.value}, "
            f"max_depth={options.max_depth}, max_pages={options.max_pages}, "
            f"concurrency={options.concurrency})"
        )

        queue = CrawlQueue()
        queue.enqueue(QueueItem(url=seed, depth=0))
        visited: Set[str] = set()
        tracker = MetricsTracker()
        pages: List[PageData] = []
        errors: List[CrawlError] = []

        while not queue.is_empty():
            slots = min(options.concurrency, options.max_pages - tracker.pages_scraped)
            if slots <= 0:
                break

            batch = self._take_batch(queue, visited, rules, tracker, slots)
            if not batch:
                continue

            outcomes = await asyncio.gather(*(self._crawl_page(item, options) for item in batch))

            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, CrawlError):
                    errors.append(outcome)
                    tracker.increment_errors()
                    continue

                pages.append(outcome)
                tracker.increment_pages_scraped()
                tracker.add_links_discovered(len(outcome.links))

                if item.depth + 1 < options.max_depth:
                    queue.enqueue_batch(
                        QueueItem(url=link, depth=item.depth + 1, parent_url=item.url)
                        for link in outcome.links
                    )

            if on_progress is not None:
                await on_progress(tracker.get_metrics())

            if rules.has_reached_page_limit(tracker.pages_scraped):
                logger.info(f"Reached page limit ({options.max_pages}), stopping crawl of {seed}")
                break

        elapsed = time.perf_counter() - started
        final = tracker.get_metrics()
        self.metrics.record_timing("crawl", elapsed)
        self.metrics.increment_counter("crawl.success")

        logger.info(
            f"Crawl completed: {seed} - {final.pages_scraped} pages, "
            f"{final.links_discovered} links, {final.errors} errors, "
            f"depth {final.current_depth}, {elapsed:.2f}s"
        )

        if on_progress is not None:
            await on_progress(final)

        return CrawlResult(
            job_id=job_id,
            pages_scraped=final.pages_scraped,
            links_discovered=final.links_discovered,
            duration=int(elapsed * 1000),
            errors=errors,
            pages=pages,
        )

    def _take_batch(
        self,
        queue: CrawlQueue,
        visited: Set[str],
        rules: CrawlRules,
        tracker: MetricsTracker,
        slots: int,
    ) -> List[QueueItem]:
        """Dequeue up to ``slots`` crawlable items, marking each as visited."""
        batch: List[QueueItem] = []

        while len(batch) < slots:
            item = queue.dequeue()
            if item is None:
                break
            if item.url in visited:
                continue

            visited.add(item.url)

            if not rules.should_crawl(item.url, item.depth, tracker.pages_scraped):
                logger.debug(f"Skipping {item.url} (depth {item.depth}) due to rules")
                continue

            tracker.update_depth(item.depth)
            batch.append(item)

        return batch

    async def _crawl_page(self, item: QueueItem, options: CrawlOptions) -> Union[PageData, CrawlError]:
        """Fetch, parse and extract one page; failures become a CrawlError."""
        logger.debug(f"Crawling {item.url} (depth {item.depth}, parent {item.parent_url})")

        try:
            if self.robots_checker is not None and self.respect_robots:
                if not await self.robots_checker.is_allowed(item.url, self.user_agent):
                    self.metrics.increment_counter("robots.blocked")
                    raise FetchError(f"Blocked by robots.txt: {item.url}", url=item.url)
                await self._respect_crawl_delay(item.url)

            fetch_result = await self.fetch(item.url, options.timeout)

            with self.metrics.timer("parse"):
                parsed = self.parser.parse(fetch_result.html, item.url)

            links = extract_links(parsed.links, fetch_result.url)
        except CrawlerError as e:
            logger.warning(f"Failed to crawl {item.url}: {e.message}")
            self.metrics.increment_counter("pages.failed")
            return CrawlError(url=item.url, error=e.message)
        except Exception as e:
            logger.error(f"Unexpected error crawling {item.url}: {e}")
            self.metrics.increment_counter("pages.failed")
            return CrawlError(url=item.url, error=str(e) or e.__class__.__name__)

        self.metrics.increment_counter("pages.scraped")
        logger.debug(f"Scraped {item.url}: {len(links)} links at depth {item.depth}")

        return PageData(
            url=item.url,
            title=parsed.title,
            text=parsed.text,
            links=links,
            depth=item.depth,
            meta=parsed.meta,
        )

    async def fetch(self, url: str, timeout: int) -> FetchResult:
        """Fetch ``url`` through the rate limiter with a hard timeout (ms).

        Raises:
            FetchTimeoutError: If the fetch exceeds ``timeout``
            FetchError: If the fetcher fails
        """
        async def _fetch() -> FetchResult:
            try:
                with self.metrics.timer("fetch"):
                    return await asyncio.wait_for(
                        self.fetcher.fetch(url, timeout=timeout, user_agent=self.user_agent),
                        timeout / 1000,
                    )
            except asyncio.TimeoutError as e:
                raise FetchTimeoutError(
                    f"Failed to fetch {url}: timed out after {timeout} ms", url=url, timeout=timeout
                ) from e

        if self.rate_limiter is not None:
            return await self.rate_limiter.schedule(_fetch)
        return await _fetch()

    async def _respect_crawl_delay(self, url: str) -> None:
        delay_ms = await self.robots_checker.get_crawl_delay(url, self.user_agent)
        if not delay_ms:
            return

        delay = min(delay_ms / 1000, self.max_crawl_delay)
        origin = get_origin(url)
        lock = self._origin_locks.setdefault(origin, asyncio.Lock())

        async with lock:
            last = self._last_fetch.get(origin)
            if last is not None:
                wait = delay - (self._clock() - last)
                if wait > 0:
                    logger.debug(f"Honouring crawl-delay for {origin}: sleeping {wait:.2f}s")
                    await asyncio.sleep(wait)
            now = self._clock()
            self._last_fetch[origin] = now
            self._prune_origins(now)

    def _prune_origins(self, now: float) -> None:
        """Forget origins whose last fetch is older than any delay we honour."""
        for origin in list(self._origin_locks):
            lock = self._origin_locks[origin]
            if lock.locked():
                continue
            last = self._last_fetch.get(origin)
            if last is None or now - last >= self.max_crawl_delay:
                del self._origin_locks[origin]
                self._last_fetch.pop(origin, None)

    def get_stats(self) -> Dict[str, object]:
        """Outbound request state shared by all crawls on this engine."""
        stats: Dict[str, object] = {
            "respect_robots": self.respect_robots and self.robots_checker is not None,
            "origins_delayed": len(self._last_fetch),
        }
        if self.rate_limiter is not None:
            stats["rate_limiter"] = self.rate_limiter.get_status()
        return stats
