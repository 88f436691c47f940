"""Service layer wiring the crawl components together."""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

import pydantic

from ..core.batch import BatchScraper
from ..core.engine import CrawlEngine
from ..core.fetcher import Fetcher, HttpxFetcher
from ..core.jobs import JobManager
from ..core.normalizer import is_http_url
from ..core.parser import Parser, SoupParser
from ..core.rate_limiter import RateLimiter
from ..core.robots import RobotsChecker
from ..foundation.config import CrawlerConfig, get_config
from ..foundation.errors import (
    InvalidUrlError, JobNotFoundError, JobNotReadyError, ValidationError
)
from ..foundation.logging import get_logger
from ..foundation.metrics import MetricsCollector, get_metrics_collector
from ..models.crawl import CrawlOptions, CrawlStrategy, PageData
from ..models.jobs import Job, JobSnapshot, JobStatus
from ..models.scrape import BatchScrapeResult


class CrawlService:
    """Composition root for scraping and crawling.

    Every collaborator is built here from configuration unless one is
    passed in, so tests and embedders can swap the fetcher, parser,
    robots checker or rate limiter without touching module globals.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        fetcher: Optional[Fetcher] = None,
        parser: Optional[Parser] = None,
        robots_checker: Optional[RobotsChecker] = None,
        rate_limiter: Optional[RateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.metrics = metrics or get_metrics_collector()

        fetch_config = self.config.fetch
        crawl_config = self.config.crawl

        self.fetcher = fetcher or HttpxFetcher(
            timeout=fetch_config.timeout,
            max_response_size=fetch_config.max_response_size,
            user_agent=fetch_config.user_agent,
            max_redirects=fetch_config.max_redirects,
        )
        self.parser = parser or SoupParser(max_text_length=fetch_config.max_text_length)

        if robots_checker is None and crawl_config.respect_robots:
            robots_checker = RobotsChecker(
                cache_ttl=self.config.robots.cache_ttl,
                fetch_timeout=self.config.robots.fetch_timeout,
                user_agent=fetch_config.user_agent,
                max_entries=self.config.robots.max_entries,
            )
        self.robots_checker = robots_checker

        if rate_limiter is None and self.config.rate_limit.enabled:
            limits = self.config.rate_limit
            rate_limiter = RateLimiter(
                min_time=limits.min_time,
                max_concurrent=limits.max_concurrent,
                reservoir=limits.reservoir,
                reservoir_refresh_amount=limits.reservoir_refresh_amount,
                reservoir_refresh_interval=limits.reservoir_refresh_interval,
            )
        self.rate_limiter = rate_limiter

        self.engine = CrawlEngine(
            fetcher=self.fetcher,
            parser=self.parser,
            robots_checker=self.robots_checker,
            rate_limiter=self.rate_limiter,
            user_agent=fetch_config.user_agent,
            respect_robots=crawl_config.respect_robots,
            max_crawl_delay=self.config.robots.max_crawl_delay,
            metrics=self.metrics,
        )
        self.batch_scraper = BatchScraper(self.engine, timeout=fetch_config.timeout)
        self.job_manager = JobManager(self.engine, metrics=self.metrics)

    def build_options(
        self,
        start_url: str,
        strategy: Optional[Union[str, CrawlStrategy]] = None,
        max_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
        concurrency: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> CrawlOptions:
        """Fill unset options from configuration and clamp them to the configured maxima.

        Raises:
            InvalidUrlError: If ``start_url`` is not an http(s) URL
            ValidationError: If an option is below its minimum
        """
        if not is_http_url(start_url):
            raise InvalidUrlError(f"Invalid start URL: {start_url}", url=start_url)

        defaults = self.config.crawl
        try:
            return CrawlOptions(
                start_url=start_url,
                strategy=strategy or defaults.strategy,
                max_depth=min(max_depth or defaults.max_depth, defaults.max_depth_limit),
                max_pages=min(max_pages or defaults.max_pages, defaults.max_pages_limit),
                concurrency=min(concurrency or defaults.concurrency, defaults.max_concurrency),
                timeout=timeout or self.config.fetch.timeout,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid crawl options: {e.errors()[0]['msg']}") from e

    async def scrape(self, url: str, timeout: Optional[int] = None) -> PageData:
        """Scrape a single page without following links.

        Raises:
            InvalidUrlError: If ``url`` is not an http(s) URL
            FetchError: If the page cannot be fetched
            ParseError: If the HTML cannot be parsed
        """
        if not is_http_url(url):
            raise InvalidUrlError(f"Invalid URL: {url}", url=url)

        self.metrics.increment_counter("scrape.count")
        try:
            with self.metrics.timer("scrape"):
                page = await self.batch_scraper.scrape_single(url, timeout)
        except Exception:
            self.metrics.increment_counter("scrape.failure")
            raise

        self.metrics.increment_counter("scrape.success")
        self.logger.info(f"Scraped {url}: {len(page.links)} links")
        return page

    async def scrape_batch(
        self,
        urls: Sequence[str],
        concurrency: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> BatchScrapeResult:
        """Scrape many pages with bounded concurrency.

        Raises:
            ValidationError: If ``urls`` is empty
        """
        if not urls:
            raise ValidationError("At least one URL is required", field="urls")

        limit = self.config.crawl.max_concurrency
        concurrency = min(concurrency or self.config.crawl.concurrency, limit)
        return await self.batch_scraper.scrape_batch(urls, concurrency=concurrency, timeout=timeout)

    async def start_crawl(self, options: CrawlOptions) -> str:
        """Start a background crawl and return its job id."""
        return await self.job_manager.create_job(options)

    async def get_crawl_status(self, job_id: str) -> JobSnapshot:
        """Raises JobNotFoundError for an unknown id."""
        snapshot = await self.job_manager.get_job_status(job_id)
        if snapshot is None:
            raise JobNotFoundError(job_id)
        return snapshot

    async def get_crawl_result(self, job_id: str) -> Job:
        """Full job with its result.

        Raises:
            JobNotFoundError: For an unknown id
            JobNotReadyError: If the job has not completed
        """
        job = await self.job_manager.get_job_result(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.COMPLETED:
            raise JobNotReadyError(job_id, job.status.value)
        return job

    async def wait_for_crawl(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the crawl finishes (or ``timeout`` seconds pass)."""
        job = await self.job_manager.wait_for_job(job_id, timeout=timeout)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def delete_crawl(self, job_id: str) -> None:
        """Raises JobNotFoundError for an unknown id."""
        if not await self.job_manager.delete_job(job_id):
            raise JobNotFoundError(job_id)

    async def list_crawls(self) -> List[JobSnapshot]:
        return await self.job_manager.list_jobs()

    async def cleanup_jobs(self, max_age: Optional[Union[timedelta, float]] = None) -> int:
        """Drop finished jobs older than ``max_age`` (defaults to ``jobs.max_age``)."""
        if max_age is None:
            max_age = self.config.jobs.max_age
        return await self.job_manager.cleanup_old_jobs(max_age)

    async def get_stats(self) -> Dict[str, Any]:
        """Process metrics plus job and outbound request state."""
        stats = self.metrics.export_metrics(format="dict")
        stats["jobs"] = await self.job_manager.get_statistics()
        stats["engine"] = self.engine.get_stats()
        return stats

    async def shutdown(self) -> None:
        """Cancel running crawls and release network resources."""
        await self.job_manager.shutdown()

        if self.rate_limiter is not None:
            self.rate_limiter.close()
        if self.robots_checker is not None:
            await self.robots_checker.close()

        close = getattr(self.fetcher, "close", None)
        if close is not None:
            await close()

        self.logger.info("Crawl service shut down")

    async def __aenter__(self) -> "CrawlService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
