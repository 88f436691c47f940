"""Pydantic models for the deepcrawl system."""

from .common import CamelModel, ErrorResponse, HealthCheck, check_http_url, utcnow
from .crawl import (
    CrawlStrategy, CrawlOptions, QueueItem, PageMeta, PageData,
    CrawlError, JobMetrics, CrawlResult, CrawlRequest
)
from .scrape import (
    FetchResult, ParsedPage, BatchScrapeStats, BatchScrapeResult,
    ScrapeRequest, BatchScrapeRequest
)
from .jobs import JobStatus, JobSnapshot, Job, JOB_TRANSITIONS

__all__ = [
    # Common
    "CamelModel", "ErrorResponse", "HealthCheck", "check_http_url", "utcnow",

    # Crawling
    "CrawlStrategy", "CrawlOptions", "QueueItem", "PageMeta", "PageData",
    "CrawlError", "JobMetrics", "CrawlResult", "CrawlRequest",

    # Fetching and scraping
    "FetchResult", "ParsedPage", "BatchScrapeStats", "BatchScrapeResult",
    "ScrapeRequest", "BatchScrapeRequest",

    # Jobs
    "JobStatus", "JobSnapshot", "Job", "JOB_TRANSITIONS",
]
