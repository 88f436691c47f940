"""Pydantic models for fetching, parsing and batch scraping."""

from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from .common import CamelModel, check_http_url
from .crawl import CrawlError, PageData, PageMeta


class FetchResult(CamelModel):
    """Body of a successful HTML fetch."""

    url: str  # final URL after redirects
    status_code: int = 200
    html: str
    content_type: str = "text/html"
    size: int = 0

    model_config = ConfigDict(frozen=True)


class ParsedPage(CamelModel):
    """Parser output before link resolution."""

    title: str
    text: str
    links: List[str] = Field(default_factory=list)  # raw href values
    meta: Optional[PageMeta] = None

    model_config = ConfigDict(frozen=True)


class BatchScrapeStats(CamelModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    duration: int = 0  # ms


class BatchScrapeResult(CamelModel):
    """Results of a batch scrape, in completion order."""

    results: List[PageData] = Field(default_factory=list)
    stats: BatchScrapeStats = Field(default_factory=BatchScrapeStats)
    errors: List[CrawlError] = Field(default_factory=list)


class ScrapeRequest(CamelModel):
    """Body of ``POST /api/scrape``."""

    url: str
    timeout: Optional[int] = Field(default=None, ge=1000, le=60000)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        return check_http_url(value)


class BatchScrapeRequest(CamelModel):
    """Body of ``POST /api/scrape/batch``."""

    urls: List[str] = Field(min_length=1)
    concurrency: Optional[int] = Field(default=None, ge=1, le=20)
    timeout: Optional[int] = Field(default=None, ge=1000, le=60000)

    @field_validator("urls")
    @classmethod
    def check_urls(cls, urls: List[str]) -> List[str]:
        return [check_http_url(url) for url in urls]
