"""Pydantic models for crawling operations."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from .common import CamelModel, check_http_url, utcnow


class CrawlStrategy(str, Enum):
    """Which discovered links a crawl may follow."""
    DOMAIN = "domain"  # same host as the seed only
    ALL = "all"


class CrawlOptions(CamelModel):
    """Per-job crawl settings.

    Upper bounds are applied by the boundary layer; only the lower bounds
    are part of the model.
    """

    start_url: str
    strategy: CrawlStrategy = CrawlStrategy.DOMAIN
    max_depth: int = Field(default=3, ge=1)
    max_pages: int = Field(default=100, ge=1)
    concurrency: int = Field(default=5, ge=1)
    timeout: int = Field(default=10000, ge=1, description="Per-fetch timeout in milliseconds")

    model_config = ConfigDict(frozen=True)


class QueueItem(CamelModel):
    """A URL waiting in the traversal queue."""

    url: str
    depth: int = Field(ge=0)
    parent_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PageMeta(CamelModel):
    """Optional page metadata."""

    description: Optional[str] = None
    keywords: Optional[List[str]] = None

    model_config = ConfigDict(frozen=True)


class PageData(CamelModel):
    """A successfully crawled page."""

    url: str
    title: str
    text: str
    links: List[str] = Field(default_factory=list)
    depth: int = 0
    scraped_at: datetime = Field(default_factory=utcnow)
    meta: Optional[PageMeta] = None

    model_config = ConfigDict(frozen=True)


class CrawlError(CamelModel):
    """A per-URL failure recorded during a crawl."""

    url: str
    error: str
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class JobMetrics(CamelModel):
    """Live counters for one crawl."""

    pages_scraped: int = 0
    links_discovered: int = 0
    errors: int = 0
    current_depth: int = 0


class CrawlResult(CamelModel):
    """Outcome of a finished crawl."""

    job_id: Optional[str] = None
    pages_scraped: int = 0
    links_discovered: int = 0
    duration: int = Field(default=0, description="Elapsed wall time in milliseconds")
    errors: List[CrawlError] = Field(default_factory=list)
    pages: List[PageData] = Field(default_factory=list)


class CrawlRequest(CamelModel):
    """Body of ``POST /api/crawl``; unset options fall back to configuration."""

    start_url: str
    strategy: Optional[CrawlStrategy] = None
    max_depth: Optional[int] = Field(default=None, ge=1, le=10)
    max_pages: Optional[int] = Field(default=None, ge=1, le=1000)
    concurrency: Optional[int] = Field(default=None, ge=1, le=20)
    timeout: Optional[int] = Field(default=None, ge=1000, le=60000)

    @field_validator("start_url")
    @classmethod
    def check_start_url(cls, value: str) -> str:
        return check_http_url(value)
