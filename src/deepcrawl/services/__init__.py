"""Service layer components for the deepcrawl system."""

from .crawl import CrawlService

__all__ = [
    "CrawlService",
]
