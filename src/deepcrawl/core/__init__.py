"""Core crawl components: traversal, policy, fetching and job management."""

from .batch import BatchScraper
from .engine import CrawlEngine
from .extractor import extract_links
from .fetcher import Fetcher, HttpxFetcher, InMemoryFetcher
from .jobs import JobManager, generate_job_id
from .normalizer import get_domain, get_origin, is_http_url, is_same_domain, normalize_url, resolve_url
from .parser import Parser, SoupParser
from .queue import CrawlQueue
from .rate_limiter import RateLimiter
from .robots import RobotsChecker, parse_robots_txt
from .rules import CrawlRules
from .tracker import MetricsTracker

__all__ = [
    "BatchScraper",
    "CrawlEngine",
    "extract_links",
    "Fetcher",
    "HttpxFetcher",
    "InMemoryFetcher",
    "JobManager",
    "generate_job_id",
    "get_domain",
    "get_origin",
    "is_http_url",
    "is_same_domain",
    "normalize_url",
    "resolve_url",
    "Parser",
    "SoupParser",
    "CrawlQueue",
    "RateLimiter",
    "RobotsChecker",
    "parse_robots_txt",
    "CrawlRules",
    "MetricsTracker",
]
