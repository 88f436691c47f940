"""CLI commands for deepcrawl."""

from .scrape import scrape
from .batch import batch
from .crawl import crawl
from .serve import serve
from .config import config

__all__ = [
    "scrape",
    "batch",
    "crawl",
    "serve",
    "config",
]
