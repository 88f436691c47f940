"""
deepcrawl - breadth-first web crawling with politeness controls.

The package exposes three ways in:
1. Library - build a CrawlService (or the core components directly)
2. CLI - the ``deepcrawl`` command
3. HTTP API - a FastAPI application served by ``deepcrawl serve``
"""

from .version import __version__

__all__ = ["__version__"]
