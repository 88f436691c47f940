"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

import pytest

from deepcrawl.core.engine import CrawlEngine
from deepcrawl.core.fetcher import InMemoryFetcher
from deepcrawl.foundation.config import ConfigManager, CrawlerConfig, set_config_manager
from deepcrawl.foundation.errors import ErrorHandler
from deepcrawl.foundation.metrics import MetricsCollector
from deepcrawl.models.crawl import CrawlOptions
from deepcrawl.services.crawl import CrawlService


def make_html(
    title: str = "Test Page",
    links: Iterable[str] = (),
    body: str = "",
    description: Optional[str] = None,
) -> str:
    """Build a small HTML document with the given title and anchors."""
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    meta = f'<meta name="description" content="{description}">' if description else ""
    return (
        f"<html><head><title>{title}</title>{meta}</head>"
        f"<body><h1>{title}</h1><p>{body}</p>{anchors}</body></html>"
    )


@pytest.fixture
def html_page() -> Callable[..., str]:
    """Factory for HTML documents."""
    return make_html


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(autouse=True)
def isolated_config_manager():
    """Give every test a fresh global config manager with defaults only."""
    set_config_manager(ConfigManager())
    yield
    set_config_manager(None)


@pytest.fixture
def test_config() -> CrawlerConfig:
    """Configuration without robots.txt checks or request spacing."""
    return CrawlerConfig.model_validate({
        "crawl": {"respect_robots": False},
        "rate_limit": {"enabled": False},
        "fetch": {"user_agent": "Test-Agent/1.0"},
    })


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def error_handler() -> ErrorHandler:
    return ErrorHandler()


@pytest.fixture
def site_pages(html_page) -> Dict[str, str]:
    """Seed with four same-domain links and one external link."""
    return {
        "https://example.com/": html_page(
            "Home",
            links=["/a", "/b", "/c", "/d", "https://external.org/x"],
            body="Welcome home",
            description="Example home page",
        ),
        "https://example.com/a": html_page("Page A", links=["/a/deep", "/"]),
        "https://example.com/b": html_page("Page B", links=["/b/deep"]),
        "https://example.com/c": html_page("Page C"),
        "https://example.com/d": html_page("Page D"),
        "https://example.com/a/deep": html_page("Deep A"),
        "https://example.com/b/deep": html_page("Deep B"),
        "https://external.org/x": html_page("External"),
    }


@pytest.fixture
def site_fetcher(site_pages) -> InMemoryFetcher:
    return InMemoryFetcher(site_pages)


@pytest.fixture
def crawl_engine(site_fetcher, metrics_collector) -> CrawlEngine:
    """Engine over the in-memory site, without robots or rate limiting."""
    return CrawlEngine(fetcher=site_fetcher, respect_robots=False, metrics=metrics_collector)


@pytest.fixture
def crawl_options() -> Callable[..., CrawlOptions]:
    """Factory for crawl options rooted at the in-memory site."""
    def _create(**overrides) -> CrawlOptions:
        values = {
            "start_url": "https://example.com/",
            "max_depth": 2,
            "max_pages": 5,
            "concurrency": 1,
            "timeout": 5000,
        }
        values.update(overrides)
        return CrawlOptions(**values)
    return _create


@pytest.fixture
async def crawl_service(test_config, site_fetcher, metrics_collector):
    """Service over the in-memory site with guaranteed shutdown."""
    service = CrawlService(config=test_config, fetcher=site_fetcher, metrics=metrics_collector)
    try:
        yield service
    finally:
        await service.shutdown()


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner for testing."""
    from click.testing import CliRunner

    return CliRunner()
