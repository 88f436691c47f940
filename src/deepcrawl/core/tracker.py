"""Mutable counters for a single crawl."""

from ..models.crawl import JobMetrics


class MetricsTracker:
    """Tracks progress of one engine run.

    Unlike the process-wide :class:`~deepcrawl.foundation.metrics.MetricsCollector`
    this lives only as long as the crawl that owns it.
    """

    def __init__(self):
        self.reset()

    def increment_pages_scraped(self) -> None:
        self.pages_scraped += 1

    def add_links_discovered(self, count: int) -> None:
        self.links_discovered += count

    def increment_errors(self) -> None:
        self.errors += 1

    def update_depth(self, depth: int) -> None:
        """Record ``depth`` if it is the deepest seen so far."""
        if depth > self.current_depth:
            self.current_depth = depth

    def get_metrics(self) -> JobMetrics:
        """Snapshot of the current counters."""
        return JobMetrics(
            pages_scraped=self.pages_scraped,
            links_discovered=self.links_discovered,
            errors=self.errors,
            current_depth=self.current_depth,
        )

    def reset(self) -> None:
        self.pages_scraped = 0
        self.links_discovered = 0
        self.errors = 0
        self.current_depth = 0
