"""Process-wide metrics collection for the deepcrawl system."""

import json
import os
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional, Union

import psutil

from .logging import get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MetricValue:
    """Individual metric value with timestamp."""
    value: float
    timestamp: datetime = field(default_factory=_utcnow)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class MetricSummary:
    """Summary statistics for a metric."""
    name: str
    count: int
    sum: float
    min: float
    max: float
    avg: float
    latest: float
    latest_timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_values(cls, name: str, values: List[MetricValue]) -> "MetricSummary":
        """Create summary from list of metric values."""
        if not values:
            return cls(
                name=name,
                count=0,
                sum=0.0,
                min=0.0,
                max=0.0,
                avg=0.0,
                latest=0.0,
                latest_timestamp=_utcnow()
            )

        numeric_values = [v.value for v in values]
        latest_value = values[-1]

        return cls(
            name=name,
            count=len(values),
            sum=sum(numeric_values),
            min=min(numeric_values),
            max=max(numeric_values),
            avg=sum(numeric_values) / len(numeric_values),
            latest=latest_value.value,
            latest_timestamp=latest_value.timestamp,
            tags=latest_value.tags.copy()
        )


class MetricsCollector:
    """Collects counters, gauges and timings for crawl operations.

    Counter names used across the package:

    * ``pages.scraped`` / ``pages.failed`` / ``robots.blocked``
    * ``scrape.count`` / ``scrape.success`` / ``scrape.failure``
    * ``crawl.count`` / ``crawl.success`` / ``crawl.failure``
    * ``jobs.created`` / ``jobs.completed`` / ``jobs.failed``

    Timings are recorded in seconds under ``<name>.duration``.
    """

    def __init__(self, max_values_per_metric: int = 1000):
        self.logger = get_logger(__name__)
        self.max_values_per_metric = max_values_per_metric

        self._metrics: Dict[str, Deque[MetricValue]] = defaultdict(
            lambda: deque(maxlen=self.max_values_per_metric)
        )
        self._counters: Dict[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = defaultdict(float)

        self._lock = Lock()
        self._start_time = _utcnow()

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Record a metric value.

        Args:
            name: Metric name
            value: Metric value
            tags: Optional tags for the metric
            timestamp: Optional timestamp (defaults to current time)
        """
        metric_value = MetricValue(
            value=value,
            timestamp=timestamp or _utcnow(),
            tags=tags or {},
        )

        with self._lock:
            self._metrics[name].append(metric_value)

    def increment_counter(
        self,
        name: str,
        value: float = 1.0,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Increment a counter metric."""
        with self._lock:
            self._counters[name] += value
            current = self._counters[name]

        self.record_metric(name, current, tags)

    def set_gauge(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Set a gauge metric value."""
        with self._lock:
            self._gauges[name] = value

        self.record_metric(name, value, tags)

    def record_timing(
        self,
        name: str,
        duration: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Record a timing metric.

        Args:
            name: Timer name
            duration: Duration in seconds
            tags: Optional tags
        """
        self.record_metric(f"{name}.duration", duration, tags)
        self.increment_counter(f"{name}.timed", tags=tags)

    @contextmanager
    def timer(self, name: str, tags: Optional[Dict[str, str]] = None):
        """Context manager for timing operations.

        Usage:
            with metrics.timer("fetch"):
                ...
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(name, time.perf_counter() - start_time, tags)

    def get_metric_summary(self, name: str) -> Optional[MetricSummary]:
        """Get summary statistics for a metric, or None if never recorded."""
        with self._lock:
            if name not in self._metrics:
                return None
            values = list(self._metrics[name])

        return MetricSummary.from_values(name, values)

    def get_counter_value(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def get_gauge_value(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def get_system_metrics(self) -> Dict[str, Any]:
        """Get process and host level metrics via psutil."""
        current_time = _utcnow()
        uptime = current_time - self._start_time

        try:
            process = psutil.Process(os.getpid())

            system_metrics = {
                "uptime_seconds": uptime.total_seconds(),
                "memory_usage_mb": process.memory_info().rss / 1024 / 1024,
                "cpu_percent": process.cpu_percent(),
                "threads": process.num_threads(),
                "system_memory_percent": psutil.virtual_memory().percent,
                "system_cpu_percent": psutil.cpu_percent(),
                "timestamp": current_time.isoformat(),
            }
        except (psutil.Error, OSError) as e:
            self.logger.warning(f"Failed to collect system metrics: {e}")
            system_metrics = {
                "uptime_seconds": uptime.total_seconds(),
                "timestamp": current_time.isoformat(),
                "error": str(e)
            }

        return system_metrics

    def get_crawl_metrics(self) -> Dict[str, Any]:
        """Get crawl-level counters and derived rates."""
        crawl_metrics = {
            "pages_scraped": self.get_counter_value("pages.scraped"),
            "pages_failed": self.get_counter_value("pages.failed"),
            "robots_blocked": self.get_counter_value("robots.blocked"),
            "total_scrapes": self.get_counter_value("scrape.count"),
            "successful_scrapes": self.get_counter_value("scrape.success"),
            "failed_scrapes": self.get_counter_value("scrape.failure"),
            "total_crawls": self.get_counter_value("crawl.count"),
            "successful_crawls": self.get_counter_value("crawl.success"),
            "failed_crawls": self.get_counter_value("crawl.failure"),
            "jobs_created": self.get_counter_value("jobs.created"),
            "jobs_completed": self.get_counter_value("jobs.completed"),
            "jobs_failed": self.get_counter_value("jobs.failed"),
            "jobs_active": self.get_gauge_value("jobs.active"),
        }

        total_scrapes = crawl_metrics["total_scrapes"]
        if total_scrapes > 0:
            crawl_metrics["scrape_success_rate"] = crawl_metrics["successful_scrapes"] / total_scrapes

        total_crawls = crawl_metrics["total_crawls"]
        if total_crawls > 0:
            crawl_metrics["crawl_success_rate"] = crawl_metrics["successful_crawls"] / total_crawls

        return crawl_metrics

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Get timing summaries (milliseconds) for the fetch and crawl paths."""
        performance_metrics = {}

        for metric_name in ("fetch.duration", "parse.duration", "scrape.duration", "crawl.duration"):
            summary = self.get_metric_summary(metric_name)
            if summary and summary.count > 0:
                performance_metrics[metric_name] = {
                    "avg_ms": summary.avg * 1000,
                    "min_ms": summary.min * 1000,
                    "max_ms": summary.max * 1000,
                    "count": summary.count,
                    "latest_ms": summary.latest * 1000
                }

        return performance_metrics

    def export_metrics(
        self,
        format: str = "dict",
        include_system: bool = True,
    ) -> Union[Dict[str, Any], str]:
        """Export all metrics in the specified format.

        Args:
            format: Export format ('dict' or 'json')
            include_system: Include psutil process metrics

        Returns:
            Metrics in specified format

        Raises:
            ValueError: If the format is not supported
        """
        metrics: Dict[str, Any] = {
            "timestamp": _utcnow().isoformat(),
            "crawl": self.get_crawl_metrics(),
            "performance": self.get_performance_metrics(),
        }

        if include_system:
            metrics["system"] = self.get_system_metrics()

        if format == "dict":
            return metrics
        elif format == "json":
            return json.dumps(metrics, indent=2, default=str)
        else:
            raise ValueError(f"Unsupported format: {format}")

    def clear_metrics(self, older_than: Optional[timedelta] = None) -> int:
        """Drop recorded values older than ``older_than`` (default one hour)."""
        cutoff_time = _utcnow() - (older_than or timedelta(hours=1))
        cleared_count = 0

        with self._lock:
            for values in self._metrics.values():
                while values and values[0].timestamp < cutoff_time:
                    values.popleft()
                    cleared_count += 1

        if cleared_count > 0:
            self.logger.info(f"Cleared {cleared_count} old metric values")

        return cleared_count


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
