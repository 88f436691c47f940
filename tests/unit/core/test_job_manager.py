"""Tests for the in-memory job manager."""

import asyncio
import re
from datetime import timedelta

import pytest

from deepcrawl.core.engine import CrawlEngine
from deepcrawl.core.fetcher import InMemoryFetcher
from deepcrawl.core.jobs import JobManager, generate_job_id
from deepcrawl.models.jobs import Job, JobSnapshot, JobStatus


@pytest.fixture
def job_manager(crawl_engine, metrics_collector):
    return JobManager(crawl_engine, metrics=metrics_collector)


@pytest.fixture
def slow_job_manager(site_pages, metrics_collector):
    """Job manager whose fetches take long enough to observe a running job."""
    fetcher = InMemoryFetcher(site_pages, delay=0.2)
    engine = CrawlEngine(fetcher=fetcher, respect_robots=False, metrics=metrics_collector)
    return JobManager(engine, metrics=metrics_collector)


def test_generate_job_id_format():
    job_id = generate_job_id()
    assert re.fullmatch(r"job_\d+_[0-9a-f]{12}", job_id)
    assert generate_job_id() != job_id


@pytest.mark.asyncio
class TestJobManager:
    """Test suite for JobManager."""

    async def test_new_job_is_pending(self, job_manager, crawl_options):
        job_id = await job_manager.create_job(crawl_options())

        snapshot = await job_manager.get_job_status(job_id)
        assert snapshot.status == JobStatus.PENDING
        assert snapshot.end_time is None
        assert type(snapshot) is JobSnapshot

        await job_manager.wait_for_job(job_id)

    async def test_job_completes(self, job_manager, crawl_options, metrics_collector):
        job_id = await job_manager.create_job(crawl_options())

        job = await job_manager.wait_for_job(job_id)

        assert isinstance(job, Job)
        assert job.status == JobStatus.COMPLETED
        assert job.end_time is not None
        assert job.error is None
        assert job.result.job_id == job_id
        assert job.result.pages_scraped == 5
        assert job.metrics.pages_scraped == 5
        assert job.metrics.links_discovered == 8
        assert job.metrics.current_depth == 1
        assert metrics_collector.get_counter_value("jobs.created") == 1
        assert metrics_collector.get_counter_value("jobs.completed") == 1
        assert metrics_collector.get_gauge_value("jobs.active") == 0

    async def test_invalid_seed_fails_job(self, job_manager, crawl_options, metrics_collector):
        job_id = await job_manager.create_job(crawl_options(start_url="not a url"))

        job = await job_manager.wait_for_job(job_id)

        assert job.status == JobStatus.FAILED
        assert "invalid start URL" in job.error
        assert job.result is None
        assert metrics_collector.get_counter_value("jobs.failed") == 1

    async def test_running_job_reports_progress(self, slow_job_manager, crawl_options):
        job_id = await slow_job_manager.create_job(crawl_options(max_pages=3))

        await asyncio.sleep(0.3)
        snapshot = await slow_job_manager.get_job_status(job_id)

        assert snapshot.status == JobStatus.RUNNING
        assert snapshot.metrics.pages_scraped >= 1

        job = await slow_job_manager.wait_for_job(job_id)
        assert job.status == JobStatus.COMPLETED

    async def test_wait_with_timeout_returns_current_state(self, slow_job_manager, crawl_options):
        job_id = await slow_job_manager.create_job(crawl_options())

        job = await slow_job_manager.wait_for_job(job_id, timeout=0.05)

        assert job.status in (JobStatus.PENDING, JobStatus.RUNNING)
        await slow_job_manager.delete_job(job_id)

    async def test_unknown_job(self, job_manager):
        assert await job_manager.get_job_status("job_0_000000000000") is None
        assert await job_manager.get_job_result("job_0_000000000000") is None
        assert await job_manager.wait_for_job("job_0_000000000000") is None
        assert await job_manager.delete_job("job_0_000000000000") is False

    async def test_returned_jobs_are_copies(self, job_manager, crawl_options):
        job_id = await job_manager.create_job(crawl_options())
        job = await job_manager.wait_for_job(job_id)

        job.status = JobStatus.FAILED
        job.result.pages.clear()

        stored = await job_manager.get_job_result(job_id)
        assert stored.status == JobStatus.COMPLETED
        assert len(stored.result.pages) == 5

    async def test_delete_running_job(self, slow_job_manager, crawl_options):
        job_id = await slow_job_manager.create_job(crawl_options())
        await asyncio.sleep(0.05)

        assert await slow_job_manager.delete_job(job_id) is True
        assert await slow_job_manager.get_job_status(job_id) is None
        assert await slow_job_manager.delete_job(job_id) is False

    async def test_list_jobs(self, job_manager, crawl_options):
        first = await job_manager.create_job(crawl_options())
        second = await job_manager.create_job(crawl_options(max_pages=1))
        await job_manager.wait_for_job(first)
        await job_manager.wait_for_job(second)

        snapshots = await job_manager.list_jobs()

        assert {snapshot.id for snapshot in snapshots} == {first, second}

    async def test_cleanup_removes_only_old_terminal_jobs(self, job_manager, slow_job_manager, crawl_options):
        old_id = await job_manager.create_job(crawl_options())
        recent_id = await job_manager.create_job(crawl_options())
        await job_manager.wait_for_job(old_id)
        await job_manager.wait_for_job(recent_id)
        job_manager._jobs[old_id].end_time -= timedelta(hours=2)

        removed = await job_manager.cleanup_old_jobs(timedelta(hours=1))

        assert removed == 1
        assert await job_manager.get_job_status(old_id) is None
        assert await job_manager.get_job_status(recent_id) is not None

        running_id = await slow_job_manager.create_job(crawl_options())
        assert await slow_job_manager.cleanup_old_jobs(0) == 0
        assert await slow_job_manager.get_job_status(running_id) is not None
        await slow_job_manager.shutdown()

    async def test_statistics(self, job_manager, crawl_options):
        job_id = await job_manager.create_job(crawl_options())
        await job_manager.wait_for_job(job_id)

        stats = await job_manager.get_statistics()

        assert stats["total"] == 1
        assert stats["by_status"]["completed"] == 1
        assert stats["by_status"]["pending"] == 0
        assert stats["active_tasks"] == 0

    async def test_shutdown_fails_unfinished_jobs(self, slow_job_manager, crawl_options):
        running_id = await slow_job_manager.create_job(crawl_options())
        await asyncio.sleep(0.05)
        pending_id = await slow_job_manager.create_job(crawl_options())

        await slow_job_manager.shutdown()

        for job_id in (running_id, pending_id):
            job = await slow_job_manager.get_job_result(job_id)
            assert job.status == JobStatus.FAILED
            assert job.end_time is not None
            assert job.error
