"""In-memory crawl job management."""

import asyncio
import secrets
import time
from datetime import timedelta
from functools import partial
from typing import Any, Dict, List, Optional, Union

from ..foundation.errors import CrawlerError, ErrorContext, handle_error
from ..foundation.logging import get_logger
from ..foundation.metrics import MetricsCollector, get_metrics_collector
from ..models.common import utcnow
from ..models.crawl import CrawlOptions, CrawlResult, JobMetrics
from ..models.jobs import Job, JobSnapshot, JobStatus
from .engine import CrawlEngine


DEFAULT_MAX_JOB_AGE = 3600  # seconds


def generate_job_id() -> str:
    """``job_<epoch-ms>_<12 hex chars>``."""
    return f"job_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class JobManager:
    """Runs each crawl as a background task and keeps its record.

    Every read and write of the job table happens under one
    :class:`asyncio.Lock`. Callers only ever receive copies of the
    stored :class:`Job` records.
    """

    def __init__(self, engine: CrawlEngine, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger(__name__)
        self.engine = engine
        self.metrics = metrics or get_metrics_collector()

        self._jobs: Dict[str, Job] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def create_job(self, options: CrawlOptions) -> str:
        """Register a pending job and start its crawl in the background.

        The options are not validated here; an unusable seed makes the job
        fail. Returns before the crawl task has run.

        Args:
            options: Crawl settings

        Returns:
            The new job id
        """
        job_id = generate_job_id()
        job = Job(id=job_id, status=JobStatus.PENDING, options=options)

        async with self._lock:
            self._jobs[job_id] = job
            task = asyncio.create_task(self._execute(job_id), name=f"crawl-{job_id}")
            self._tasks[job_id] = task
            task.add_done_callback(partial(self._forget_task, job_id))
            self._update_active_gauge()

        self.metrics.increment_counter("jobs.created")
        self.logger.info(f"Job {job_id} created for {options.start_url}")

        return job_id

    def _forget_task(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _execute(self, job_id: str) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.can_transition(JobStatus.RUNNING):
                return
            job.status = JobStatus.RUNNING
            options = job.options
            self._update_active_gauge()

        self.logger.info(f"Job {job_id} started")

        try:
            result = await self.engine.run(
                options,
                on_progress=partial(self._on_progress, job_id),
                job_id=job_id,
            )
        except asyncio.CancelledError:
            await self._finish(job_id, JobStatus.FAILED, error="Job cancelled")
            raise
        except Exception as e:
            context = ErrorContext(operation="execute_crawl", url=options.start_url, job_id=job_id)
            handle_error(e, context)
            message = e.message if isinstance(e, CrawlerError) else (str(e) or e.__class__.__name__)
            await self._finish(job_id, JobStatus.FAILED, error=message)
            return

        await self._finish(job_id, JobStatus.COMPLETED, result=result)

    async def _on_progress(self, job_id: str, metrics: JobMetrics) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is not None and job.status == JobStatus.RUNNING:
                job.metrics = metrics

    async def _finish(
        self,
        job_id: str,
        status: JobStatus,
        result: Optional[CrawlResult] = None,
        error: Optional[str] = None,
    ) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if not job.can_transition(status):
                self.logger.warning(f"Ignoring transition of job {job_id} from {job.status.value} to {status.value}")
                return

            job.status = status
            job.end_time = utcnow()
            job.error = error

            if result is not None:
                job.result = result
                job.metrics = JobMetrics(
                    pages_scraped=result.pages_scraped,
                    links_discovered=result.links_discovered,
                    errors=len(result.errors),
                    current_depth=job.metrics.current_depth,
                )

            self._update_active_gauge()

        if status == JobStatus.COMPLETED:
            self.metrics.increment_counter("jobs.completed")
            self.logger.info(
                f"Job {job_id} completed: {result.pages_scraped} pages in {result.duration} ms"
            )
        else:
            self.metrics.increment_counter("jobs.failed")
            self.logger.error(f"Job {job_id} failed: {error}")

    def _update_active_gauge(self) -> None:
        active = sum(1 for job in self._jobs.values() if not job.status.is_terminal)
        self.metrics.set_gauge("jobs.active", active)

    async def get_job_status(self, job_id: str) -> Optional[JobSnapshot]:
        """Snapshot of a job without its result, or None if unknown."""
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job is not None else None

    async def get_job_result(self, job_id: str) -> Optional[Job]:
        """Full copy of a job including any result, or None if unknown."""
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    async def list_jobs(self) -> List[JobSnapshot]:
        async with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    async def delete_job(self, job_id: str) -> bool:
        """Forget a job, cancelling its crawl if it is still active.

        Returns:
            True if the job existed
        """
        async with self._lock:
            job = self._jobs.pop(job_id, None)
            task = self._tasks.pop(job_id, None)
            self._update_active_gauge()

        if task is not None and not task.done():
            task.cancel()

        if job is not None:
            self.logger.info(f"Job {job_id} deleted")
        return job is not None

    async def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Wait for a job's crawl to finish and return a copy of the job.

        If ``timeout`` (seconds) expires first the job is returned in
        whatever state it is in; the crawl keeps running.

        Returns:
            Copy of the job, or None if unknown
        """
        async with self._lock:
            if job_id not in self._jobs:
                return None
            task = self._tasks.get(job_id)

        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)

        return await self.get_job_result(job_id)

    async def cleanup_old_jobs(self, max_age: Union[timedelta, float] = DEFAULT_MAX_JOB_AGE) -> int:
        """Remove completed and failed jobs that ended more than ``max_age`` ago.

        Pending and running jobs are never removed.

        Args:
            max_age: A timedelta or a number of seconds

        Returns:
            Number of jobs removed
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        cutoff = utcnow() - max_age

        async with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.end_time is not None and job.end_time < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            self.logger.info(f"Cleaned up {len(expired)} old jobs")
            self.metrics.record_metric("jobs.cleaned", len(expired))

        return len(expired)

    async def get_statistics(self) -> Dict[str, Any]:
        """Job counts by status."""
        async with self._lock:
            counts = {status.value: 0 for status in JobStatus}
            for job in self._jobs.values():
                counts[job.status.value] += 1
            return {"total": len(self._jobs), "by_status": counts, "active_tasks": len(self._tasks)}

    async def shutdown(self) -> None:
        """Cancel every active crawl; unfinished jobs end as failed."""
        async with self._lock:
            tasks = list(self._tasks.values())

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        async with self._lock:
            for job in self._jobs.values():
                if not job.status.is_terminal:
                    job.status = JobStatus.FAILED
                    job.end_time = utcnow()
                    job.error = "Job manager shut down"
            self._update_active_gauge()

        self.logger.info(f"Job manager shut down ({len(tasks)} active tasks cancelled)")
