"""Pydantic models for crawl jobs."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .common import CamelModel, utcnow
from .crawl import CrawlOptions, CrawlResult, JobMetrics


class JobStatus(str, Enum):
    """Status of a crawl job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed forward transitions
JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobSnapshot(CamelModel):
    """Point-in-time view of a job without its result."""

    id: str
    status: JobStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    options: CrawlOptions
    metrics: JobMetrics = Field(default_factory=JobMetrics)
    error: Optional[str] = None


class Job(JobSnapshot):
    """A crawl job owned by the job manager."""

    start_time: datetime = Field(default_factory=utcnow)
    result: Optional[CrawlResult] = None

    def can_transition(self, status: JobStatus) -> bool:
        return status in JOB_TRANSITIONS[self.status]

    def snapshot(self) -> JobSnapshot:
        """Copy of this job without the result."""
        data = self.model_dump(exclude={"result"})
        return JobSnapshot.model_validate(data)
