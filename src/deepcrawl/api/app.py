"""FastAPI application exposing scraping and crawl jobs over HTTP."""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..foundation.config import CrawlerConfig
from ..foundation.errors import CrawlerError, ErrorContext, handle_error
from ..foundation.logging import get_logger
from ..models.common import ErrorResponse, HealthCheck
from ..models.crawl import CrawlRequest
from ..models.jobs import JobSnapshot, JobStatus
from ..models.scrape import BatchScrapeRequest, ScrapeRequest
from ..services.crawl import CrawlService
from ..version import __version__


logger = get_logger(__name__)


def get_service(request: Request) -> CrawlService:
    return request.app.state.service


def _validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    # ctx may hold exception instances, which are not JSON serialisable
    return [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def _status_body(job: JobSnapshot) -> Dict[str, Any]:
    """Job status response; the fields present depend on the job's state."""
    body: Dict[str, Any] = {
        "jobId": job.id,
        "status": job.status.value,
        "createdAt": job.start_time.isoformat(),
    }
    metrics = job.metrics.to_dict()

    if job.status == JobStatus.RUNNING:
        body["metrics"] = metrics
    elif job.status == JobStatus.COMPLETED:
        body["completedAt"] = job.end_time.isoformat() if job.end_time else None
        body["metrics"] = metrics
    elif job.status == JobStatus.FAILED:
        body["failedAt"] = job.end_time.isoformat() if job.end_time else None
        body["error"] = job.error

    return body


async def _reap_jobs(service: CrawlService, interval: float) -> None:
    """Periodically drop finished jobs and metric values older than ``jobs.max_age``."""
    retention = timedelta(seconds=service.config.jobs.max_age)
    while True:
        await asyncio.sleep(interval)
        try:
            await service.cleanup_jobs()
            service.metrics.clear_metrics(older_than=retention)
        except Exception as e:
            handle_error(e, ErrorContext(operation="cleanup_jobs"))


def create_app(
    service: Optional[CrawlService] = None,
    config: Optional[CrawlerConfig] = None,
) -> FastAPI:
    """Build the HTTP application around one :class:`CrawlService`.

    A service passed in is owned by the caller and is not shut down with
    the application; one created here is.

    Args:
        service: Service to expose
        config: Configuration used when ``service`` is not given

    Returns:
        Configured FastAPI application
    """
    owns_service = service is None
    if service is None:
        service = CrawlService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        interval = service.config.jobs.cleanup_interval
        reaper = asyncio.create_task(_reap_jobs(service, interval), name="job-reaper")
        logger.info(f"deepcrawl API {__version__} started")

        try:
            yield
        finally:
            reaper.cancel()
            await asyncio.gather(reaper, return_exceptions=True)
            if owns_service:
                await service.shutdown()
            logger.info("deepcrawl API stopped")

    app = FastAPI(title="deepcrawl", version=__version__, lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = ErrorResponse(error="Invalid request", details=_validation_details(exc))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.to_dict())

    @app.exception_handler(CrawlerError)
    async def crawler_error_handler(request: Request, exc: CrawlerError) -> JSONResponse:
        if exc.http_status >= 500:
            handle_error(exc, ErrorContext(operation=f"{request.method} {request.url.path}"))
        body = ErrorResponse(error=exc.message, error_code=exc.error_code, details=exc.details or None)
        return JSONResponse(status_code=exc.http_status, content=body.to_dict())

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return HealthCheck().to_dict()

    @app.post("/api/scrape")
    async def scrape(body: ScrapeRequest, svc: CrawlService = Depends(get_service)) -> Dict[str, Any]:
        page = await svc.scrape(body.url, timeout=body.timeout)
        return page.to_dict()

    @app.post("/api/scrape/batch")
    async def scrape_batch(
        body: BatchScrapeRequest, svc: CrawlService = Depends(get_service)
    ) -> Dict[str, Any]:
        result = await svc.scrape_batch(body.urls, concurrency=body.concurrency, timeout=body.timeout)
        return result.to_dict()

    @app.post("/api/crawl", status_code=status.HTTP_202_ACCEPTED)
    async def start_crawl(body: CrawlRequest, svc: CrawlService = Depends(get_service)) -> Dict[str, Any]:
        options = svc.build_options(
            body.start_url,
            strategy=body.strategy,
            max_depth=body.max_depth,
            max_pages=body.max_pages,
            concurrency=body.concurrency,
            timeout=body.timeout,
        )
        job_id = await svc.start_crawl(options)
        return {
            "jobId": job_id,
            "status": JobStatus.PENDING.value,
            "message": "Crawl job created successfully",
        }

    @app.get("/api/crawl/{job_id}")
    async def crawl_status(job_id: str, svc: CrawlService = Depends(get_service)) -> Dict[str, Any]:
        return _status_body(await svc.get_crawl_status(job_id))

    @app.get("/api/crawl/{job_id}/result")
    async def crawl_result(job_id: str, svc: CrawlService = Depends(get_service)) -> Dict[str, Any]:
        job = await svc.get_crawl_result(job_id)
        return {
            "jobId": job.id,
            "status": job.status.value,
            "startUrl": job.options.start_url,
            "strategy": job.options.strategy.value,
            "metrics": job.metrics.to_dict(),
            "result": job.result.to_dict() if job.result else None,
        }

    @app.delete("/api/crawl/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_crawl(job_id: str, svc: CrawlService = Depends(get_service)) -> Response:
        await svc.delete_crawl(job_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/stats")
    async def stats(svc: CrawlService = Depends(get_service)) -> Dict[str, Any]:
        return await svc.get_stats()

    return app
