"""Scraper API endpoints."""

import logging
from datetime import datetime
from typing import Any, List, Optional, Union
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from parts_scraper.api.deps import get_part_store, get_scraper, get_task_runner
from parts_scraper.db.part_store import JOB_STATUSES, PartStore, job_to_dict
from parts_scraper.ingest.pipeline import CatalogScraper, normalize_inputs
from parts_scraper.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scrapers", tags=["scrapers"])


class ScrapeOptions(BaseModel):
    """Options accepted when starting a scrape."""
    max_products: Optional[int] = Field(default=None, alias="maxProducts", ge=0)
    fetch_details: bool = Field(default=True, alias="fetchDetails")
    use_preset_urls: bool = Field(default=False, alias="usePresetUrls")

    class Config:
        populate_by_name = True


class ScrapeRequest(BaseModel):
    """Request model for starting a scrape."""
    query: Optional[Union[str, List[str]]] = None
    options: ScrapeOptions = Field(default_factory=ScrapeOptions)


class ScrapeStartedResponse(BaseModel):
    message: str
    query: Union[str, List[str]]
    jobId: str
    options: dict[str, Any]


class JobErrorResponse(BaseModel):
    message: str


class ScraperJobResponse(BaseModel):
    """Response model for a scraper job."""
    jobId: str
    source: str
    query: str
    status: str
    itemsScraped: int
    startTime: Optional[datetime]
    endTime: Optional[datetime]
    duration: Optional[float]
    error: Optional[JobErrorResponse]
    createdAt: datetime
    updatedAt: datetime


class PaginationResponse(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ScraperJobListResponse(BaseModel):
    jobs: List[ScraperJobResponse]
    pagination: PaginationResponse


@router.get("")
async def list_scrapers(scraper: CatalogScraper = Depends(get_scraper)):
    """List available scrapers and their configured categories."""
    return {
        "scrapers": [
            {
                "id": scraper.name,
                "name": "LKQ Auto Parts",
                "description": "Scraper for LKQ auto parts website",
                "status": "active",
                "categories": scraper.get_available_categories(),
            }
        ]
    }


@router.post("/lkq", status_code=status.HTTP_202_ACCEPTED, response_model=ScrapeStartedResponse)
async def run_lkq_scraper(
    request: ScrapeRequest,
    background_tasks: BackgroundTasks,
    store: PartStore = Depends(get_part_store),
    runner: TaskRunner = Depends(get_task_runner),
):
    """Start a scrape in the background and return its job id immediately."""
    inputs = normalize_inputs(request.query)
    presets = request.options.use_preset_urls and bool(runner.settings.category_urls)
    if not inputs and not presets:
        raise HTTPException(status_code=400, detail="Query parameter is required")

    job_id = uuid4().hex
    options = request.options.model_dump(by_alias=True)
    query_text = "preset category URLs" if presets else ", ".join(inputs)

    await store.create_job(job_id, runner.settings.catalog_source, query_text, options)
    logger.info(f"Starting LKQ scraper job {job_id} with query: {query_text} and options: {options}")

    background_tasks.add_task(
        runner.run_scrape_job,
        job_id,
        inputs,
        max_products=request.options.max_products,
        fetch_details=request.options.fetch_details,
        use_preset_urls=request.options.use_preset_urls,
    )

    return ScrapeStartedResponse(
        message="Scraper started successfully",
        query=request.query if request.query is not None else [],
        jobId=job_id,
        options={**options, "jobId": job_id},
    )


@router.get("/jobs", response_model=ScraperJobListResponse)
async def list_scraper_jobs(
    source: Optional[str] = None,
    job_status: Optional[str] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    store: PartStore = Depends(get_part_store),
):
    """List scraper jobs, newest first."""
    if job_status and job_status not in JOB_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {job_status}")

    result = await store.list_jobs(
        source=source,
        status=job_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {
        "jobs": [job_to_dict(job) for job in result["jobs"]],
        "pagination": result["pagination"],
    }


@router.get("/jobs/{job_id}", response_model=ScraperJobResponse)
async def get_scraper_job_status(job_id: str, store: PartStore = Depends(get_part_store)):
    """Get the status of a scraper job."""
    job = await store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Scraper job not found")
    return job_to_dict(job)
