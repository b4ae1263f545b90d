"""Background scrape jobs."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from parts_scraper import metrics
from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.db.part_store import PartStore
from parts_scraper.db.session import AsyncSessionLocal
from parts_scraper.ingest.pipeline import CatalogScraper
from parts_scraper.logging_config import get_logger

logger = logging.getLogger(__name__)


class TaskRunner:
    """
    Runs scrape jobs and records their lifecycle.

    A job moves pending -> running -> completed | failed. Failures are stored
    on the job row and never propagate out of the background task.
    """

    def __init__(
        self,
        store: Optional[PartStore] = None,
        scraper_factory: Optional[Callable[[Settings], CatalogScraper]] = None,
        settings: Settings = default_settings,
    ):
        self.store = store or PartStore(AsyncSessionLocal)
        self.scraper_factory = scraper_factory or CatalogScraper
        self.settings = settings

    async def run_scrape_job(
        self,
        job_id: str,
        query: str | list[str],
        max_products: Optional[int] = None,
        fetch_details: bool = True,
        use_preset_urls: bool = False,
    ) -> None:
        source = self.settings.catalog_source
        log = get_logger(__name__, job_id=job_id, scraper=source)
        started = time.perf_counter()
        start_time = datetime.utcnow()

        log.info(f"Starting {source} scrape job with query: {query}")

        scraper = None
        try:
            await self.store.update_job(job_id, status="running", start_time=start_time)
            scraper = self.scraper_factory(self.settings)
            records = await scraper.scrape(
                query,
                max_products=max_products,
                fetch_details=fetch_details,
                use_preset_urls=use_preset_urls,
            )
            result = await self.store.store_scraped_data(source, records, job_id=job_id)

            end_time = datetime.utcnow()
            await self.store.update_job(
                job_id,
                status="completed",
                end_time=end_time,
                duration=(end_time - start_time).total_seconds(),
                job_metadata={
                    "total": result.total,
                    "created": result.created,
                    "updated": result.updated,
                    "failed": result.failed,
                },
            )
            metrics.scrape_jobs_total.labels(source=source, status="completed").inc()
            log.info(
                f"Scrape job completed: {result.created} created, {result.updated} updated, "
                f"{result.failed} failed"
            )
        except Exception as e:
            log.exception(f"Error in scrape job: {e}")
            metrics.scrape_jobs_total.labels(source=source, status="failed").inc()
            end_time = datetime.utcnow()
            try:
                await self.store.update_job(
                    job_id,
                    status="failed",
                    end_time=end_time,
                    duration=(end_time - start_time).total_seconds(),
                    error_message=str(e) or type(e).__name__,
                )
            except Exception:
                logger.exception(f"Could not mark job {job_id} as failed")
        finally:
            metrics.scrape_duration_seconds.labels(source=source).observe(
                time.perf_counter() - started
            )
            if scraper is not None:
                await scraper.close()


task_runner = TaskRunner()
