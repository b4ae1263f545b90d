"""FastAPI dependencies."""

from parts_scraper.db.part_store import PartStore
from parts_scraper.db.session import AsyncSessionLocal
from parts_scraper.ingest.pipeline import CatalogScraper
from parts_scraper.worker.tasks import TaskRunner, task_runner


def get_part_store() -> PartStore:
    """Dependency for the part/job store."""
    return PartStore(AsyncSessionLocal)


def get_task_runner() -> TaskRunner:
    """Dependency for the background job runner."""
    return task_runner


def get_scraper() -> CatalogScraper:
    """Scraper used for read-only metadata such as available categories."""
    return CatalogScraper()
