"""Persistence for scraped parts and scraper jobs."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parts_scraper import metrics
from parts_scraper.db.models import Part, ScraperJob
from parts_scraper.normalize.records import CanonicalRecord

logger = logging.getLogger(__name__)

JOB_STATUSES = ("pending", "running", "completed", "failed")


@dataclass
class StorageResult:
    """Counts from one store_scraped_data call."""

    total: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    @property
    def stored(self) -> int:
        return self.created + self.updated


def part_values(record: CanonicalRecord, source: str, job_id: Optional[str] = None) -> dict[str, Any]:
    """Column values for a Part row built from a canonical record."""
    data = record.to_dict()
    return {
        "part_number": record.part_number,
        "source": source,
        "name": record.name or record.part_number,
        "description": record.description,
        "price": record.price,
        "currency": record.currency,
        "manufacturer": record.manufacturer,
        "category": record.category,
        "subcategory": record.subcategory,
        "compatibility": data["compatibility"],
        "images": data["images"],
        "specifications": data["specifications"],
        "source_url": record.source_url,
        "in_stock": record.in_stock,
        "quantity": record.quantity,
        "condition": record.condition.value,
        "part_metadata": data["metadata"],
        "other_params": data["otherParams"],
        "last_job_id": job_id,
    }


def job_to_dict(job: ScraperJob) -> dict[str, Any]:
    return {
        "jobId": job.job_id,
        "source": job.source,
        "query": job.query,
        "options": job.options or {},
        "status": job.status,
        "itemsScraped": job.items_scraped,
        "startTime": job.start_time,
        "endTime": job.end_time,
        "duration": job.duration,
        "error": {"message": job.error_message} if job.error_message else None,
        "createdAt": job.created_at,
        "updatedAt": job.updated_at,
    }


class PartStore:
    """Upserts parts by (part_number, source) and tracks scraper jobs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def store_scraped_data(
        self,
        source: str,
        records: Iterable[CanonicalRecord],
        job_id: Optional[str] = None,
    ) -> StorageResult:
        """
        Insert new parts or update existing ones, one commit per record.

        A failing record is rolled back and counted; it never stops the batch.
        When ``job_id`` is given the job's items_scraped is increased by the
        number of stored records.
        """
        records = list(records)
        result = StorageResult(total=len(records))
        logger.info(f"Storing {len(records)} items from {source}")

        for record in records:
            async with self.session_factory() as db:
                try:
                    if not record.part_number:
                        raise ValueError("Part number is required")

                    values = part_values(record, source, job_id)
                    existing = (
                        await db.execute(
                            select(Part).where(
                                Part.part_number == record.part_number,
                                Part.source == source,
                            )
                        )
                    ).scalar_one_or_none()

                    if existing:
                        for key, value in values.items():
                            setattr(existing, key, value)
                        existing.updated_at = datetime.utcnow()
                        await db.commit()
                        result.updated += 1
                        metrics.parts_stored_total.labels(source=source, result="updated").inc()
                    else:
                        db.add(Part(**values))
                        await db.commit()
                        result.created += 1
                        metrics.parts_stored_total.labels(source=source, result="created").inc()
                except Exception as e:
                    await db.rollback()
                    result.failed += 1
                    result.errors.append({"partNumber": record.part_number, "error": str(e)})
                    metrics.parts_stored_total.labels(source=source, result="failed").inc()
                    logger.error(f"Error storing part {record.part_number}: {e}")

        if job_id:
            async with self.session_factory() as db:
                job = await self._get_job(db, job_id)
                if job:
                    job.items_scraped = (job.items_scraped or 0) + result.stored
                    await db.commit()

        logger.info(
            f"Storage complete: {result.created} created, {result.updated} updated, "
            f"{result.failed} failed"
        )
        return result

    async def _get_job(self, db: AsyncSession, job_id: str) -> Optional[ScraperJob]:
        return (
            await db.execute(select(ScraperJob).where(ScraperJob.job_id == job_id))
        ).scalar_one_or_none()

    async def create_job(
        self,
        job_id: str,
        source: str,
        query: str,
        options: Optional[dict] = None,
    ) -> ScraperJob:
        async with self.session_factory() as db:
            job = ScraperJob(
                job_id=job_id,
                source=source,
                query=query,
                options=options or {},
                status="pending",
                items_scraped=0,
            )
            db.add(job)
            await db.commit()
            await db.refresh(job)
            return job

    async def update_job(self, job_id: str, **changes: Any) -> Optional[ScraperJob]:
        """Apply column changes to a job; returns None when the job does not exist."""
        status = changes.get("status")
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Invalid job status: {status}")

        async with self.session_factory() as db:
            job = await self._get_job(db, job_id)
            if not job:
                logger.warning(f"Scraper job not found: {job_id}")
                return None
            for key, value in changes.items():
                setattr(job, key, value)
            job.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(job)
            return job

    async def get_job(self, job_id: str) -> Optional[ScraperJob]:
        async with self.session_factory() as db:
            return await self._get_job(db, job_id)

    async def list_jobs(
        self,
        source: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Newest-first page of jobs matching the filters, with pagination info."""
        page = max(1, page)
        limit = max(1, limit)

        conditions = []
        if source:
            conditions.append(ScraperJob.source == source)
        if status:
            conditions.append(ScraperJob.status == status)
        if start_date:
            conditions.append(ScraperJob.created_at >= start_date)
        if end_date:
            conditions.append(ScraperJob.created_at <= end_date)

        async with self.session_factory() as db:
            total = (
                await db.execute(select(func.count(ScraperJob.id)).where(*conditions))
            ).scalar_one()
            jobs = (
                await db.execute(
                    select(ScraperJob)
                    .where(*conditions)
                    .order_by(ScraperJob.created_at.desc(), ScraperJob.id.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()

        return {
            "jobs": list(jobs),
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }
