"""Detail enrichment: fetch per-item detail payloads in small paced groups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from parts_scraper import metrics
from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.ingest import waits
from parts_scraper.ingest.retry import with_retry

logger = logging.getLogger(__name__)


class DetailSource(Protocol):
    async def fetch_detail(self, item_id: Any) -> dict: ...


def item_id(item: dict) -> Any:
    """Identifier used for the detail call (``id`` first, then ``productId``)."""
    return item.get("id") or item.get("productId")


class DetailEnricher:
    """
    Merges detail payloads into raw items under the ``details`` key.

    Items are processed in groups of ``concurrency``; calls inside a group run
    concurrently and groups are separated by a randomized wait. An item whose
    detail call fails (after retries), returns nothing, or has no identifier
    is passed through unchanged, so the output always has the input's length
    and order.
    """

    def __init__(self, client: DetailSource, settings: Settings = default_settings):
        self.client = client
        self.settings = settings

    async def enrich(self, items: list[dict], concurrency: Optional[int] = None) -> list[dict]:
        if not items:
            return []

        concurrency = concurrency or self.settings.parallel_requests
        groups = waits.chunk(items, concurrency)
        logger.info(f"Fetching details for {len(items)} products in {len(groups)} groups")

        enriched: list[dict] = []
        for index, group in enumerate(groups):
            results = await asyncio.gather(*(self._enrich_one(item) for item in group))
            enriched.extend(results)

            if (index + 1) % 10 == 0 or index + 1 == len(groups):
                logger.info(f"Detail progress: {len(enriched)}/{len(items)} products")

            if index + 1 < len(groups):
                await waits.random_wait(
                    self.settings.detail_group_wait_min_seconds,
                    self.settings.detail_group_wait_max_seconds,
                )

        return enriched

    async def _enrich_one(self, item: dict) -> dict:
        ident = item_id(item)
        if not ident:
            metrics.detail_enrichment_total.labels(status="skipped").inc()
            return item

        try:
            details = await with_retry(
                lambda: self.client.fetch_detail(ident),
                max_attempts=self.settings.retry_attempts,
                initial_delay=self.settings.retry_initial_delay,
                max_delay=self.settings.retry_max_delay,
            )
        except Exception as e:
            logger.error(f"Error fetching details for product {ident}: {e}")
            metrics.detail_enrichment_total.labels(status="failed").inc()
            return item

        if not details:
            metrics.detail_enrichment_total.labels(status="empty").inc()
            return item

        metrics.detail_enrichment_total.labels(status="enriched").inc()
        return {**item, "details": details}
