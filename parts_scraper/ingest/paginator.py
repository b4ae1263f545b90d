"""Skip/take pagination over catalog search results.

One state machine drives both entry points (category path and literal URL):

    FETCHING --empty page / has_more false / budget reached--> DONE
    FETCHING --consecutive failures hit the ceiling----------> ABORTED

ABORTED is not an error: whatever was collected before the ceiling is
returned to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from parts_scraper import metrics
from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.ingest import waits
from parts_scraper.ingest.catalog_client import SearchPage, split_search_url
from parts_scraper.ingest.retry import with_retry

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    """The subset of CatalogClient the paginator needs."""

    async def fetch_page(self, category: str, skip: int = 0, take: int = 10) -> SearchPage: ...

    async def fetch_url_page(self, url: str, skip: int = 0, take: int = 50) -> SearchPage: ...

    async def fetch_counts(self, category: str) -> int: ...


class PaginationState(str, Enum):
    FETCHING = "fetching"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class PageCursor:
    """Position in the result set."""

    skip: int = 0
    take: int = 0
    has_more: bool = True


@dataclass
class PaginationResult:
    """Items collected by one pagination run and how the run ended."""

    items: list[dict] = field(default_factory=list)
    state: PaginationState = PaginationState.FETCHING
    pages: int = 0
    skips: list[int] = field(default_factory=list)
    total_count: Optional[int] = None

    @property
    def partial(self) -> bool:
        return self.state == PaginationState.ABORTED


def is_url(value: str) -> bool:
    return value.strip().lower().startswith(("http://", "https://"))


class Paginator:
    """Collects raw items page by page, honoring a budget and a failure ceiling."""

    def __init__(self, client: PageSource, settings: Settings = default_settings):
        self.client = client
        self.settings = settings

    async def collect(self, category_or_url: str, max_items: Optional[int] = None) -> list[dict]:
        """Collect up to ``max_items`` raw items (None means unlimited)."""
        result = await self.collect_with_outcome(category_or_url, max_items)
        return result.items

    async def collect_with_outcome(
        self, category_or_url: str, max_items: Optional[int] = None
    ) -> PaginationResult:
        """Collect items and report the final state, page count and visited skips."""
        if is_url(category_or_url):
            return await self.collect_url(category_or_url, max_items)
        return await self.collect_category(category_or_url, max_items)

    async def collect_category(self, category: str, max_items: Optional[int] = None) -> PaginationResult:
        """Paginate a category path with dynamically built search parameters."""
        budget = "unlimited" if max_items is None else max_items
        logger.info(f"Fetching products for category: {category} (max: {budget})")

        if self.settings.probe_category_counts and (max_items is None or max_items > 0):
            try:
                estimate = await self.client.fetch_counts(category)
                logger.info(f"Category {category} has approximately {estimate} products")
            except Exception as e:
                logger.warning(f"Could not estimate size of category {category}: {e}")

        result = await self._run(
            lambda skip, take: self.client.fetch_page(category, skip, take),
            page_size=self.settings.batch_size,
            max_items=max_items,
            label=f"category {category}",
        )
        logger.info(
            f"Completed fetching products for category \"{category}\". "
            f"Total: {len(result.items)} products"
        )
        return result

    async def collect_url(self, url: str, max_items: Optional[int] = None) -> PaginationResult:
        """Paginate a literal search URL, substituting skip/take on every request."""
        if not url:
            raise ValueError("URL is required")
        split_search_url(url)
        logger.info(f"Fetching products from URL: {url}")

        result = await self._run(
            lambda skip, take: self.client.fetch_url_page(url, skip, take),
            page_size=self.settings.url_page_size,
            max_items=max_items,
            label=f"URL {url}",
        )
        logger.info(f"Completed fetching products from URL. Total: {len(result.items)} products")
        return result

    async def _fetch_with_retry(
        self, fetch: Callable[[int, int], Awaitable[SearchPage]], cursor: PageCursor
    ) -> SearchPage:
        return await with_retry(
            lambda: fetch(cursor.skip, cursor.take),
            max_attempts=self.settings.retry_attempts,
            initial_delay=self.settings.retry_initial_delay,
            max_delay=self.settings.retry_max_delay,
        )

    async def _run(
        self,
        fetch: Callable[[int, int], Awaitable[SearchPage]],
        page_size: int,
        max_items: Optional[int],
        label: str,
    ) -> PaginationResult:
        result = PaginationResult()
        cursor = PageCursor(skip=0, take=0, has_more=True)
        consecutive_errors = 0
        ceiling = max(1, self.settings.failure_ceiling)
        source = self.settings.catalog_source

        if max_items is not None and max_items <= 0:
            result.state = PaginationState.DONE
            return result

        while result.state == PaginationState.FETCHING:
            remaining = None if max_items is None else max_items - len(result.items)
            cursor.take = page_size if remaining is None else min(page_size, remaining)

            try:
                page = await self._fetch_with_retry(fetch, cursor)
            except Exception as e:
                consecutive_errors += 1
                logger.error(
                    f"Error fetching batch (skip={cursor.skip}) for {label}: {e}. "
                    f"Attempt {consecutive_errors}/{ceiling}"
                )
                if consecutive_errors >= ceiling:
                    result.state = PaginationState.ABORTED
                    metrics.pagination_aborts_total.labels(source=source).inc()
                    logger.warning(
                        f"Failure ceiling ({ceiling}) reached for {label}. "
                        f"Returning {len(result.items)} products collected so far"
                    )
                    break

                backoff = waits.backoff_delay(
                    consecutive_errors + 1,
                    initial_delay=self.settings.pagination_backoff_base,
                    max_delay=self.settings.retry_max_delay,
                )
                logger.info(f"Waiting {backoff:.1f}s before retrying skip={cursor.skip}")
                await waits.delay(backoff)
                continue

            result.pages += 1
            result.skips.append(cursor.skip)
            metrics.pages_fetched_total.labels(source=source).inc()

            if not page.items:
                logger.info(f"No more products found for {label}")
                result.state = PaginationState.DONE
                break

            consecutive_errors = 0
            result.items.extend(page.items)
            logger.info(f"Fetched batch of {len(page.items)} products, total: {len(result.items)}")

            if page.total_count:
                result.total_count = page.total_count
                cursor.has_more = (cursor.skip + cursor.take) < page.total_count
                logger.info(
                    f"Progress: {len(result.items)}/{page.total_count} products "
                    f"({round(len(result.items) / page.total_count * 100)}%)"
                )
            else:
                # TODO: a short final page that happens to equal take costs one extra empty request
                cursor.has_more = len(page.items) == cursor.take

            cursor.skip += cursor.take

            if max_items is not None and len(result.items) >= max_items:
                logger.info(f"Reached max products limit: {max_items}")
                result.state = PaginationState.DONE
                break

            if not cursor.has_more:
                result.state = PaginationState.DONE
                break

            await waits.random_wait(
                self.settings.page_wait_min_seconds,
                self.settings.page_wait_max_seconds,
            )

        if max_items is not None and len(result.items) > max_items:
            result.items = result.items[:max_items]

        return result
