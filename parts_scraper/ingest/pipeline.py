"""End-to-end catalog scrape: session, pagination, enrichment and mapping."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.ingest.catalog_client import CatalogClient
from parts_scraper.ingest.enrichment import DetailEnricher
from parts_scraper.ingest.paginator import Paginator, is_url
from parts_scraper.ingest.session_provider import SessionProvider
from parts_scraper.normalize.mapper import map_items
from parts_scraper.normalize.records import CanonicalRecord

logger = logging.getLogger(__name__)


class CatalogUnavailableError(RuntimeError):
    """Raised when no session could be obtained and the catalog API is unreachable."""

    pass


def normalize_inputs(inputs: str | Iterable[str] | None) -> list[str]:
    """Accept a single category/URL or a list of them; blanks are dropped."""
    if inputs is None:
        return []
    if isinstance(inputs, str):
        inputs = [inputs]
    return [value.strip() for value in inputs if value and value.strip()]


class CatalogScraper:
    """
    Orchestrates a complete scrape.

    Collaborators are built lazily from settings unless injected, so tests can
    pass fakes for the client, paginator and enricher.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[CatalogClient] = None,
        session_provider: Optional[SessionProvider] = None,
        paginator: Optional[Paginator] = None,
        enricher: Optional[DetailEnricher] = None,
    ):
        self.settings = settings
        self.name = settings.catalog_source
        self.session_provider = session_provider or SessionProvider(settings)
        self.client = client
        self.paginator = paginator
        self.enricher = enricher
        self.cookies = ""
        self._initialized = False

    async def initialize(self) -> None:
        """
        Resolve the session cookies and check connectivity.

        Raises:
            CatalogUnavailableError: no cookies and the connectivity probe failed
        """
        if self._initialized:
            return

        logger.info(f"Initializing {self.name} scraper")
        if self.settings.category_urls:
            logger.info(f"Found {len(self.settings.category_urls)} predefined category URLs in config")

        self.cookies = await self.session_provider.resolve_session()

        if self.client is None:
            self.client = CatalogClient(self.settings, cookies=self.cookies)
        if self.paginator is None:
            self.paginator = Paginator(self.client, self.settings)
        if self.enricher is None:
            self.enricher = DetailEnricher(self.client, self.settings)

        reachable = await self.client.probe()
        if not reachable and not self.cookies:
            raise CatalogUnavailableError(
                "No session cookies available and the catalog API connectivity probe failed"
            )
        if not reachable:
            logger.warning("Connectivity probe failed; continuing with configured cookies")

        self._initialized = True
        logger.info(f"{self.name} scraper initialized successfully")

    def get_available_categories(self) -> list[dict]:
        return list(self.settings.categories)

    async def scrape(
        self,
        inputs: str | Iterable[str] | None,
        max_products: Optional[int] = None,
        fetch_details: bool = True,
        use_preset_urls: bool = False,
    ) -> list[CanonicalRecord]:
        """
        Scrape categories or literal search URLs into canonical records.

        Args:
            inputs: Category path(s) and/or URL(s)
            max_products: Total item budget across all inputs (None = unlimited)
            fetch_details: Enrich each item with its detail payload
            use_preset_urls: Replace the inputs with the configured category URLs, if any

        Returns:
            Mapped records, at most ``max_products`` of them
        """
        await self.initialize()

        if use_preset_urls and self.settings.category_urls:
            queue = list(self.settings.category_urls)
            logger.info(f"Using {len(queue)} preset category URLs")
        else:
            if use_preset_urls:
                logger.warning("No preset category URLs configured, falling back to the given inputs")
            queue = normalize_inputs(inputs)
        logger.info(
            f"Starting {self.name} scrape for {len(queue)} inputs "
            f"(max: {'unlimited' if max_products is None else max_products}, details: {fetch_details})"
        )

        collected: list[dict] = []
        for value in queue:
            remaining = None if max_products is None else max_products - len(collected)
            if remaining is not None and remaining <= 0:
                logger.info(f"Reached max products limit: {max_products}")
                break

            kind = "URL" if is_url(value) else "category"
            try:
                outcome = await self.paginator.collect_with_outcome(value, remaining)
                items = outcome.items
                if outcome.partial:
                    logger.warning(f"Partial results for {kind} {value}: {len(items)} products")

                if fetch_details and items:
                    items = await self.enricher.enrich(items, self.settings.parallel_requests)

                collected.extend(items)
                logger.info(f"Collected {len(items)} products from {kind} {value}")
            except Exception:
                logger.exception(f"Error scraping {kind} {value}")

        records = map_items(collected, self.name, self.settings.catalog_parts_url)
        if max_products is not None:
            records = records[:max(max_products, 0)]
        logger.info(f"{self.name} scrape complete: {len(records)} records")
        return records

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
