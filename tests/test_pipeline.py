"""Tests for the scrape orchestrator."""

import pytest

from parts_scraper.ingest.catalog_client import SearchPage, TransportError
from parts_scraper.ingest.paginator import PaginationResult, PaginationState, Paginator
from parts_scraper.ingest.pipeline import CatalogScraper, CatalogUnavailableError, normalize_inputs


class FakeSessionProvider:
    def __init__(self, cookies="session=abc123"):
        self.cookies = cookies
        self.calls = 0

    async def resolve_session(self):
        self.calls += 1
        return self.cookies


class FakeClient:
    def __init__(self, reachable=True):
        self.reachable = reachable
        self.closed = False

    async def probe(self, category=None):
        return self.reachable

    async def close(self):
        self.closed = True


class FakePaginator:
    """Returns canned items per input; inputs listed in ``failing`` raise."""

    def __init__(self, items_by_input, failing=(), aborted=()):
        self.items_by_input = items_by_input
        self.failing = set(failing)
        self.aborted = set(aborted)
        self.calls: list[tuple[str, object]] = []

    async def collect_with_outcome(self, value, max_items=None):
        self.calls.append((value, max_items))
        if value in self.failing:
            raise TransportError("category exploded", 500)
        items = list(self.items_by_input.get(value, []))
        if max_items is not None:
            items = items[:max_items]
        state = PaginationState.ABORTED if value in self.aborted else PaginationState.DONE
        return PaginationResult(items=items, state=state, pages=1, skips=[0])


class FakeEnricher:
    def __init__(self):
        self.calls = 0

    async def enrich(self, items, concurrency=None):
        self.calls += 1
        return [{**item, "details": {"enriched": True}} for item in items]


def build_scraper(test_settings, paginator, client=None, cookies="session=abc123"):
    return CatalogScraper(
        test_settings,
        client=client or FakeClient(),
        session_provider=FakeSessionProvider(cookies),
        paginator=paginator,
        enricher=FakeEnricher(),
    )


def items(prefix, count):
    return [{"id": f"{prefix}-{i}", "number": f"{prefix}-{i}"} for i in range(count)]


@pytest.mark.asyncio
async def test_failing_input_does_not_affect_others(test_settings):
    paginator = FakePaginator({"A": items("A", 3), "B": items("B", 2)}, failing={"A"})
    scraper = build_scraper(test_settings, paginator)

    records = await scraper.scrape(["A", "B"])

    assert [r.part_number for r in records] == ["B-0", "B-1"]
    assert [value for value, _ in paginator.calls] == ["A", "B"]


@pytest.mark.asyncio
async def test_budget_is_shared_across_inputs(test_settings):
    paginator = FakePaginator({"A": items("A", 3), "B": items("B", 5), "C": items("C", 5)})
    scraper = build_scraper(test_settings, paginator)

    records = await scraper.scrape(["A", "B", "C"], max_products=5)

    assert len(records) == 5
    assert paginator.calls == [("A", 5), ("B", 2)]


@pytest.mark.asyncio
@pytest.mark.parametrize("max_products", [0, 1])
async def test_small_budgets_are_honored(test_settings, max_products):
    paginator = FakePaginator({"A": items("A", 3), "B": items("B", 3)})
    records = await build_scraper(test_settings, paginator).scrape(["A", "B"], max_products=max_products)

    assert len(records) == max_products
    if max_products == 0:
        assert paginator.calls == []
    else:
        assert paginator.calls == [("A", 1)]


@pytest.mark.asyncio
async def test_details_are_optional(test_settings):
    paginator = FakePaginator({"A": items("A", 2)})
    scraper = build_scraper(test_settings, paginator)

    with_details = await scraper.scrape("A")
    without_details = await scraper.scrape("A", fetch_details=False)

    assert "details" in with_details[0].other_params
    assert "details" not in without_details[0].other_params
    assert scraper.enricher.calls == 1


@pytest.mark.asyncio
async def test_partial_results_are_kept(test_settings):
    paginator = FakePaginator({"A": items("A", 2)}, aborted={"A"})
    records = await build_scraper(test_settings, paginator).scrape(["A"])

    assert len(records) == 2


@pytest.mark.asyncio
async def test_preset_urls_replace_inputs(test_settings):
    url = test_settings.category_urls[0]
    paginator = FakePaginator({url: items("U", 2)})
    records = await build_scraper(test_settings, paginator).scrape(["ignored"], use_preset_urls=True)

    assert [value for value, _ in paginator.calls] == [url]
    assert len(records) == 2


@pytest.mark.asyncio
async def test_preset_urls_fall_back_to_inputs_when_none_configured(test_settings):
    settings = test_settings.model_copy(update={"category_urls": []})
    paginator = FakePaginator({"A": items("A", 2)})
    records = await build_scraper(settings, paginator).scrape(["A"], use_preset_urls=True)

    assert [value for value, _ in paginator.calls] == ["A"]
    assert len(records) == 2


@pytest.mark.asyncio
async def test_initialize_runs_once(test_settings):
    paginator = FakePaginator({"A": items("A", 1)})
    scraper = build_scraper(test_settings, paginator)

    await scraper.scrape("A")
    await scraper.scrape("A")

    assert scraper.session_provider.calls == 1


@pytest.mark.asyncio
async def test_unavailable_without_cookies_and_probe(test_settings):
    paginator = FakePaginator({})
    scraper = build_scraper(test_settings, paginator, client=FakeClient(reachable=False), cookies="")

    with pytest.raises(CatalogUnavailableError):
        await scraper.scrape("A")


@pytest.mark.asyncio
async def test_failed_probe_with_cookies_continues(test_settings):
    paginator = FakePaginator({"A": items("A", 1)})
    scraper = build_scraper(test_settings, paginator, client=FakeClient(reachable=False))

    records = await scraper.scrape("A")

    assert len(records) == 1


@pytest.mark.asyncio
async def test_close_closes_client(test_settings):
    scraper = build_scraper(test_settings, FakePaginator({}))
    await scraper.close()
    assert scraper.client.closed


def test_normalize_inputs():
    assert normalize_inputs("A") == ["A"]
    assert normalize_inputs([" A ", "", "B"]) == ["A", "B"]
    assert normalize_inputs(None) == []


class SplitCatalog:
    """Serves one category and fails every request for the other."""

    def __init__(self, good, bad):
        self.good = good
        self.bad = bad
        self.calls: list[str] = []

    async def fetch_page(self, category, skip=0, take=10):
        self.calls.append(category)
        if category == self.bad:
            raise TransportError("upstream down", 503)
        return SearchPage(items=items("G", 3)[skip:skip + take], total_count=3)

    async def fetch_url_page(self, url, skip=0, take=50):
        raise AssertionError("no URL inputs in this test")

    async def fetch_counts(self, category):
        return 0


@pytest.mark.asyncio
async def test_aborted_category_does_not_stop_the_next(test_settings, no_sleep):
    catalog = SplitCatalog(good="Engine|Alternator", bad="Engine|Starter")
    scraper = build_scraper(test_settings, Paginator(catalog, test_settings))

    records = await scraper.scrape(["Engine|Starter", "Engine|Alternator"], fetch_details=False)

    assert [r.part_number for r in records] == ["G-0", "G-1", "G-2"]
    # Every retry of every failed page hits the bad category before the good one is read
    bad_calls = test_settings.retry_attempts * test_settings.failure_ceiling
    assert catalog.calls.count("Engine|Starter") == bad_calls
    assert catalog.calls[bad_calls:] == ["Engine|Alternator"]
