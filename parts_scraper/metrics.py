"""Prometheus metrics for the parts scraper."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("parts_scraper", "Parts scraper application info")
app_info.info({"version": "0.1.0", "name": "parts-scraper"})

# Upstream catalog API
catalog_requests_total = Counter(
    "catalog_requests_total",
    "Total number of catalog API requests",
    ["action", "status"],
)

catalog_request_errors_total = Counter(
    "catalog_request_errors_total",
    "Total number of failed catalog API requests",
    ["action", "error_type"],
)

catalog_request_duration_seconds = Histogram(
    "catalog_request_duration_seconds",
    "Time spent waiting on the catalog API",
    ["action"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Pagination
pages_fetched_total = Counter(
    "pages_fetched_total",
    "Total number of search pages fetched",
    ["source"],
)

pagination_aborts_total = Counter(
    "pagination_aborts_total",
    "Pagination runs stopped by the consecutive failure ceiling",
    ["source"],
)

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total number of retried operations",
    ["outcome"],
)

# Enrichment and mapping
detail_enrichment_total = Counter(
    "detail_enrichment_total",
    "Detail enrichment outcomes per item",
    ["status"],
)

records_mapped_total = Counter(
    "records_mapped_total",
    "Items mapped to canonical records",
    ["status"],
)

# Jobs
scrape_jobs_total = Counter(
    "scrape_jobs_total",
    "Total number of scrape jobs",
    ["source", "status"],
)

scrape_duration_seconds = Histogram(
    "scrape_duration_seconds",
    "Wall time of a complete scrape job",
    ["source"],
    buckets=[10, 30, 60, 120, 300, 600, 1800, 3600, 7200],
)

parts_stored_total = Counter(
    "parts_stored_total",
    "Parts written to the store",
    ["source", "result"],
)
