#!/usr/bin/env python3
"""
Run the LKQ scraper from the command line and store the results.

Examples:
    python scripts/run_scraper.py "Engine Compartment|Alternator" --max-products 50
    python scripts/run_scraper.py --preset-urls --cookies-file data/sessions/lkq_cookies.txt
    python scripts/run_scraper.py "Engine Compartment|Battery" --no-store --output parts.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from uuid import uuid4

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from parts_scraper.config import settings
from parts_scraper.db.models import Base
from parts_scraper.db.part_store import PartStore
from parts_scraper.db.session import AsyncSessionLocal, engine
from parts_scraper.ingest.pipeline import CatalogScraper
from parts_scraper.ingest.session_provider import load_cookies
from parts_scraper.logging_config import setup_logging
from parts_scraper.worker.tasks import TaskRunner

logger = logging.getLogger("run_scraper")

DEFAULT_QUERY = "Engine Compartment|Alternator"


def build_settings(args: argparse.Namespace):
    """Settings copy with command line overrides applied."""
    overrides = {}
    if args.batch_size:
        overrides["batch_size"] = args.batch_size
    if args.cookies_file:
        cookies = load_cookies(args.cookies_file)
        if cookies:
            logger.info(f"Loaded cookies from {args.cookies_file}")
            overrides["catalog_cookies"] = cookies
    return settings.model_copy(update=overrides)


async def scrape_only(args: argparse.Namespace) -> int:
    run_settings = build_settings(args)
    scraper = CatalogScraper(run_settings)
    try:
        records = await scraper.scrape(
            args.query or [DEFAULT_QUERY],
            max_products=args.max_products,
            fetch_details=not args.no_details,
            use_preset_urls=args.preset_urls,
        )
    finally:
        await scraper.close()

    payload = [record.to_dict() for record in records]
    if args.output:
        Path(args.output).write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        print(f"Wrote {len(payload)} records to {args.output}")
    else:
        for record in payload[:5]:
            print(json.dumps(record, indent=2, default=str))
        print(f"Scraped {len(payload)} records")
    return 0


async def scrape_and_store(args: argparse.Namespace) -> int:
    run_settings = build_settings(args)
    query = args.query or [DEFAULT_QUERY]
    job_id = uuid4().hex

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = PartStore(AsyncSessionLocal)
    await store.create_job(
        job_id,
        run_settings.catalog_source,
        "preset category URLs" if args.preset_urls else ", ".join(query),
        {
            "batchSize": run_settings.batch_size,
            "maxProducts": args.max_products,
            "fetchDetails": not args.no_details,
            "usePresetUrls": args.preset_urls,
        },
    )
    print(f"Created scraper job: {job_id}")

    runner = TaskRunner(store=store, settings=run_settings)
    await runner.run_scrape_job(
        job_id,
        query,
        max_products=args.max_products,
        fetch_details=not args.no_details,
        use_preset_urls=args.preset_urls,
    )

    job = await store.get_job(job_id)
    await engine.dispose()
    if not job:
        print("Job record missing after run")
        return 1

    print(f"Job {job.job_id}: {job.status}")
    print(f"  Items stored: {job.items_scraped}")
    if job.duration is not None:
        print(f"  Duration: {job.duration:.2f}s")
    if job.error_message:
        print(f"  Error: {job.error_message}")
    return 0 if job.status == "completed" else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the LKQ parts scraper")
    parser.add_argument("query", nargs="*", help=f"Category paths or search URLs (default: {DEFAULT_QUERY})")
    parser.add_argument("--batch-size", type=int, help="Items per category page")
    parser.add_argument("--max-products", type=int, default=10000, help="Maximum number of products")
    parser.add_argument("--cookies-file", help="File containing a Cookie header value")
    parser.add_argument("--preset-urls", action="store_true", help="Use the configured category URLs")
    parser.add_argument("--no-details", action="store_true", help="Skip detail enrichment")
    parser.add_argument("--no-store", action="store_true", help="Do not write to the database")
    parser.add_argument("--output", help="Write records as JSON to this file (implies --no-store)")
    args = parser.parse_args()

    setup_logging()

    if args.no_store or args.output:
        return asyncio.run(scrape_only(args))
    return asyncio.run(scrape_and_store(args))


if __name__ == "__main__":
    sys.exit(main())
