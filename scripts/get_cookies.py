#!/usr/bin/env python3
"""
Obtain catalog session cookies with a headless browser and save them to a file.

Usage:
    python scripts/get_cookies.py [--url URL] [--output PATH]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from parts_scraper.config import settings
from parts_scraper.ingest.session_provider import SessionProvider, save_cookies
from parts_scraper.logging_config import setup_logging


async def get_cookies(url: str, output: str) -> int:
    provider = SessionProvider(settings, fallback_cookies="")
    cookies = await provider.acquire_session(url)
    if not cookies:
        print("Failed to obtain cookies")
        return 1

    path = save_cookies(output, cookies)
    print(f"Saved cookies ({len(cookies)} chars) to {path}")
    print("Use them with: python scripts/run_scraper.py --cookies-file", path)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Extract catalog cookies with headless Chromium")
    parser.add_argument("--url", default=settings.catalog_base_url, help="Page to visit")
    parser.add_argument(
        "--output",
        default=str(Path(settings.session_storage_path) / f"{settings.catalog_source}_cookies.txt"),
        help="File to write the cookie header to",
    )
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(get_cookies(args.url, args.output)))
