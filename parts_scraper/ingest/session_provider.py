"""Cookie/session acquisition for the catalog site via a headless browser."""

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeoutError

from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.ingest import waits

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
]

VIEWPORT = {"width": 1920, "height": 1080}

BROWSER_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8",
}


def format_cookie_header(cookies: list[dict]) -> str:
    """Join browser cookies into a single ``Cookie`` header value."""
    return "; ".join(
        f"{cookie['name']}={cookie['value']}"
        for cookie in cookies
        if cookie.get("name")
    )


def save_cookies(path: str | Path, cookies: str) -> Path:
    """Write a cookie header string to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(cookies.strip() + "\n", encoding="utf-8")
    return path


def load_cookies(path: str | Path) -> str:
    """Read a cookie header string from disk ("" when the file is missing)."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Cookie file not found: {path}")
        return ""
    return path.read_text(encoding="utf-8").strip()


class SessionProvider:
    """Obtains a cookie string for the catalog site, falling back to a static one."""

    def __init__(self, settings: Settings = default_settings, fallback_cookies: Optional[str] = None):
        """
        Args:
            settings: Application settings
            fallback_cookies: Static cookie string; defaults to settings.catalog_cookies
        """
        self.settings = settings
        self.fallback_cookies = (
            fallback_cookies if fallback_cookies is not None else settings.catalog_cookies
        ) or ""

    async def acquire_session(self, base_url: Optional[str] = None) -> str:
        """
        Visit the site in headless Chromium and collect its cookies.

        Never raises: any failure (launch, navigation timeout, no cookies)
        returns an empty string. The browser is closed on every path.

        Args:
            base_url: Page to visit (defaults to settings.catalog_base_url)

        Returns:
            Cookie header string, or "" on failure
        """
        url = base_url or self.settings.catalog_base_url
        logger.info(f"Extracting cookies from {url} using headless browser")

        try:
            async with async_playwright() as playwright:
                browser = None
                try:
                    browser = await playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
                    context = await browser.new_context(
                        viewport=VIEWPORT,
                        user_agent=self.settings.browser_user_agent,
                        extra_http_headers=BROWSER_HEADERS,
                    )
                    page = await context.new_page()

                    timeout_ms = self.settings.browser_navigation_timeout_ms
                    logger.info(f"Navigating to {url} with {timeout_ms / 1000:.0f}s timeout")
                    await page.goto(url, wait_until="networkidle", timeout=timeout_ms)

                    # Let late scripts set their cookies
                    await waits.delay(self.settings.browser_settle_seconds)

                    try:
                        await page.wait_for_selector(
                            self.settings.browser_landmark_selector,
                            timeout=self.settings.browser_landmark_timeout_ms,
                        )
                        logger.info("Header/navigation element found")
                    except PlaywrightTimeoutError as e:
                        logger.warning(f"Couldn't find navigation element: {e}")

                    cookies = await context.cookies()
                    logger.info(f"Found {len(cookies)} cookies from {url}")
                    if cookies:
                        logger.info("Cookie names: " + ", ".join(c.get("name", "") for c in cookies))

                    cookie_header = format_cookie_header(cookies)
                    if cookie_header:
                        logger.info(f"Extracted cookies with length: {len(cookie_header)}")
                    else:
                        logger.warning("No cookies were extracted from the page")
                    return cookie_header
                finally:
                    if browser is not None:
                        await browser.close()
                        logger.info("Browser closed")
        except Exception as e:
            logger.error(f"Error extracting cookies with headless browser: {e}")
            return ""

    async def resolve_session(self) -> str:
        """
        Return the cookie string the catalog client should use.

        A configured static cookie string wins; otherwise a browser session is
        attempted and the (possibly empty) static fallback is used on failure.
        """
        if self.fallback_cookies:
            logger.info(f"Using configured cookies (length: {len(self.fallback_cookies)})")
            return self.fallback_cookies

        if not self.settings.catalog_use_browser_session:
            logger.warning("No cookies configured and browser session disabled")
            return ""

        logger.info("No cookies configured, attempting to get cookies from website")
        cookies = await self.acquire_session(self.settings.catalog_base_url)
        if cookies:
            logger.info("Obtained cookies from website")
            return cookies

        logger.warning("Failed to obtain cookies, scraping may fail")
        return self.fallback_cookies
