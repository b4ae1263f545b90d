"""HTTP client for the upstream parts catalog API with response validation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import httpx

from parts_scraper import metrics
from parts_scraper.config import Settings, settings as default_settings
from parts_scraper.ingest import waits

logger = logging.getLogger(__name__)

ACTION_SEARCH = "GetSearchResults"
ACTION_DETAILS = "GetProductDetails"

# Leading bytes that mark an HTML document served in place of JSON
HTML_MARKERS = ("<!doctype html", "<html")


class TransportError(RuntimeError):
    """Raised when a catalog call fails (5xx, timeout, connection, bad body)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body_excerpt: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body_excerpt = body_excerpt

    def __str__(self) -> str:
        text = super().__str__()
        if self.status_code is not None:
            text += f" - Status: {self.status_code}"
        if self.body_excerpt:
            text += f" - Response: {self.body_excerpt}..."
        return text


class AuthExpiredError(TransportError):
    """Raised when the response suggests the session cookies or tokens expired."""
    pass


@dataclass
class SearchPage:
    """One page of search results."""

    items: list[dict] = field(default_factory=list)
    total_count: Optional[int] = None


def build_headers(settings: Settings, cookies: str = "") -> dict[str, str]:
    """Fixed browser-like header profile the catalog API expects."""
    headers = {
        "Accept": "application/json, text/plain, */*",
        "Accept-Encoding": "gzip, deflate, br",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Expires": "Sat, 01 Jan 2000 00:00:00 GMT",
        "If-Modified-Since": "0",
        "Pragma": "no-cache",
        "Referer": settings.catalog_referer,
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
        "User-Agent": settings.catalog_user_agent,
        "sec-ch-ua": settings.catalog_sec_ch_ua,
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": settings.catalog_sec_ch_ua_platform,
    }
    headers.update(settings.catalog_security_headers)
    if cookies:
        headers["Cookie"] = cookies
    return headers


def redact_headers(headers: dict[str, str], secret_names: set[str]) -> dict[str, str]:
    """Copy of headers with cookies and security tokens replaced by their length."""
    redacted = {}
    for name, value in headers.items():
        if name.lower() == "cookie":
            redacted[name] = f"[COOKIE HIDDEN - LENGTH: {len(value)}]"
        elif name in secret_names:
            redacted[name] = f"[TOKEN HIDDEN - LENGTH: {len(value)}]"
        else:
            redacted[name] = value
    return redacted


def looks_like_html(content_type: str, body: str) -> bool:
    """True when the content type or the first bytes of the body are HTML."""
    if "text/html" in content_type.lower():
        return True
    head = body.lstrip()[:512].lower()
    return head.startswith(HTML_MARKERS)


def split_search_url(url: str):
    """Split a literal search URL, rejecting anything that is not absolute."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {url}")
    return parts


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CatalogClient:
    """
    Issues single calls against the catalog API.

    Every response with a status below 500 is accepted at the transport level
    and then validated: HTML bodies and empty 400 responses raise
    AuthExpiredError, undecodable bodies raise TransportError.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        cookies: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Application settings
            cookies: Cookie header value for every request
            client: Optional pre-built httpx client (tests pass a MockTransport one)
        """
        self.settings = settings
        self.cookies = cookies
        self.headers = build_headers(settings, cookies)
        self._secret_names = set(settings.catalog_security_headers)
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            timeout = self.settings.scraper_timeout_seconds
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=timeout, write=10.0, pool=10.0),
                follow_redirects=True,
                max_redirects=5,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def request(self, params: dict[str, Any], url: Optional[str] = None) -> Any:
        """
        Perform one GET against the catalog API.

        Args:
            params: Query parameters; ``action`` and ``catalogId`` are defaulted
            url: Endpoint URL (defaults to settings.catalog_api_url)

        Returns:
            Decoded JSON body, or None for an empty successful body

        Raises:
            AuthExpiredError: HTML body or empty 400 response
            TransportError: 5xx, timeout, connection failure or undecodable body
        """
        params = dict(params)
        params.setdefault("action", ACTION_SEARCH)
        params.setdefault("catalogId", 0)
        action = str(params["action"])
        endpoint = url or self.settings.catalog_api_url
        excerpt_len = self.settings.max_error_body_chars

        logger.info(f"Making API request to: {endpoint} ({action})")
        logger.debug(f"Request params: {params}")
        logger.debug(f"Request headers: {redact_headers(self.headers, self._secret_names)}")

        client = await self._get_client()
        started = time.perf_counter()
        try:
            resp = await client.get(endpoint, params=params, headers=self.headers)
        except httpx.TimeoutException as e:
            metrics.catalog_request_errors_total.labels(action=action, error_type="timeout").inc()
            raise TransportError(f"API request timed out: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            metrics.catalog_request_errors_total.labels(action=action, error_type="transport").inc()
            raise TransportError(f"API request failed: {type(e).__name__}: {e}") from e
        finally:
            metrics.catalog_request_duration_seconds.labels(action=action).observe(
                time.perf_counter() - started
            )

        sc = resp.status_code
        body = resp.text or ""
        excerpt = body[:excerpt_len]
        metrics.catalog_requests_total.labels(action=action, status=str(sc)).inc()
        logger.debug(f"Response status: {sc}")
        if "set-cookie" in resp.headers:
            logger.debug("Received new cookies from response")

        if sc >= 500:
            metrics.catalog_request_errors_total.labels(action=action, error_type="server").inc()
            logger.error(f"Failed URL: {resp.request.url}")
            raise TransportError("API request failed", sc, excerpt)

        if looks_like_html(resp.headers.get("content-type", ""), body):
            metrics.catalog_request_errors_total.labels(action=action, error_type="html").inc()
            logger.error(f"Received HTML response instead of JSON. Response preview: {excerpt}...")
            raise AuthExpiredError(
                "Received HTML response instead of JSON. Authentication may have failed.",
                sc,
                excerpt,
            )

        if sc == 400 and not body.strip():
            metrics.catalog_request_errors_total.labels(action=action, error_type="auth").inc()
            logger.error(
                "Received 400 Bad Request with empty response body. "
                "This may indicate invalid authentication tokens or expired cookies."
            )
            raise AuthExpiredError("400 Bad Request with empty body", sc)

        if not body.strip():
            return None

        try:
            return resp.json()
        except ValueError as e:
            metrics.catalog_request_errors_total.labels(action=action, error_type="decode").inc()
            raise TransportError("Response is not valid JSON", sc, excerpt) from e

    def _search_page(self, data: Any) -> SearchPage:
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            raise TransportError(f"Invalid response format: {str(data)[:100]}...")
        return SearchPage(items=data["data"], total_count=_to_int(data.get("count")) or None)

    async def _human_pause(self) -> None:
        await waits.random_wait(
            self.settings.request_jitter_min_seconds,
            self.settings.request_jitter_max_seconds,
        )

    async def fetch_page(self, category: str, skip: int = 0, take: int = 10) -> SearchPage:
        """Fetch one page of search results for a category path."""
        await self._human_pause()
        data = await self.request({
            "catalogId": 0,
            "category": category,
            "sort": "closestFirst",
            "skip": skip,
            "take": take,
            "action": ACTION_SEARCH,
        })
        return self._search_page(data)

    async def fetch_url_page(self, url: str, skip: int = 0, take: int = 50) -> SearchPage:
        """Fetch one page from a literal search URL with skip/take substituted."""
        parts = split_search_url(url)

        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        params["skip"] = str(skip)
        params["take"] = str(take)
        endpoint = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

        await self._human_pause()
        data = await self.request(params, url=endpoint)
        return self._search_page(data)

    async def fetch_detail(self, item_id: Any) -> dict:
        """Fetch the detail payload for one item ({} when the API returns nothing usable)."""
        await self._human_pause()
        data = await self.request({"productId": item_id, "action": ACTION_DETAILS})
        return data if isinstance(data, dict) else {}

    async def fetch_counts(self, category: str) -> int:
        """Total number of items the catalog reports for a category."""
        data = await self.request({
            "catalogId": 0,
            "category": category,
            "sort": "closestFirst",
            "skip": 0,
            "take": 1,
            "action": ACTION_SEARCH,
        })
        if not isinstance(data, dict):
            return 0
        return _to_int(data.get("count")) or 0

    async def probe(self, category: Optional[str] = None) -> bool:
        """Connectivity check: True when a counts call against the probe category succeeds."""
        category = category or self.settings.catalog_probe_category
        try:
            total = await self.fetch_counts(category)
        except TransportError as e:
            logger.warning(f"API connectivity probe failed: {e}")
            return False
        logger.info(f"API connectivity probe successful - found {total} total items")
        return True
