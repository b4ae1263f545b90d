"""Tests for session cookie acquisition."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from parts_scraper.ingest import session_provider
from parts_scraper.ingest.session_provider import (
    SessionProvider,
    format_cookie_header,
    load_cookies,
    save_cookies,
)


def fake_playwright(cookies=None, goto_error=None, landmark_error=None, launch_error=None):
    """Build an async_playwright replacement and return it with its browser mock."""
    page = MagicMock()
    page.goto = AsyncMock(side_effect=goto_error)
    page.wait_for_selector = AsyncMock(side_effect=landmark_error)

    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.cookies = AsyncMock(return_value=cookies or [])

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser, side_effect=launch_error)

    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=playwright)
    manager.__aexit__ = AsyncMock(return_value=False)

    return MagicMock(return_value=manager), browser, page


@pytest.mark.asyncio
async def test_acquire_session_joins_cookies(monkeypatch, test_settings, no_sleep):
    factory, browser, page = fake_playwright(
        cookies=[{"name": "a", "value": "1"}, {"name": "b", "value": "2"}]
    )
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    cookies = await SessionProvider(test_settings).acquire_session("https://example.test")

    assert cookies == "a=1; b=2"
    browser.close.assert_awaited_once()
    page.goto.assert_awaited_once()
    assert page.goto.call_args.kwargs["wait_until"] == "networkidle"
    assert no_sleep.calls == [test_settings.browser_settle_seconds]


@pytest.mark.asyncio
async def test_navigation_timeout_returns_empty_and_closes_browser(monkeypatch, test_settings, no_sleep):
    factory, browser, _ = fake_playwright(goto_error=PlaywrightTimeoutError("Timeout 60000ms exceeded"))
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    cookies = await SessionProvider(test_settings).acquire_session("https://example.test")

    assert cookies == ""
    browser.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_landmark_is_not_fatal(monkeypatch, test_settings, no_sleep):
    factory, browser, _ = fake_playwright(
        cookies=[{"name": "sid", "value": "xyz"}],
        landmark_error=PlaywrightTimeoutError("no header"),
    )
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    cookies = await SessionProvider(test_settings).acquire_session("https://example.test")

    assert cookies == "sid=xyz"
    browser.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_cookies_returns_empty(monkeypatch, test_settings, no_sleep):
    factory, browser, _ = fake_playwright(cookies=[])
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    assert await SessionProvider(test_settings).acquire_session("https://example.test") == ""
    browser.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_launch_failure_returns_empty(monkeypatch, test_settings, no_sleep):
    factory, browser, _ = fake_playwright(launch_error=RuntimeError("no chromium"))
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    assert await SessionProvider(test_settings).acquire_session("https://example.test") == ""
    browser.close.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_prefers_static_cookies(monkeypatch, test_settings):
    factory = MagicMock()
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    provider = SessionProvider(test_settings, fallback_cookies="static=1")

    assert await provider.resolve_session() == "static=1"
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_resolve_uses_browser_when_no_static_cookies(monkeypatch, test_settings, no_sleep):
    settings = test_settings.model_copy(update={"catalog_use_browser_session": True})
    factory, _, _ = fake_playwright(cookies=[{"name": "fresh", "value": "1"}])
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    provider = SessionProvider(settings, fallback_cookies="")

    assert await provider.resolve_session() == "fresh=1"


@pytest.mark.asyncio
async def test_resolve_falls_back_to_empty(monkeypatch, test_settings, no_sleep):
    settings = test_settings.model_copy(update={"catalog_use_browser_session": True})
    factory, _, _ = fake_playwright(cookies=[])
    monkeypatch.setattr(session_provider, "async_playwright", factory)

    assert await SessionProvider(settings, fallback_cookies="").resolve_session() == ""


def test_format_cookie_header_skips_nameless():
    assert format_cookie_header([{"name": "a", "value": "1"}, {"value": "x"}]) == "a=1"


def test_save_and_load_cookies(tmp_path):
    path = save_cookies(tmp_path / "sessions" / "cookies.txt", " a=1; b=2 ")

    assert path.exists()
    assert load_cookies(path) == "a=1; b=2"
    assert load_cookies(tmp_path / "missing.txt") == ""
