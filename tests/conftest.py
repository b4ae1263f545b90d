"""Shared fixtures."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from parts_scraper.config import Settings
from parts_scraper.db.models import Base
from parts_scraper.ingest import waits


class DelayRecorder:
    """Stands in for waits.delay and records every requested pause."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def no_sleep(monkeypatch) -> DelayRecorder:
    recorder = DelayRecorder()
    monkeypatch.setattr(waits, "delay", recorder)
    return recorder


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        catalog_cookies="session=abc123",
        catalog_use_browser_session=False,
        catalog_security_headers={"X-Sec-Token": "s3cret-token"},
        batch_size=50,
        url_page_size=50,
        retry_attempts=3,
        failure_ceiling=3,
        probe_category_counts=False,
        parallel_requests=2,
        category_urls=[
            "https://www.lkqonline.com/api/catalog/0/product?catalogId=0&category=A&skip=0&take=50",
        ],
    )


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
