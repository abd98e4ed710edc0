"""
Shared pytest fixtures: temporary SQLite store, fake clock, fake fetchers.

No network access is needed; fetchers are replaced by in-memory fakes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pytest

from core.entities import ContentType, Source
from core.errors import FetchError
from ingestion.base import Fetcher, RawItem
from processing.normalizer import Upserter
from services.database import Database
from services.source_registry import SourceRegistry
from workflows.ingestion import IngestionOrchestrator


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeFetcher(Fetcher):
    """Returns canned items per source identifier; listed identifiers fail."""

    def __init__(
        self,
        content_type: ContentType,
        items: Optional[Dict[str, List[RawItem]]] = None,
        failing: Iterable[str] = (),
        delay: float = 0.0,
    ):
        self.content_type = content_type
        self.items = items or {}
        self.failing = set(failing)
        self.delay = delay
        self.calls: List[str] = []

    async def fetch(self, source: Source) -> List[RawItem]:
        self.calls.append(source.identifier)
        if self.delay:
            await asyncio.sleep(self.delay)
        if source.identifier in self.failing:
            raise FetchError(f"upstream unavailable for {source.display_name}")
        return list(self.items.get(source.identifier, []))


def channel_id(n: int) -> str:
    return f"UC{n:022d}"


def make_raw(
    url: str,
    title: str = "Week 5 waiver wire pickups",
    content_type: ContentType = ContentType.ARTICLE,
    **kwargs,
) -> RawItem:
    kwargs.setdefault("published_at", datetime(2025, 9, 9, 15, 0, tzinfo=timezone.utc))
    return RawItem(content_type=content_type, title=title, url=url, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 9, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def database(tmp_path) -> Database:
    db = Database(str(tmp_path / "ingest.db"))
    await db.init_tables()
    return db


@pytest.fixture
def registry(database: Database, clock: FakeClock) -> SourceRegistry:
    return SourceRegistry(database, clock=clock)


@pytest.fixture
def upserter(database: Database, clock: FakeClock) -> Upserter:
    return Upserter(database, clock=clock)


@pytest.fixture
def video_fetcher() -> FakeFetcher:
    return FakeFetcher(ContentType.VIDEO)


@pytest.fixture
def article_fetcher() -> FakeFetcher:
    return FakeFetcher(ContentType.ARTICLE)


@pytest.fixture
def orchestrator(
    registry: SourceRegistry,
    upserter: Upserter,
    video_fetcher: FakeFetcher,
    article_fetcher: FakeFetcher,
    clock: FakeClock,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        registry=registry,
        fetchers={ContentType.VIDEO: video_fetcher, ContentType.ARTICLE: article_fetcher},
        upserter=upserter,
        fetch_timeout=2.0,
        inter_source_delay=0,
        clock=clock,
    )
