"""Unit tests for normalization and the URL-keyed upsert."""

from __future__ import annotations

import json

import aiosqlite
import pytest

from core.entities import ContentType, UpsertStatus
from core.errors import ItemProcessingError, PersistenceError
from core.vocabulary import GENERIC_FALLBACK_IMAGE
from processing.normalizer import to_canonical

from conftest import make_raw

URL = "https://example.com/waivers/week-5"


class TestToCanonical:
    def test_maps_fields(self, clock):
        raw = make_raw(
            URL,
            title="Patrick Mahomes and the Chiefs: QB start/sit for PPR",
            description="Should you start Mahomes this week?",
            image_url="https://example.com/hero.jpg",
            category="Start/Sit",
            tags=["QB", "PPR", "qb"],
            payload={"id": "abc", "views": 10},
        )

        item = to_canonical(raw, "Test Feed", clock())

        assert item.canonical_url == URL
        assert item.image_url == "https://example.com/hero.jpg"
        assert item.category == "Start/Sit"
        assert item.tags == ["QB", "PPR"]
        assert "patrick mahomes" in item.derived_keywords
        assert "chiefs" in item.derived_keywords
        assert json.loads(item.raw_source_payload) == {"id": "abc", "views": 10}
        assert item.fetched_at == clock()
        assert item.active is True

    def test_unknown_source_gets_generic_image(self, clock):
        item = to_canonical(make_raw(URL), "Some Random Blog", clock())
        assert item.image_url == GENERIC_FALLBACK_IMAGE

    def test_known_source_gets_its_placeholder(self, clock):
        item = to_canonical(make_raw(URL, image_url=""), "CBS Sports NFL", clock())
        assert item.image_url == "/fallback-images/cbs-logo.png"

    def test_missing_category_is_classified(self, clock):
        raw = make_raw(URL, title="Dynasty rookie rankings", content_type=ContentType.VIDEO)
        assert to_canonical(raw, "Channel", clock()).category == "Dynasty"

    @pytest.mark.parametrize("title,url", [("", URL), ("Title", ""), ("   ", URL)])
    def test_rejects_missing_title_or_url(self, clock, title, url):
        with pytest.raises(ItemProcessingError):
            to_canonical(make_raw(url, title=title), "Feed", clock())


class TestUpsert:
    async def test_idempotent_by_url(self, upserter, database):
        raw = make_raw(URL)

        assert await upserter.upsert(raw, "Feed") is UpsertStatus.NEW
        assert await upserter.upsert(raw, "Feed") is UpsertStatus.UPDATED
        assert await database.count_resources() == 1

    async def test_update_overwrites_and_bumps_fetched_at(self, upserter, database, clock):
        await upserter.upsert(make_raw(URL, title="Old title"), "Feed")
        first = await database.get_resource_by_url(URL)

        clock.advance(hours=6)
        await upserter.upsert(make_raw(URL, title="New title", tags=["WR"]), "Feed")
        second = await database.get_resource_by_url(URL)

        assert second["title"] == "New title"
        assert json.loads(second["tags"]) == ["WR"]
        assert second["fetched_at"] > first["fetched_at"]
        assert second["created_at"] == first["created_at"]

    async def test_failed_update_is_skipped(self, upserter, database, monkeypatch):
        await upserter.upsert(make_raw(URL), "Feed")

        async def broken_update(item):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(database, "update_resource", broken_update)
        assert await upserter.upsert(make_raw(URL), "Feed") is UpsertStatus.SKIPPED

    async def test_update_writing_nothing_is_skipped(self, upserter, database, monkeypatch):
        await upserter.upsert(make_raw(URL), "Feed")

        async def no_rows(item):
            return 0

        monkeypatch.setattr(database, "update_resource", no_rows)
        assert await upserter.upsert(make_raw(URL), "Feed") is UpsertStatus.SKIPPED

    async def test_insert_race_falls_back_to_update(self, upserter, database, monkeypatch):
        await upserter.upsert(make_raw(URL, title="First sighting"), "Feed")

        async def not_found(url):
            return None

        monkeypatch.setattr(database, "get_resource_by_url", not_found)
        status = await upserter.upsert(make_raw(URL, title="Second sighting"), "Other feed")

        assert status is UpsertStatus.UPDATED
        assert await database.count_resources() == 1
        monkeypatch.undo()
        row = await database.get_resource_by_url(URL)
        assert row["title"] == "Second sighting"

    async def test_failed_insert_raises(self, upserter, database, monkeypatch):
        async def broken_insert(item):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(database, "insert_resource", broken_insert)
        with pytest.raises(PersistenceError):
            await upserter.upsert(make_raw(URL), "Feed")
