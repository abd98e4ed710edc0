"""Unit tests for the ingestion orchestrator."""

from __future__ import annotations

import asyncio

from core.entities import ContentType, UpsertStatus
from core.errors import PersistenceError
from workflows.ingestion import IngestionOrchestrator

from conftest import FakeFetcher, channel_id, make_raw


async def add_feed(registry, n: int, name: str, **overrides):
    spec = {
        "content_type": ContentType.ARTICLE,
        "identifier": f"https://feed{n}.example.com/rss",
        "display_name": name,
    }
    spec.update(overrides)
    return await registry.create(spec)


async def add_channel(registry, n: int, name: str, **overrides):
    spec = {"content_type": ContentType.VIDEO, "identifier": channel_id(n), "display_name": name}
    spec.update(overrides)
    return await registry.create(spec)


class TestRunAll:
    async def test_isolates_failing_source(self, orchestrator, registry, article_fetcher):
        first = await add_feed(registry, 1, "Alpha")
        broken = await add_feed(registry, 2, "Bravo")
        last = await add_feed(registry, 3, "Charlie")
        article_fetcher.items = {
            first.identifier: [make_raw("https://example.com/1"), make_raw("https://example.com/2")],
            last.identifier: [make_raw("https://example.com/3")],
        }
        article_fetcher.failing = {broken.identifier}

        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert len(article_fetcher.calls) == 3
        assert outcome.created == 3
        assert outcome.items_seen == 3
        assert len(outcome.errors) == 1
        assert "Bravo" in outcome.errors[0]
        assert outcome.success is False
        assert [s.success for s in outcome.sources] == [True, False, True]
        assert outcome.sources[0].items_processed == 2

        assert (await registry.get_by_id(broken.id)).consecutive_error_count == 1
        assert (await registry.get_by_id(first.id)).last_success_at is not None

    async def test_scenario_video_and_article(self, orchestrator, registry, upserter,
                                              video_fetcher, article_fetcher):
        a = await add_channel(registry, 1, "Source A")
        b = await add_feed(registry, 2, "Source B")
        seen_before = make_raw("https://www.youtube.com/watch?v=old", content_type=ContentType.VIDEO)
        brand_new = make_raw("https://www.youtube.com/watch?v=new", content_type=ContentType.VIDEO)
        await upserter.upsert(seen_before, "Source A")
        video_fetcher.items = {a.identifier: [seen_before, brand_new]}
        article_fetcher.failing = {b.identifier}

        video = await orchestrator.run_all(ContentType.VIDEO)
        article = await orchestrator.run_all(ContentType.ARTICLE)

        assert (video.created, video.updated, video.skipped) == (1, 1, 0)
        assert video.errors == []
        assert video.success is True
        assert len(article.errors) == 1
        assert "Source B" in article.errors[0]
        assert (await registry.get_by_id(b.id)).consecutive_error_count == 1
        assert (await registry.get_by_id(a.id)).consecutive_error_count == 0

    async def test_no_sources(self, orchestrator):
        outcome = await orchestrator.run_all(ContentType.VIDEO)
        assert outcome.sources == []
        assert outcome.success is True

    async def test_disabled_sources_are_not_fetched(self, orchestrator, registry, article_fetcher):
        await add_feed(registry, 1, "Off", enabled=False)
        await orchestrator.run_all(ContentType.ARTICLE)
        assert article_fetcher.calls == []

    async def test_timeout_is_a_source_failure(self, registry, upserter, clock):
        source = await add_feed(registry, 1, "Slowpoke")
        slow = FakeFetcher(ContentType.ARTICLE, items={source.identifier: []}, delay=5)
        orchestrator = IngestionOrchestrator(
            registry=registry,
            fetchers={ContentType.ARTICLE: slow},
            upserter=upserter,
            fetch_timeout=0.05,
            inter_source_delay=0,
            clock=clock,
        )

        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert "timed out" in outcome.errors[0]
        stored = await registry.get_by_id(source.id)
        assert stored.consecutive_error_count == 1
        assert "timed out" in stored.last_error

    async def test_item_failure_is_skipped(self, orchestrator, registry, article_fetcher):
        source = await add_feed(registry, 1, "Mixed")
        article_fetcher.items = {
            source.identifier: [make_raw("https://example.com/ok"), make_raw("", title="No link")],
        }

        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert outcome.created == 1
        assert outcome.skipped == 1
        assert len(outcome.errors) == 1
        assert outcome.sources[0].success is True
        assert outcome.sources[0].items_processed == 1

    async def test_registry_failure_does_not_crash(self, orchestrator, registry, article_fetcher, monkeypatch):
        source = await add_feed(registry, 1, "Alpha")
        article_fetcher.items = {source.identifier: [make_raw("https://example.com/1")]}

        async def broken(*args, **kwargs):
            raise PersistenceError("registry unavailable")

        monkeypatch.setattr(registry, "record_run_outcome", broken)
        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert outcome.created == 1
        assert outcome.success is True

    async def test_missing_fetcher(self, registry, upserter, clock):
        await add_channel(registry, 1, "No fetcher")
        orchestrator = IngestionOrchestrator(registry, {}, upserter, inter_source_delay=0, clock=clock)

        outcome = await orchestrator.run_all(ContentType.VIDEO)

        assert "No fetcher configured" in outcome.errors[0]

    async def test_bounded_concurrency(self, registry, upserter, clock):
        for n in range(4):
            await add_feed(registry, n, f"Feed {n}")
        fetcher = FakeFetcher(ContentType.ARTICLE, delay=0.01)
        orchestrator = IngestionOrchestrator(
            registry, {ContentType.ARTICLE: fetcher}, upserter,
            inter_source_delay=0, concurrency=2, clock=clock,
        )

        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert len(outcome.sources) == 4
        assert [s.source_name for s in outcome.sources] == [f"Feed {n}" for n in range(4)]


class TestRunSpecific:
    async def test_validates_each_id(self, orchestrator, registry, article_fetcher):
        good = await add_feed(registry, 1, "Good")
        disabled = await add_feed(registry, 2, "Disabled", enabled=False)
        video = await add_channel(registry, 3, "Video")

        outcome = await orchestrator.run_specific(
            ContentType.ARTICLE, [good.id, disabled.id, video.id, 999]
        )

        assert article_fetcher.calls == [good.identifier]
        assert len(outcome.errors) == 3
        assert any("disabled" in e for e in outcome.errors)
        assert any("not of type article" in e for e in outcome.errors)
        assert any("999 not found" in e for e in outcome.errors)
        assert outcome.success is False

    async def test_run_stale_only_runs_sources_needing_attention(
        self, orchestrator, registry, article_fetcher, clock
    ):
        fresh = await add_feed(registry, 1, "Fresh")
        stale = await add_feed(registry, 2, "Stale")
        await registry.record_run_outcome(stale.id, True, 1)
        clock.advance(hours=30)
        await registry.record_run_outcome(fresh.id, True, 1)

        outcome = await orchestrator.run_stale(ContentType.ARTICLE, 24)

        assert article_fetcher.calls == [stale.identifier]
        assert outcome.success is True
        assert (await registry.get_by_id(stale.id)).last_success_at == clock()

    async def test_upsert_status_counts(self, orchestrator, registry, article_fetcher, upserter):
        source = await add_feed(registry, 1, "Counts")
        raw = make_raw("https://example.com/again")
        assert await upserter.upsert(raw, "Counts") is UpsertStatus.NEW
        article_fetcher.items = {source.identifier: [raw]}

        outcome = await orchestrator.run_specific(ContentType.ARTICLE, [source.id])

        assert (outcome.created, outcome.updated) == (0, 1)

    async def test_shared_url_across_concurrent_sources(self, registry, upserter, database, clock, monkeypatch):
        first = await add_feed(registry, 1, "A")
        second = await add_feed(registry, 2, "B")
        shared = make_raw("https://example.com/syndicated")
        fetcher = FakeFetcher(ContentType.ARTICLE, items={
            first.identifier: [shared],
            second.identifier: [shared],
        })
        lookup = database.get_resource_by_url

        async def slow_lookup(url):
            row = await lookup(url)
            await asyncio.sleep(0.01)
            return row

        monkeypatch.setattr(database, "get_resource_by_url", slow_lookup)
        orchestrator = IngestionOrchestrator(
            registry, {ContentType.ARTICLE: fetcher}, upserter,
            inter_source_delay=0, concurrency=2, clock=clock,
        )

        outcome = await orchestrator.run_all(ContentType.ARTICLE)

        assert outcome.errors == []
        assert outcome.success is True
        assert (outcome.created, outcome.updated) == (1, 1)
        assert await database.count_resources() == 1
