"""
Ingestion orchestration shared by every content type.
The per-type difference lives entirely in the Fetcher.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from core.entities import ContentType, RunOutcome, Source, SourceOutcome, UpsertStatus
from core.errors import FetchError
from ingestion.base import Fetcher
from processing.normalizer import Upserter
from services.source_registry import SourceRegistry

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """
    Runs enabled sources of one content type through fetch -> upsert,
    isolating failures per item and per source.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        fetchers: Dict[ContentType, Fetcher],
        upserter: Upserter,
        fetch_timeout: float = 8.0,
        inter_source_delay: float = 1.0,
        concurrency: int = 1,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.fetchers = fetchers
        self.upserter = upserter
        self.fetch_timeout = fetch_timeout
        self.inter_source_delay = inter_source_delay
        self.concurrency = max(1, concurrency)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_all(self, content_type: ContentType) -> RunOutcome:
        sources = await self.registry.list_enabled(content_type)
        logger.info(
            f"Starting {content_type.value} ingestion for {len(sources)} sources",
            extra={"operation": "START_INGESTION", "content_type": content_type.value},
        )
        return await self._run_sources(content_type, sources)

    async def run_specific(self, content_type: ContentType, source_ids: Iterable[int]) -> RunOutcome:
        """
        Run only the named sources. Ids that are unknown, disabled or of
        another content type are reported as errors and not fetched.
        """
        errors: List[str] = []
        sources: List[Source] = []

        for source_id in source_ids:
            source = await self.registry.get_by_id(source_id)
            if source is None:
                errors.append(f"Source {source_id} not found")
            elif source.content_type is not content_type:
                errors.append(f"Source {source_id} is not of type {content_type.value}")
            elif not source.enabled:
                errors.append(f"Source {source_id} is disabled")
            else:
                sources.append(source)

        for error in errors:
            logger.warning(error, extra={"operation": "INVALID_SOURCE", "content_type": content_type.value})

        logger.info(
            f"Starting {content_type.value} ingestion for {len(sources)} selected sources",
            extra={"operation": "START_SPECIFIC_INGESTION", "content_type": content_type.value},
        )
        outcome = await self._run_sources(content_type, sources)
        if errors:
            outcome.errors = errors + outcome.errors
            outcome.success = False
        return outcome

    async def run_stale(self, content_type: ContentType, hours_threshold: float = 24) -> RunOutcome:
        stale = await self.registry.list_needing_attention(hours_threshold, content_type)
        logger.info(
            f"Found {len(stale)} {content_type.value} sources needing attention",
            extra={"operation": "START_STALE_INGESTION", "content_type": content_type.value},
        )
        return await self.run_specific(content_type, [s.id for s in stale])

    async def _run_sources(self, content_type: ContentType, sources: List[Source]) -> RunOutcome:
        outcome = RunOutcome(content_type=content_type, started_at=self.clock())
        start = time.perf_counter()
        semaphore = asyncio.Semaphore(self.concurrency)
        last = len(sources) - 1

        async def guarded(index: int, source: Source) -> SourceOutcome:
            async with semaphore:
                result = await self._run_source(content_type, source, outcome)
                if self.inter_source_delay and index < last:
                    await asyncio.sleep(self.inter_source_delay)
                return result

        outcome.sources = list(
            await asyncio.gather(*(guarded(i, s) for i, s in enumerate(sources)))
        )
        outcome.success = not outcome.errors
        outcome.duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"{content_type.value} ingestion finished: {outcome.created} new, {outcome.updated} updated, "
            f"{outcome.skipped} skipped, {len(outcome.errors)} errors",
            extra={
                "operation": "INGESTION_COMPLETED",
                "content_type": content_type.value,
                "duration_ms": round(outcome.duration_ms, 1),
            },
        )
        return outcome

    async def _run_source(self, content_type: ContentType, source: Source, outcome: RunOutcome) -> SourceOutcome:
        result = SourceOutcome(source_id=source.id, source_name=source.display_name)
        start = time.perf_counter()

        try:
            fetcher = self.fetchers.get(content_type)
            if fetcher is None:
                raise FetchError(f"No fetcher configured for {content_type.value}")
            raw_items = await asyncio.wait_for(fetcher.fetch(source), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            error = f"{source.display_name}: fetch timed out after {self.fetch_timeout}s"
            return await self._fail_source(result, outcome, error, start)
        except Exception as e:
            error = f"{source.display_name}: {e}"
            return await self._fail_source(result, outcome, error, start)

        result.items_seen = len(raw_items)
        outcome.items_seen += len(raw_items)

        for raw in raw_items:
            try:
                status = await self.upserter.upsert(raw, source.display_name)
            except Exception as e:
                status = UpsertStatus.SKIPPED
                message = f"{source.display_name}: failed to process '{raw.title}': {e}"
                outcome.errors.append(message)
                logger.warning(message, extra={"operation": "ITEM_FAILED", "source": source.display_name})

            outcome.record(status)
            if status is not UpsertStatus.SKIPPED:
                result.items_processed += 1

        result.duration_ms = (time.perf_counter() - start) * 1000
        await self._record(source.id, True, result.items_processed)

        logger.info(
            f"{source.display_name}: {result.items_processed}/{result.items_seen} items processed",
            extra={
                "operation": "SOURCE_COMPLETED",
                "content_type": content_type.value,
                "source": source.display_name,
                "duration_ms": round(result.duration_ms, 1),
            },
        )
        return result

    async def _fail_source(
        self,
        result: SourceOutcome,
        outcome: RunOutcome,
        error: str,
        start: float,
    ) -> SourceOutcome:
        result.success = False
        result.error = error
        result.duration_ms = (time.perf_counter() - start) * 1000
        outcome.errors.append(error)

        logger.error(
            error,
            extra={
                "operation": "SOURCE_FAILED",
                "content_type": outcome.content_type.value,
                "source": result.source_name,
            },
        )
        await self._record(result.source_id, False, 0, error)
        return result

    async def _record(self, source_id: int, success: bool, items_processed: int, error: Optional[str] = None) -> None:
        try:
            await self.registry.record_run_outcome(source_id, success, items_processed, error)
        except Exception as e:
            logger.error(
                f"Failed to update health for source {source_id}: {e}",
                extra={"operation": "HEALTH_UPDATE_FAILED"},
            )
