"""
SourceRegistry - persisted catalog of feed sources.
Validates identifiers against content type and tracks per-source health.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import aiosqlite
from pydantic import ValidationError as SchemaError

from core.entities import ContentType, Source
from core.errors import PersistenceError, ValidationError
from core.schemas import SourcePatch, SourceSpec
from services.database import Database

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _schema_message(error: SchemaError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def row_to_source(row) -> Source:
    return Source(
        id=row["id"],
        content_type=ContentType(row["content_type"]),
        identifier=row["identifier"],
        display_name=row["display_name"],
        enabled=bool(row["enabled"]),
        category=row["category"],
        description=row["description"],
        per_run_limit=row["per_run_limit"],
        last_success_at=_parse_ts(row["last_success_at"]),
        consecutive_error_count=row["consecutive_error_count"],
        last_error=row["last_error"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _spec_values(spec: SourceSpec) -> Dict[str, Any]:
    values = spec.model_dump()
    values["content_type"] = spec.content_type.value
    values["enabled"] = int(spec.enabled)
    return values


class SourceRegistry:
    """
    CRUD and health bookkeeping for feed sources.
    Malformed or duplicate identifiers raise ValidationError.
    """

    def __init__(self, database: Database, clock: Optional[Clock] = None):
        self.db = database
        self.clock = clock or utc_now
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the database tables."""
        if not self._initialized:
            await self.db.init_tables()
            self._initialized = True

    async def list_enabled(self, content_type: Optional[ContentType] = None) -> List[Source]:
        await self.initialize()
        rows = await self.db.list_sources(
            enabled_only=True,
            content_type=content_type.value if content_type else None,
        )
        return [row_to_source(row) for row in rows]

    async def list_all(self) -> List[Source]:
        await self.initialize()
        rows = await self.db.list_sources()
        return [row_to_source(row) for row in rows]

    async def list_by_category(self, category: str, enabled_only: bool = False) -> List[Source]:
        """Sources filed under `category`, matched case-insensitively."""
        await self.initialize()
        rows = await self.db.list_sources(enabled_only=enabled_only, category=category)
        return [row_to_source(row) for row in rows]

    async def get_by_id(self, source_id: int) -> Optional[Source]:
        await self.initialize()
        row = await self.db.get_source(source_id)
        return row_to_source(row) if row else None

    async def create(self, spec: Union[SourceSpec, Dict[str, Any]]) -> Source:
        await self.initialize()
        spec = self._validate(spec)

        if await self.db.get_source_by_identifier(spec.identifier):
            raise ValidationError(f"A source with identifier '{spec.identifier}' already exists")

        try:
            source_id = await self.db.insert_source(_spec_values(spec), self.clock())
        except aiosqlite.IntegrityError as e:
            raise ValidationError(f"A source with identifier '{spec.identifier}' already exists") from e
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to create source '{spec.display_name}': {e}") from e

        logger.info(f"Registered {spec.content_type.value} source '{spec.display_name}' (id={source_id})")
        return await self.get_by_id(source_id)

    async def update(self, source_id: int, patch: Union[SourcePatch, Dict[str, Any]]) -> Source:
        """
        Apply a partial update. The merged record is validated as a whole,
        so changing only the content type still checks the identifier.
        """
        await self.initialize()
        existing = await self.get_by_id(source_id)
        if existing is None:
            raise ValidationError(f"Source {source_id} not found")

        if isinstance(patch, dict):
            try:
                patch = SourcePatch(**patch)
            except SchemaError as e:
                raise ValidationError(_schema_message(e)) from e

        changes = patch.model_dump(exclude_unset=True)
        merged = {
            "content_type": existing.content_type,
            "identifier": existing.identifier,
            "display_name": existing.display_name,
            "enabled": existing.enabled,
            "category": existing.category,
            "description": existing.description,
            "per_run_limit": existing.per_run_limit,
        }
        merged.update({k: v for k, v in changes.items() if v is not None or k in ("category", "description")})
        spec = self._validate(merged)

        if spec.identifier != existing.identifier:
            clash = await self.db.get_source_by_identifier(spec.identifier)
            if clash and clash["id"] != source_id:
                raise ValidationError(f"A source with identifier '{spec.identifier}' already exists")

        try:
            await self.db.update_source(source_id, _spec_values(spec), self.clock())
        except aiosqlite.IntegrityError as e:
            raise ValidationError(f"A source with identifier '{spec.identifier}' already exists") from e
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to update source {source_id}: {e}") from e

        return await self.get_by_id(source_id)

    async def delete(self, source_id: int) -> bool:
        await self.initialize()
        removed = await self.db.delete_source(source_id) > 0
        if removed:
            logger.info(f"Deleted source {source_id}")
        return removed

    async def record_run_outcome(
        self,
        source_id: int,
        success: bool,
        items_processed: int,
        error: Optional[str] = None,
    ) -> None:
        """
        Update health fields after a run.
        Success stamps last_success_at and clears the error streak;
        failure increments it and stores the message.
        """
        await self.initialize()
        now = self.clock()
        try:
            if success:
                updated = await self.db.mark_source_success(source_id, now)
            else:
                updated = await self.db.mark_source_failure(source_id, error or "Unknown error", now)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to record outcome for source {source_id}: {e}") from e

        if not updated:
            logger.warning(f"Run outcome for unknown source {source_id} was not recorded")
        else:
            logger.debug(
                f"Source {source_id}: success={success} items_processed={items_processed}"
            )

    async def list_needing_attention(
        self,
        stale_threshold_hours: float,
        content_type: Optional[ContentType] = None,
    ) -> List[Source]:
        """
        Enabled sources that never succeeded, succeeded longer ago than the
        threshold, or are on an error streak. Oldest first.
        """
        await self.initialize()
        cutoff = self.clock() - timedelta(hours=stale_threshold_hours)
        rows = await self.db.list_sources_needing_attention(
            cutoff, content_type.value if content_type else None
        )
        return [row_to_source(row) for row in rows]

    async def seed(self, specs: Iterable[Union[SourceSpec, Dict[str, Any]]]) -> Dict[str, Any]:
        """Create every spec whose identifier is not registered yet."""
        await self.initialize()
        created, skipped, errors = 0, 0, []

        for spec in specs:
            try:
                spec = self._validate(spec)
                if await self.db.get_source_by_identifier(spec.identifier):
                    skipped += 1
                    continue
                await self.create(spec)
                created += 1
            except (ValidationError, PersistenceError) as e:
                errors.append(str(e))
                logger.error(f"Failed to seed source: {e}")

        logger.info(f"Seeded sources: {created} created, {skipped} skipped, {len(errors)} errors")
        return {"created": created, "skipped": skipped, "errors": errors}

    async def stats(self) -> Dict[str, Any]:
        await self.initialize()
        return await self.db.source_stats()

    def _validate(self, spec: Union[SourceSpec, Dict[str, Any]]) -> SourceSpec:
        if isinstance(spec, SourceSpec):
            spec = spec.model_dump()
        try:
            return SourceSpec(**spec)
        except SchemaError as e:
            raise ValidationError(_schema_message(e)) from e
        except TypeError as e:
            raise ValidationError(str(e)) from e
