"""
Normalizer / Upserter
Maps fetched RawItems to CanonicalItems and stores them keyed by canonical URL.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import aiosqlite

from core.entities import CanonicalItem, UpsertStatus
from core.errors import ItemProcessingError, PersistenceError
from ingestion.base import RawItem
from processing.classify import classifier_for, normalize_tags
from processing.images import resolve_image
from processing.keywords import extract_keywords
from services.database import Database

logger = logging.getLogger(__name__)


def to_canonical(raw: RawItem, source_display_name: str, fetched_at: datetime) -> CanonicalItem:
    title = (raw.title or "").strip()
    url = (raw.url or "").strip()
    if not title or not url:
        raise ItemProcessingError(f"Item from {source_display_name} is missing a title or URL")

    description = raw.description or ""
    category = raw.category or classifier_for(raw.content_type).categorize(title, description)

    try:
        payload = json.dumps(raw.payload, default=str)
    except (TypeError, ValueError) as e:
        raise ItemProcessingError(f"Payload for {url} is not serialisable: {e}") from e

    return CanonicalItem(
        title=title,
        description=description,
        canonical_url=url,
        image_url=resolve_image(raw.image_url, source_display_name),
        content_type=raw.content_type,
        category=category,
        source_display_name=source_display_name,
        author=raw.author,
        published_at=raw.published_at,
        fetched_at=fetched_at,
        tags=normalize_tags(raw.tags),
        derived_keywords=extract_keywords(title, description),
        raw_source_payload=payload,
    )


class Upserter:
    """
    One stored resource per canonical URL.
    A second sighting overwrites the mutable fields in place.
    """

    def __init__(self, database: Database, clock: Optional[Callable[[], datetime]] = None):
        self.db = database
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def upsert(self, raw: RawItem, source_display_name: str) -> UpsertStatus:
        item = to_canonical(raw, source_display_name, self.clock())

        try:
            existing = await self.db.get_resource_by_url(item.canonical_url)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Lookup failed for {item.canonical_url}: {e}") from e

        if existing is None:
            try:
                inserted = await self.db.insert_resource(item)
            except aiosqlite.Error as e:
                raise PersistenceError(f"Insert failed for {item.canonical_url}: {e}") from e
            if inserted:
                logger.debug(f"New resource: {item.title}")
                return UpsertStatus.NEW
            # Stored by a concurrent source between lookup and insert
            logger.debug(f"Resource appeared concurrently, updating: {item.canonical_url}")

        try:
            written = await self.db.update_resource(item)
        except aiosqlite.Error as e:
            logger.warning(f"Update failed for {item.canonical_url}: {e}")
            return UpsertStatus.SKIPPED

        if not written:
            logger.warning(f"Update for {item.canonical_url} wrote no rows")
            return UpsertStatus.SKIPPED

        logger.debug(f"Updated resource: {item.title}")
        return UpsertStatus.UPDATED
