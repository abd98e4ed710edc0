import aiosqlite
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional
import logging

from core.entities import CanonicalItem

logger = logging.getLogger(__name__)

SOURCE_COLUMNS = (
    "content_type", "identifier", "display_name", "enabled", "category",
    "description", "per_run_limit",
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Store timestamps as UTC ISO-8601 so they compare as text."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Database:
    def __init__(self, path: str):
        self.path = path

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        """Run a write statement and return the affected row count."""
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Initialize tables for sources, resources and the run audit log."""
        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS feed_sources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_type TEXT NOT NULL,
                    identifier TEXT NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    enabled BOOLEAN DEFAULT 1,
                    category TEXT,
                    description TEXT,
                    per_run_limit INTEGER NOT NULL DEFAULT 25,
                    last_success_at TEXT,
                    consecutive_error_count INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_feed_sources_type_enabled
                ON feed_sources(content_type, enabled)
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    image_url TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    category TEXT NOT NULL,
                    source_display_name TEXT NOT NULL,
                    author TEXT,
                    published_at TEXT NOT NULL,
                    fetched_at TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    keywords TEXT NOT NULL DEFAULT '[]',
                    raw_payload TEXT,
                    active BOOLEAN DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_resources_published_at ON resources(published_at)
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS ingestion_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    trigger TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    duration_ms REAL,
                    error TEXT,
                    payload TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            await conn.commit()
            logger.info("Database tables initialized")

    # ---------------------------------------------------------------
    # Feed sources
    # ---------------------------------------------------------------

    async def insert_source(self, values: Dict[str, Any], now: datetime) -> int:
        columns = [c for c in SOURCE_COLUMNS if c in values]
        placeholders = ", ".join("?" for _ in columns)
        async with self.connect() as conn:
            cursor = await conn.execute(
                f"""
                INSERT INTO feed_sources ({", ".join(columns)}, created_at, updated_at)
                VALUES ({placeholders}, ?, ?)
                """,
                tuple(values[c] for c in columns) + (_ts(now), _ts(now)),
            )
            await conn.commit()
            return cursor.lastrowid

    async def get_source(self, source_id: int):
        return await self.fetchone("SELECT * FROM feed_sources WHERE id = ?", (source_id,))

    async def get_source_by_identifier(self, identifier: str):
        return await self.fetchone("SELECT * FROM feed_sources WHERE identifier = ?", (identifier,))

    async def list_sources(
        self,
        enabled_only: bool = False,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
    ):
        clauses, params = [], []
        if enabled_only:
            clauses.append("enabled = 1")
        if content_type:
            clauses.append("content_type = ?")
            params.append(content_type)
        if category:
            clauses.append("category = ? COLLATE NOCASE")
            params.append(category)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return await self.fetchall(
            f"SELECT * FROM feed_sources {where} ORDER BY display_name COLLATE NOCASE",
            tuple(params),
        )

    async def update_source(self, source_id: int, values: Dict[str, Any], now: datetime) -> int:
        columns = [c for c in SOURCE_COLUMNS if c in values]
        if not columns:
            return 0
        assignments = ", ".join(f"{c} = ?" for c in columns)
        return await self.execute(
            f"UPDATE feed_sources SET {assignments}, updated_at = ? WHERE id = ?",
            tuple(values[c] for c in columns) + (_ts(now), source_id),
        )

    async def delete_source(self, source_id: int) -> int:
        return await self.execute("DELETE FROM feed_sources WHERE id = ?", (source_id,))

    async def mark_source_success(self, source_id: int, now: datetime) -> int:
        return await self.execute(
            """
            UPDATE feed_sources
            SET last_success_at = ?, consecutive_error_count = 0, last_error = NULL, updated_at = ?
            WHERE id = ?
            """,
            (_ts(now), _ts(now), source_id),
        )

    async def mark_source_failure(self, source_id: int, error: Optional[str], now: datetime) -> int:
        return await self.execute(
            """
            UPDATE feed_sources
            SET consecutive_error_count = consecutive_error_count + 1, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (error, _ts(now), source_id),
        )

    async def list_sources_needing_attention(self, cutoff: datetime, content_type: Optional[str] = None):
        query = """
            SELECT * FROM feed_sources
            WHERE enabled = 1
              AND (last_success_at IS NULL OR last_success_at < ? OR consecutive_error_count > 0)
        """
        params: list = [_ts(cutoff)]
        if content_type:
            query += " AND content_type = ?"
            params.append(content_type)
        query += " ORDER BY last_success_at ASC"
        return await self.fetchall(query, tuple(params))

    async def source_stats(self) -> Dict[str, Any]:
        async with self.connect() as conn:
            cursor = await conn.execute("""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(enabled = 1), 0) AS enabled,
                    COALESCE(SUM(enabled = 1 AND content_type = 'video'), 0) AS video,
                    COALESCE(SUM(enabled = 1 AND content_type = 'article'), 0) AS article,
                    COALESCE(SUM(consecutive_error_count > 0), 0) AS with_errors,
                    MAX(last_success_at) AS last_success_at
                FROM feed_sources
            """)
            totals = await cursor.fetchone()
            cursor = await conn.execute("""
                SELECT category, COUNT(*) AS count FROM feed_sources
                WHERE enabled = 1 AND category IS NOT NULL
                GROUP BY category ORDER BY count DESC
            """)
            categories = await cursor.fetchall()

        return {
            "total_sources": totals["total"],
            "enabled_sources": totals["enabled"],
            "video_sources": totals["video"],
            "article_sources": totals["article"],
            "sources_with_errors": totals["with_errors"],
            "last_success_at": totals["last_success_at"],
            "sources_by_category": {row["category"]: row["count"] for row in categories},
        }

    # ---------------------------------------------------------------
    # Resources
    # ---------------------------------------------------------------

    async def get_resource_by_url(self, url: str):
        return await self.fetchone("SELECT * FROM resources WHERE url = ?", (url,))

    async def insert_resource(self, item: CanonicalItem) -> int:
        """Insert a new resource. Returns 0 when the URL is already stored."""
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO resources
                (url, title, description, image_url, content_type, category, source_display_name,
                 author, published_at, fetched_at, tags, keywords, raw_payload, active,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO NOTHING
                """,
                (
                    item.canonical_url, item.title, item.description, item.image_url,
                    item.content_type.value, item.category, item.source_display_name,
                    item.author, _ts(item.published_at), _ts(item.fetched_at),
                    json.dumps(item.tags), json.dumps(item.derived_keywords),
                    item.raw_source_payload, int(item.active),
                    _ts(item.fetched_at), _ts(item.fetched_at),
                ),
            )
            await conn.commit()
            return cursor.rowcount

    async def update_resource(self, item: CanonicalItem) -> int:
        """Overwrite mutable fields of the resource keyed by URL."""
        return await self.execute(
            """
            UPDATE resources
            SET title = ?, description = ?, image_url = ?, content_type = ?, category = ?,
                source_display_name = ?, author = ?, published_at = ?, fetched_at = ?,
                tags = ?, keywords = ?, raw_payload = ?, active = ?, updated_at = ?
            WHERE url = ?
            """,
            (
                item.title, item.description, item.image_url, item.content_type.value,
                item.category, item.source_display_name, item.author,
                _ts(item.published_at), _ts(item.fetched_at),
                json.dumps(item.tags), json.dumps(item.derived_keywords),
                item.raw_source_payload, int(item.active), _ts(item.fetched_at),
                item.canonical_url,
            ),
        )

    async def count_resources(self, content_type: Optional[str] = None) -> int:
        if content_type:
            row = await self.fetchone(
                "SELECT COUNT(*) FROM resources WHERE content_type = ?", (content_type,)
            )
        else:
            row = await self.fetchone("SELECT COUNT(*) FROM resources")
        return row[0]

    # ---------------------------------------------------------------
    # Ingestion audit log (append-only)
    # ---------------------------------------------------------------

    async def add_ingestion_log(
        self,
        run_id: str,
        trigger: str,
        status: str,
        started_at: datetime,
        duration_ms: float,
        payload: Dict[str, Any],
        error: Optional[str] = None,
    ) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO ingestion_log
                (run_id, trigger, status, started_at, duration_ms, error, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id, trigger, status, _ts(started_at), duration_ms, error,
                    json.dumps(payload, default=str), _ts(datetime.now(timezone.utc)),
                ),
            )
            await conn.commit()
            return cursor.lastrowid

    async def get_recent_ingestion_logs(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            "SELECT * FROM ingestion_log ORDER BY id DESC LIMIT ?", (limit,)
        )
        logs = []
        for row in rows:
            entry = dict(row)
            entry["payload"] = json.loads(entry["payload"]) if entry["payload"] else None
            logs.append(entry)
        return logs
