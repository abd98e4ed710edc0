"""
Ingestion from RSS sources
"""
import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import httpx

from core.entities import ContentType, Source
from core.errors import FetchError
from ingestion.base import Fetcher, RawItem
from processing.classify import ARTICLE_CLASSIFIER, extract_tags
from processing.images import first_embedded_image, resolve_image

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def strip_html(value: str) -> str:
    return " ".join(html.unescape(_TAG_RE.sub(" ", value or "")).split())


def _entry_datetime(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def _entry_body(entry: Any) -> str:
    content = entry.get("content") or []
    if content and isinstance(content[0], dict) and content[0].get("value"):
        return content[0]["value"]
    return entry.get("summary", "") or ""


def entry_image(entry: Any) -> Optional[str]:
    """enclosure -> media:content -> media:thumbnail -> first <img> in body."""
    for enclosure in entry.get("enclosures") or []:
        href = enclosure.get("href") or enclosure.get("url")
        if href and (enclosure.get("type", "image").startswith("image") or not enclosure.get("type")):
            return href

    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            if media.get("url"):
                return media["url"]

    return first_embedded_image(_entry_body(entry)) or first_embedded_image(entry.get("summary"))


class ArticleFetcher(Fetcher):
    content_type = ContentType.ARTICLE

    def __init__(
        self,
        user_agent: str = "fantasy-ingest-rss/1.0",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download feed {url}: {e}") from e

    async def fetch(self, source: Source) -> List[RawItem]:
        content = await self._download(source.identifier)
        feed = feedparser.parse(content)

        if feed.bozo and not feed.entries:
            raise FetchError(f"Invalid feed at {source.identifier}: {feed.get('bozo_exception')}")

        items: List[RawItem] = []
        for entry in feed.entries[: source.per_run_limit]:
            try:
                item = self._to_raw_item(entry, source)
            except Exception as e:
                logger.warning(f"Skipping malformed entry from {source.display_name}: {e}")
                continue
            if item is not None:
                items.append(item)

        logger.info(f"Fetched {len(items)} articles from {source.display_name}")
        return items

    def _to_raw_item(self, entry: Any, source: Source) -> Optional[RawItem]:
        link = (entry.get("link") or "").strip()
        title = strip_html(entry.get("title", ""))
        if not link or not title:
            logger.debug(f"Entry without link or title in {source.display_name}, skipping")
            return None

        description = strip_html(entry.get("summary", "") or _entry_body(entry))
        image = resolve_image(entry_image(entry), source.display_name)

        return RawItem(
            content_type=ContentType.ARTICLE,
            title=title,
            url=link,
            published_at=_entry_datetime(entry) or datetime.now(timezone.utc),
            description=description,
            image_url=image,
            author=entry.get("author") or None,
            category=ARTICLE_CLASSIFIER.categorize(title, description),
            tags=extract_tags(title, description),
            external_id=entry.get("id"),
            payload={
                "id": entry.get("id"),
                "title": entry.get("title"),
                "link": link,
                "summary": entry.get("summary"),
                "author": entry.get("author"),
                "published": entry.get("published") or entry.get("updated"),
                "categories": [t.get("term") for t in entry.get("tags") or [] if t.get("term")],
                "source_name": source.display_name,
            },
        )
