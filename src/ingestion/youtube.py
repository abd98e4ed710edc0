"""
Ingest videos from YouTube channels (Data API v3)
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from core.entities import ContentType, Source
from core.errors import FetchError
from ingestion.base import Fetcher, RawItem
from processing.classify import VIDEO_CLASSIFIER, extract_tags

logger = logging.getLogger(__name__)

THUMBNAIL_PREFERENCE = ("maxres", "standard", "high", "medium", "default")


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def best_thumbnail(video_id: str, thumbnails: Optional[Dict[str, Any]]) -> str:
    thumbnails = thumbnails or {}
    for size in THUMBNAIL_PREFERENCE:
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class VideoFetcher(Fetcher):
    content_type = ContentType.VIDEO
    BASE_URL = "https://www.googleapis.com/youtube/v3"
    # Upper bound for playlistItems.maxResults and for ids per videos call
    MAX_PAGE_SIZE = 50

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def _get(self, client: httpx.AsyncClient, path: str, **params: Any) -> Dict[str, Any]:
        resp = await client.get(f"{self.BASE_URL}/{path}", params={**params, "key": self.api_key})
        resp.raise_for_status()
        return resp.json()

    async def _list_upload_ids(self, client: httpx.AsyncClient, playlist_id: str, limit: int) -> List[str]:
        """Page through the uploads playlist until `limit` distinct video ids are collected."""
        video_ids: List[str] = []
        page_token = None
        while len(video_ids) < limit:
            params: Dict[str, Any] = {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": min(self.MAX_PAGE_SIZE, limit - len(video_ids)),
            }
            if page_token:
                params["pageToken"] = page_token
            playlist = await self._get(client, "playlistItems", **params)

            for entry in playlist.get("items") or []:
                video_id = (entry.get("contentDetails") or {}).get("videoId")
                if video_id and video_id not in video_ids:
                    video_ids.append(video_id)

            page_token = playlist.get("nextPageToken")
            if not page_token:
                break
        return video_ids[:limit]

    async def fetch(self, source: Source) -> List[RawItem]:
        if not self.api_key:
            raise FetchError("YOUTUBE_API_KEY is not configured")

        channel_id = source.identifier
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                channel = await self._get(client, "channels", part="contentDetails", id=channel_id)
                channel_items = channel.get("items") or []
                if not channel_items:
                    raise FetchError(f"Channel not found: {channel_id}")

                uploads = (
                    channel_items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
                )
                if not uploads:
                    raise FetchError(f"Channel {channel_id} has no uploads playlist")

                video_ids = await self._list_upload_ids(client, uploads, source.per_run_limit)
                if not video_ids:
                    logger.info(f"No videos found for channel {source.display_name}")
                    return []

                videos: List[Dict[str, Any]] = []
                for start in range(0, len(video_ids), self.MAX_PAGE_SIZE):
                    details = await self._get(
                        client,
                        "videos",
                        part="snippet,contentDetails,statistics",
                        id=",".join(video_ids[start:start + self.MAX_PAGE_SIZE]),
                    )
                    videos.extend(details.get("items") or [])
        except httpx.HTTPError as e:
            raise FetchError(f"YouTube request failed for {channel_id}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Invalid YouTube response for {channel_id}: {e}") from e

        items: List[RawItem] = []
        for video in videos:
            try:
                item = self._to_raw_item(video, source)
            except Exception as e:
                logger.warning(f"Skipping malformed video from {source.display_name}: {e}")
                continue
            if item is not None:
                items.append(item)

        logger.info(f"Fetched {len(items)} videos from {source.display_name}")
        return items

    def _to_raw_item(self, video: Dict[str, Any], source: Source) -> Optional[RawItem]:
        video_id = video.get("id")
        snippet = video.get("snippet") or {}
        title = (snippet.get("title") or "").strip()
        if not video_id or not title:
            return None

        description = snippet.get("description") or ""
        statistics = video.get("statistics") or {}
        content_details = video.get("contentDetails") or {}

        return RawItem(
            content_type=ContentType.VIDEO,
            title=title,
            url=watch_url(video_id),
            published_at=parse_timestamp(snippet.get("publishedAt")) or datetime.now(timezone.utc),
            description=description,
            image_url=best_thumbnail(video_id, snippet.get("thumbnails")),
            author=snippet.get("channelTitle") or source.display_name,
            category=VIDEO_CLASSIFIER.categorize(title, description),
            tags=extract_tags(title, description),
            external_id=video_id,
            payload={
                "id": video_id,
                "channel_id": snippet.get("channelId"),
                "channel_title": snippet.get("channelTitle"),
                "published_at": snippet.get("publishedAt"),
                "upstream_tags": snippet.get("tags") or [],
                "category_id": snippet.get("categoryId"),
                "duration": content_details.get("duration"),
                "view_count": statistics.get("viewCount"),
                "like_count": statistics.get("likeCount"),
                "comment_count": statistics.get("commentCount"),
            },
        )
