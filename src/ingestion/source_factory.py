"""
Source Factory - Creates fetchers from configuration.
"""
import logging
from typing import Dict

from core.entities import ContentType
from ingestion.base import Fetcher
from ingestion.rss import ArticleFetcher
from ingestion.youtube import VideoFetcher
from services.config import Config

logger = logging.getLogger(__name__)


def create_fetcher(content_type: ContentType, config: Config) -> Fetcher:
    """
    Create the fetcher for a content type.

    Raises:
        ValueError: If content type is unknown
    """
    if content_type is ContentType.VIDEO:
        if not config.YOUTUBE_API_KEY:
            logger.warning("YOUTUBE_API_KEY is not set; video sources will fail to fetch")
        return VideoFetcher(api_key=config.YOUTUBE_API_KEY, timeout=config.FETCH_TIMEOUT_SECONDS)

    elif content_type is ContentType.ARTICLE:
        return ArticleFetcher(user_agent=config.HTTP_USER_AGENT, timeout=config.FETCH_TIMEOUT_SECONDS)

    else:
        raise ValueError(f"Unknown content type: {content_type}")


def create_fetchers_from_config(config: Config) -> Dict[ContentType, Fetcher]:
    """One fetcher per content type."""
    return {content_type: create_fetcher(content_type, config) for content_type in ContentType}
