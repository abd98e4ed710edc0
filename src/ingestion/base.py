"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.entities import ContentType, Source


class RawItem(BaseModel):
    """
    Loosely typed item as pulled from an upstream feed, before normalization.
    """
    content_type: ContentType
    title: str
    url: str
    published_at: datetime
    description: str = ""
    image_url: Optional[str] = None
    author: Optional[str] = None
    category: str = ""
    tags: List[str] = Field(default_factory=list)
    external_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class Fetcher(ABC):
    """
    Base interface for all source fetchers.
    """

    content_type: ContentType

    @abstractmethod
    async def fetch(self, source: Source) -> List[RawItem]:
        """
        Fetch up to source.per_run_limit items for one source.
        Malformed upstream entries are skipped.
        Raises FetchError on total failure (handled upstream).
        """
        raise NotImplementedError
