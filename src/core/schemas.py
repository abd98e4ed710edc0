"""
Pydantic schemas for registry input (create / update).
"""
import re
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from core.entities import ContentType

CHANNEL_ID_PATTERN = re.compile(r"^UC[A-Za-z0-9_-]{22}$")


def is_channel_id(value: str) -> bool:
    return bool(CHANNEL_ID_PATTERN.match(value))


def is_feed_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SourceSpec(BaseModel):
    """
    Pydantic schema for a feed source definition
    """
    content_type: ContentType
    identifier: str
    display_name: str
    enabled: bool = True
    category: Optional[str] = None
    description: Optional[str] = None
    per_run_limit: int = Field(25, ge=1, le=100)

    @field_validator("identifier", "display_name")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _identifier_matches_type(self) -> "SourceSpec":
        if self.content_type is ContentType.VIDEO and not is_channel_id(self.identifier):
            raise ValueError(
                f"video identifier '{self.identifier}' is not a channel id (expected 'UC' + 22 characters)"
            )
        if self.content_type is ContentType.ARTICLE and not is_feed_url(self.identifier):
            raise ValueError(f"article identifier '{self.identifier}' is not a valid http(s) URL")
        return self


class SourcePatch(BaseModel):
    """
    Partial update for a feed source. Unset fields are left untouched.
    """
    content_type: Optional[ContentType] = None
    identifier: Optional[str] = None
    display_name: Optional[str] = None
    enabled: Optional[bool] = None
    category: Optional[str] = None
    description: Optional[str] = None
    per_run_limit: Optional[int] = Field(None, ge=1, le=100)
