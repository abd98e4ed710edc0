from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ContentType(str, Enum):
    VIDEO = "video"
    ARTICLE = "article"


class RunStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class UpsertStatus(str, Enum):
    NEW = "new"
    UPDATED = "updated"
    SKIPPED = "skipped"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Source:
    """
    Registry entry describing one external feed.
    """
    id: int
    content_type: ContentType
    identifier: str
    display_name: str
    enabled: bool = True
    category: Optional[str] = None
    description: Optional[str] = None
    per_run_limit: int = 25
    last_success_at: Optional[datetime] = None
    consecutive_error_count: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content_type": self.content_type.value,
            "identifier": self.identifier,
            "display_name": self.display_name,
            "enabled": self.enabled,
            "category": self.category,
            "description": self.description,
            "per_run_limit": self.per_run_limit,
            "last_success_at": _iso(self.last_success_at),
            "consecutive_error_count": self.consecutive_error_count,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class CanonicalItem:
    """
    Canonical representation of a stored content item.
    One row per canonical_url.
    """
    title: str
    description: str
    canonical_url: str
    image_url: str
    content_type: ContentType
    category: str
    source_display_name: str
    author: Optional[str]
    published_at: datetime
    fetched_at: datetime
    tags: List[str] = field(default_factory=list)
    derived_keywords: List[str] = field(default_factory=list)
    raw_source_payload: str = "null"
    active: bool = True


@dataclass
class SourceOutcome:
    source_id: int
    source_name: str
    items_seen: int = 0
    items_processed: int = 0
    success: bool = True
    error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "items_seen": self.items_seen,
            "items_processed": self.items_processed,
            "success": self.success,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class RunOutcome:
    """
    Result of one orchestration call for a single content type.
    """
    content_type: ContentType
    started_at: datetime
    items_seen: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    sources: List[SourceOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    success: bool = True
    duration_ms: float = 0.0

    def record(self, status: UpsertStatus) -> None:
        if status is UpsertStatus.NEW:
            self.created += 1
        elif status is UpsertStatus.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_type": self.content_type.value,
            "started_at": _iso(self.started_at),
            "items_seen": self.items_seen,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "sources": [s.to_dict() for s in self.sources],
            "errors": list(self.errors),
            "success": self.success,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class SchedulerState:
    """
    Process-wide scheduler bookkeeping, owned by whoever constructs the scheduler.
    """
    next_due_at: datetime
    last_run_at: Optional[datetime] = None
    last_run_status: RunStatus = RunStatus.PENDING
    last_run_error: Optional[str] = None
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_video_run_at: Optional[datetime] = None
    last_article_run_at: Optional[datetime] = None
    running: bool = False

    def last_success_for(self, content_type: ContentType) -> Optional[datetime]:
        if content_type is ContentType.VIDEO:
            return self.last_video_run_at
        return self.last_article_run_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_run_at": _iso(self.last_run_at),
            "last_run_status": self.last_run_status.value,
            "last_run_error": self.last_run_error,
            "next_due_at": _iso(self.next_due_at),
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "last_video_run_at": _iso(self.last_video_run_at),
            "last_article_run_at": _iso(self.last_article_run_at),
            "running": self.running,
        }


@dataclass
class RunReport:
    """
    Result of a single scheduled or manual run.
    """
    run_id: str
    trigger: str
    accepted: bool
    started_at: datetime
    success: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    outcomes: Dict[ContentType, RunOutcome] = field(default_factory=dict)
    duration_ms: float = 0.0
    state: Optional[SchedulerState] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "accepted": self.accepted,
            "reason": self.reason,
            "success": self.success,
            "error": self.error,
            "started_at": _iso(self.started_at),
            "duration_ms": round(self.duration_ms, 1),
            "outcomes": {ct.value: o.to_dict() for ct, o in self.outcomes.items()},
            "state": self.state.to_dict() if self.state else None,
        }
