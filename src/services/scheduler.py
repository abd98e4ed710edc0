"""
Daily scheduler for the ingestion pipeline.
Decides when a run is due, runs every content type and keeps run history.
"""
import asyncio
import dataclasses
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from core.entities import ContentType, RunOutcome, RunReport, RunStatus, SchedulerState
from services.database import Database
from workflows.ingestion import IngestionOrchestrator

logger = logging.getLogger(__name__)

HEALTHY_WINDOW_HOURS = 24


def next_run_time(now: datetime, hour: int = 6, tz: str = "America/New_York") -> datetime:
    """
    Next occurrence of hour:00 in the given zone.
    Rolls to tomorrow when the local hour is already at or past the target.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(tz))
    run = local.replace(hour=hour, minute=0, second=0, microsecond=0)
    if local.hour >= hour:
        run += timedelta(days=1)
    return run


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def _content_type_succeeded(outcome: RunOutcome) -> bool:
    # One working source keeps the content type alive
    return outcome.success or any(s.success for s in outcome.sources)


class DailyScheduler:
    """
    Runs every content type once a day at target_hour in the reference zone.
    State is held on the instance; overlapping runs are rejected.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        database: Database,
        target_hour: int = 6,
        timezone: str = "America/New_York",
        clock: Optional[Callable[[], datetime]] = None,
        content_types: Sequence[ContentType] = tuple(ContentType),
    ):
        self.orchestrator = orchestrator
        self.db = database
        self.target_hour = target_hour
        self.timezone = timezone
        self.clock = clock or (lambda: datetime.now(ZoneInfo("UTC")))
        self.content_types = list(content_types)
        self._state = SchedulerState(next_due_at=self._next_due())
        self._lock = asyncio.Lock()

    def _next_due(self) -> datetime:
        return next_run_time(self.clock(), self.target_hour, self.timezone)

    def state(self) -> SchedulerState:
        return dataclasses.replace(self._state)

    def is_due(self) -> bool:
        return self.clock() >= self._state.next_due_at

    def seconds_until_next(self) -> float:
        return max(0.0, (self._state.next_due_at - self.clock()).total_seconds())

    async def run_daily(self) -> RunReport:
        if not self.is_due():
            logger.info(
                f"Daily ingestion not due until {self._state.next_due_at.isoformat()}",
                extra={"operation": "RUN_NOT_DUE"},
            )
            return self._rejected("scheduled", "not_due")
        return await self._run("scheduled")

    async def trigger_manual(self) -> RunReport:
        """Same as run_daily but skips the due check."""
        return await self._run("manual")

    def health(self) -> Dict[str, Any]:
        now = self.clock()
        state = self._state
        hours_since = _hours_between(state.last_run_at, now) if state.last_run_at else None

        return {
            "is_healthy": hours_since is not None and hours_since < HEALTHY_WINDOW_HOURS,
            "hours_since_last_run": round(hours_since, 2) if hours_since is not None else None,
            "hours_until_next": round(max(0.0, _hours_between(now, state.next_due_at)), 2),
            "video_status": self._content_status(state.last_video_run_at, now),
            "article_status": self._content_status(state.last_article_run_at, now),
        }

    @staticmethod
    def _content_status(last_success: Optional[datetime], now: datetime) -> str:
        if last_success is None:
            return "never"
        if _hours_between(last_success, now) < HEALTHY_WINDOW_HOURS:
            return "healthy"
        return "stale"

    def _rejected(self, trigger: str, reason: str) -> RunReport:
        return RunReport(
            run_id=uuid.uuid4().hex,
            trigger=trigger,
            accepted=False,
            started_at=self.clock(),
            reason=reason,
            state=self.state(),
        )

    async def _run(self, trigger: str) -> RunReport:
        if self._lock.locked():
            logger.warning(
                f"Rejected {trigger} run: another run is in progress",
                extra={"operation": "RUN_REJECTED"},
            )
            return self._rejected(trigger, "already_running")

        async with self._lock:
            self._state.running = True
            try:
                return await self._execute(trigger)
            finally:
                self._state.running = False

    async def _execute(self, trigger: str) -> RunReport:
        state = self._state
        report = RunReport(
            run_id=uuid.uuid4().hex,
            trigger=trigger,
            accepted=True,
            started_at=self.clock(),
        )
        start = time.perf_counter()

        state.last_run_status = RunStatus.PENDING
        state.total_runs += 1
        logger.info(
            f"Starting {trigger} ingestion run {report.run_id}",
            extra={"operation": "START_RUN", "run_id": report.run_id},
        )

        errors: List[str] = []
        succeeded: List[ContentType] = []

        for content_type in self.content_types:
            try:
                outcome = await self.orchestrator.run_all(content_type)
            except Exception as e:
                logger.exception(f"{content_type.value} ingestion crashed: {e}")
                errors.append(f"{content_type.value}: {e}")
                continue

            report.outcomes[content_type] = outcome
            if _content_type_succeeded(outcome):
                succeeded.append(content_type)
            else:
                errors.append(f"{content_type.value}: {'; '.join(outcome.errors)}")

        now = self.clock()
        if succeeded:
            state.last_run_at = now
            state.last_run_status = RunStatus.SUCCESS
            state.last_run_error = None
            state.successful_runs += 1
            state.next_due_at = next_run_time(now, self.target_hour, self.timezone)
            for content_type in succeeded:
                if content_type is ContentType.VIDEO:
                    state.last_video_run_at = now
                else:
                    state.last_article_run_at = now
        else:
            state.last_run_status = RunStatus.FAILED
            state.last_run_error = " | ".join(errors) or "No content type was ingested"
            state.failed_runs += 1

        report.success = bool(succeeded)
        report.error = state.last_run_error
        report.duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Run {report.run_id} finished with status {state.last_run_status.value}",
            extra={
                "operation": "RUN_COMPLETED",
                "run_id": report.run_id,
                "status": state.last_run_status.value,
                "duration_ms": round(report.duration_ms, 1),
            },
        )

        await self._audit(report)
        report.state = self.state()
        return report

    async def _audit(self, report: RunReport) -> None:
        try:
            await self.db.add_ingestion_log(
                run_id=report.run_id,
                trigger=report.trigger,
                status=RunStatus.SUCCESS.value if report.success else RunStatus.FAILED.value,
                started_at=report.started_at,
                duration_ms=report.duration_ms,
                payload={ct.value: o.to_dict() for ct, o in report.outcomes.items()},
                error=report.error,
            )
        except Exception as e:
            logger.error(f"Failed to write ingestion log for run {report.run_id}: {e}")
