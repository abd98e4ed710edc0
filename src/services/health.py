"""
Overall health verdict for the ingestion pipeline.
Combines scheduler health with registry stats.
"""
import logging
from typing import Any, Dict, List

from services.scheduler import DailyScheduler
from services.source_registry import SourceRegistry
from core.entities import RunStatus

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
CRITICAL = "critical"


async def build_health_report(scheduler: DailyScheduler, registry: SourceRegistry) -> Dict[str, Any]:
    scheduler_health = scheduler.health()
    state = scheduler.state()
    stats = await registry.stats()

    content = {
        "video": scheduler_health["video_status"],
        "article": scheduler_health["article_status"],
    }
    unhealthy = [name for name, status in content.items() if status != HEALTHY]
    failing_sources = [
        s for s in await registry.list_enabled() if s.consecutive_error_count > 0
    ]

    if len(unhealthy) == len(content):
        status = CRITICAL
    elif unhealthy or failing_sources or state.last_run_status is RunStatus.FAILED:
        status = DEGRADED
    else:
        status = HEALTHY

    recommendations: List[str] = []
    for name in unhealthy:
        if content[name] == "never":
            recommendations.append(f"No {name} content has been ingested yet; trigger a refresh")
        else:
            recommendations.append(f"{name.capitalize()} content is stale; trigger a refresh")
    for source in failing_sources:
        recommendations.append(
            f"Source '{source.display_name}' has failed {source.consecutive_error_count} "
            f"time(s) in a row: {source.last_error}"
        )
    if state.last_run_status is RunStatus.FAILED and state.last_run_error:
        recommendations.append(f"Last run failed: {state.last_run_error}")
    if stats["enabled_sources"] == 0:
        recommendations.append("No sources are enabled; seed or enable sources")

    if status != HEALTHY:
        logger.warning(f"Pipeline health is {status}: {len(recommendations)} recommendations")

    return {
        "status": status,
        "scheduler": {**scheduler_health, **state.to_dict()},
        "content": content,
        "sources": stats,
        "recommendations": recommendations,
    }
