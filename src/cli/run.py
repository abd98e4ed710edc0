import argparse
import asyncio
import json
import logging
import os
import time
from typing import Any, Dict

from core.entities import ContentType
from ingestion.source_factory import create_fetchers_from_config
from processing.normalizer import Upserter
from services.config import Config, load_config
from services.database import Database
from services.health import build_health_report
from services.logging import setup_logging
from services.scheduler import DailyScheduler
from services.source_registry import SourceRegistry
from workflows.ingestion import IngestionOrchestrator

logger = logging.getLogger(__name__)


def get_db_path(config: Config) -> str:
    """Get database path, ensuring its directory exists."""
    db_dir = os.path.dirname(config.DATABASE_PATH)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)
    return config.DATABASE_PATH


def build_services(config: Config) -> Dict[str, Any]:
    db = Database(get_db_path(config))
    registry = SourceRegistry(db)
    orchestrator = IngestionOrchestrator(
        registry=registry,
        fetchers=create_fetchers_from_config(config),
        upserter=Upserter(db),
        fetch_timeout=config.FETCH_TIMEOUT_SECONDS,
        inter_source_delay=config.INTER_SOURCE_DELAY_SECONDS,
        concurrency=config.SOURCE_CONCURRENCY,
    )
    scheduler = DailyScheduler(
        orchestrator=orchestrator,
        database=db,
        target_hour=config.SCHEDULE_HOUR,
        timezone=config.SCHEDULE_TIMEZONE,
    )
    return {"db": db, "registry": registry, "orchestrator": orchestrator, "scheduler": scheduler}


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def seed(config: Config, services: Dict[str, Any]) -> Dict[str, Any]:
    specs = []
    for source in config.sources:
        try:
            specs.append(source.to_spec())
        except ValueError as e:
            logger.error(f"Invalid seed source '{source.name}': {e}")
    return await services["registry"].seed(specs)


async def watch(scheduler: DailyScheduler, interval: int) -> None:
    """Tick the scheduler until interrupted."""
    logger.info(f"Watching schedule, next run at {scheduler.state().next_due_at.isoformat()}")
    while True:
        report = await scheduler.run_daily()
        if report.accepted:
            logger.info(f"Scheduled run {report.run_id} finished: success={report.success}")
        # A failed run keeps the old due time, so retry on the regular interval
        await asyncio.sleep(min(interval, scheduler.seconds_until_next() or interval))


async def serve(config: Config, services: Dict[str, Any], host: str, port: int) -> None:
    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config as HypercornConfig

    from api.app import create_app

    if not config.TRIGGER_TOKEN:
        logger.warning("TRIGGER_TOKEN is not set; protected endpoints will reject every request")

    app = create_app(services["scheduler"], services["registry"], config)
    hypercorn_config = HypercornConfig()
    hypercorn_config.bind = [f"{host}:{port}"]
    hypercorn_config.accesslog = "-"
    hypercorn_config.errorlog = "-"

    logger.info(f"Starting trigger API on http://{host}:{port}")
    await hypercorn_serve(app, hypercorn_config)


async def main(args: argparse.Namespace) -> None:
    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = load_config(args.config)
    services = build_services(config)
    registry: SourceRegistry = services["registry"]
    scheduler: DailyScheduler = services["scheduler"]
    await registry.initialize()

    if args.command == "seed":
        _print(await seed(config, services))

    elif args.command == "daily":
        report = await (scheduler.trigger_manual() if args.force else scheduler.run_daily())
        _print(report.to_dict())

    elif args.command == "refresh":
        orchestrator: IngestionOrchestrator = services["orchestrator"]
        if args.content_type:
            outcome = await orchestrator.run_all(ContentType(args.content_type))
            _print(outcome.to_dict())
        else:
            _print((await scheduler.trigger_manual()).to_dict())

    elif args.command == "stale":
        orchestrator = services["orchestrator"]
        hours = args.hours or config.STALE_THRESHOLD_HOURS
        content_types = [ContentType(args.content_type)] if args.content_type else list(ContentType)
        _print({
            ct.value: (await orchestrator.run_stale(ct, hours)).to_dict()
            for ct in content_types
        })

    elif args.command == "status":
        _print({
            "health": await build_health_report(scheduler, registry),
            "recent_runs": await services["db"].get_recent_ingestion_logs(limit=5),
        })

    elif args.command == "watch":
        await watch(scheduler, config.WATCH_INTERVAL_SECONDS)

    elif args.command == "serve":
        await serve(config, services, args.host, args.port)

    logger.info(f"Total time: {time.perf_counter() - start_time:.2f}s")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fantasy football content ingestion")
    parser.add_argument("command",
                        choices=["daily", "refresh", "stale", "seed", "status", "watch", "serve"],
                        help="Command to execute")
    parser.add_argument("--config", default=None,
                        help="Path to config.yml (default: resources/config.yml)")
    parser.add_argument("--content-type", choices=[ct.value for ct in ContentType],
                        help="Restrict refresh/stale to one content type")
    parser.add_argument("--hours", type=float, default=None,
                        help="Staleness threshold in hours for the stale command")
    parser.add_argument("--force", action="store_true",
                        help="Run the daily ingestion even if it is not due")
    parser.add_argument("--host", default="0.0.0.0",
                        help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000,
                        help="Port to bind to (default: 8000)")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
