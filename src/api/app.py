"""
HTTP trigger surface for the ingestion scheduler.
Thin Quart app: bearer-token auth in front of the scheduler, JSON out.
"""
import hmac
import logging
from functools import wraps
from typing import Optional

from quart import Quart, jsonify, request
from quart_cors import cors

from core.entities import ContentType
from services.config import Config
from services.health import CRITICAL, build_health_report
from services.scheduler import DailyScheduler
from services.source_registry import SourceRegistry

logger = logging.getLogger(__name__)


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(scheduler: DailyScheduler, registry: SourceRegistry, config: Config) -> Quart:
    app = Quart(__name__)
    app = cors(app)

    # ==================== Decorators ====================

    def token_required(f):
        """Decorator to require the shared trigger token."""
        @wraps(f)
        async def decorated_function(*args, **kwargs):
            token = _bearer_token()
            expected = config.TRIGGER_TOKEN
            if not expected or not token or not hmac.compare_digest(token, expected):
                logger.warning(f"Unauthorized request to {request.path}")
                return jsonify({"error": "Unauthorized"}), 401
            return await f(*args, **kwargs)
        return decorated_function

    # ==================== Startup ====================

    @app.before_serving
    async def startup():
        """Initialize database tables on startup."""
        await registry.initialize()
        logger.info("Trigger API started, database initialized")

    # ==================== Routes ====================

    @app.route("/api/health")
    async def health():
        report = await build_health_report(scheduler, registry)
        status_code = 503 if report["status"] == CRITICAL else 200
        return jsonify(report), status_code

    @app.route("/api/scheduler", methods=["GET"])
    @token_required
    async def scheduler_state():
        return jsonify({
            "state": scheduler.state().to_dict(),
            "health": scheduler.health(),
            "is_due": scheduler.is_due(),
            "seconds_until_next": round(scheduler.seconds_until_next()),
        })

    @app.route("/api/scheduler", methods=["POST"])
    @token_required
    async def trigger_run():
        """Operator-invoked refresh, bypasses the due check."""
        report = await scheduler.trigger_manual()
        if not report.accepted:
            return jsonify(report.to_dict()), 409
        return jsonify(report.to_dict())

    @app.route("/api/scheduler/tick", methods=["POST"])
    @token_required
    async def tick():
        """Timer tick: runs only when the daily run is due."""
        report = await scheduler.run_daily()
        if report.reason == "already_running":
            return jsonify(report.to_dict()), 409
        return jsonify(report.to_dict())

    @app.route("/api/ingest/stale", methods=["POST"])
    @token_required
    async def ingest_stale():
        data = await request.get_json(silent=True) or {}
        try:
            hours = float(data.get("hours", config.STALE_THRESHOLD_HOURS))
            content_types = (
                [ContentType(data["content_type"])] if data.get("content_type") else list(ContentType)
            )
        except (TypeError, ValueError) as e:
            return jsonify({"error": f"Invalid request: {e}"}), 400

        outcomes = {}
        for content_type in content_types:
            outcome = await scheduler.orchestrator.run_stale(content_type, hours)
            outcomes[content_type.value] = outcome.to_dict()
        return jsonify({"hours": hours, "outcomes": outcomes})

    @app.route("/api/sources")
    @token_required
    async def sources():
        return jsonify({
            "stats": await registry.stats(),
            "sources": [s.to_dict() for s in await registry.list_all()],
        })

    return app
