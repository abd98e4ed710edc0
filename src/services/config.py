"""
Loads and handles config from config.yml
Secrets (YOUTUBE_API_KEY, TRIGGER_TOKEN) are loaded from .env
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from core.entities import ContentType
from core.schemas import SourceSpec

logger = logging.getLogger(__name__)


class SourceConfig(BaseModel):
    """Seed entry for a single feed source."""
    type: str  # video, article
    identifier: str  # channel id or feed URL
    name: str
    enabled: bool = True
    category: Optional[str] = None
    description: Optional[str] = None
    max_results: int = 25

    def to_spec(self) -> SourceSpec:
        return SourceSpec(
            content_type=ContentType(self.type.lower()),
            identifier=self.identifier,
            display_name=self.name,
            enabled=self.enabled,
            category=self.category,
            description=self.description,
            per_run_limit=self.max_results,
        )


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/ingest.db"

    # Upstreams
    YOUTUBE_API_KEY: Optional[str] = None
    HTTP_USER_AGENT: str = "fantasy-ingest/1.0"
    FETCH_TIMEOUT_SECONDS: float = 8.0
    INTER_SOURCE_DELAY_SECONDS: float = 1.0
    SOURCE_CONCURRENCY: int = 1

    # Schedule
    SCHEDULE_HOUR: int = 6
    SCHEDULE_TIMEZONE: str = "America/New_York"
    STALE_THRESHOLD_HOURS: int = 24
    WATCH_INTERVAL_SECONDS: int = 300

    # Trigger surface
    TRIGGER_TOKEN: Optional[str] = None

    # Seed sources
    sources: List[SourceConfig] = []


def _get_config_path() -> Optional[str]:
    """Get the path to config.yml, handling different working directories."""
    env_path = os.getenv("INGEST_CONFIG_PATH")
    if env_path:
        return env_path

    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    return None


def _parse_sources(data: List[Dict[str, Any]]) -> List[SourceConfig]:
    sources = []
    for src in data or []:
        try:
            sources.append(SourceConfig(**src))
        except Exception as e:
            logger.error(f"Failed to parse source '{src}': {e}")
    return sources


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and secrets from .env."""
    load_dotenv()

    config_path = path or _get_config_path()
    config: Dict[str, Any] = {}
    if config_path:
        with open(config_path, 'r') as file:
            config = yaml.safe_load(file) or {}
    else:
        logger.warning("resources/config.yml not found, using defaults")

    defaults = Config()

    return Config(
        DATABASE_PATH=os.getenv("DATABASE_PATH") or config.get("DATABASE_PATH", defaults.DATABASE_PATH),
        YOUTUBE_API_KEY=os.getenv("YOUTUBE_API_KEY"),
        HTTP_USER_AGENT=config.get("HTTP_USER_AGENT", defaults.HTTP_USER_AGENT),
        FETCH_TIMEOUT_SECONDS=float(config.get("FETCH_TIMEOUT_SECONDS", defaults.FETCH_TIMEOUT_SECONDS)),
        INTER_SOURCE_DELAY_SECONDS=float(
            config.get("INTER_SOURCE_DELAY_SECONDS", defaults.INTER_SOURCE_DELAY_SECONDS)
        ),
        SOURCE_CONCURRENCY=max(1, int(config.get("SOURCE_CONCURRENCY", defaults.SOURCE_CONCURRENCY))),
        SCHEDULE_HOUR=int(config.get("SCHEDULE_HOUR", defaults.SCHEDULE_HOUR)),
        SCHEDULE_TIMEZONE=config.get("SCHEDULE_TIMEZONE", defaults.SCHEDULE_TIMEZONE),
        STALE_THRESHOLD_HOURS=int(config.get("STALE_THRESHOLD_HOURS", defaults.STALE_THRESHOLD_HOURS)),
        WATCH_INTERVAL_SECONDS=int(config.get("WATCH_INTERVAL_SECONDS", defaults.WATCH_INTERVAL_SECONDS)),
        TRIGGER_TOKEN=os.getenv("TRIGGER_TOKEN"),
        sources=_parse_sources(config.get("sources", [])),
    )
