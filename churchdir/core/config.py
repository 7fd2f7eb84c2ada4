"""Application configuration helpers.

Environment variables are the only way to provide credentials; a ``.env`` file
in the working directory is loaded first when present.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    database_url: str
    google_places_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-20241022"
    openai_model: str = "gpt-4o-mini"
    admin_api_key: str = ""
    serpapi_api_key: str = ""
    default_provider: str = "google_places"
    default_search_radius_miles: float = 25.0
    osm_user_agent: str = "ChurchDirectory/1.0"
    churches_csv_path: str = ""
    admin_port: int = 9000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    google_places_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    anthropic_api_key = os.getenv("ANTHROPIC_API_KEY", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    admin_api_key = os.getenv("ADMIN_API_KEY", "")
    radius_raw = os.getenv("DEFAULT_SEARCH_RADIUS_MILES", "25")
    try:
        default_search_radius_miles = float(radius_raw)
    except ValueError:
        logger.warning("DEFAULT_SEARCH_RADIUS_MILES=%r is not numeric; using 25", radius_raw)
        default_search_radius_miles = 25.0

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_places_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places imports are disabled.")
    if not anthropic_api_key and not openai_api_key:
        logger.warning("Neither ANTHROPIC_API_KEY nor OPENAI_API_KEY is configured; enrichment is disabled.")
    if not admin_api_key:
        logger.warning("ADMIN_API_KEY is not set; admin routes will reject every request.")

    return Settings(
        database_url=database_url,
        google_places_api_key=google_places_api_key,
        anthropic_api_key=anthropic_api_key,
        openai_api_key=openai_api_key,
        anthropic_model=os.getenv("ANTHROPIC_MODEL") or "claude-3-5-haiku-20241022",
        openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
        admin_api_key=admin_api_key,
        serpapi_api_key=os.getenv("SERPAPI_API_KEY", ""),
        default_provider=os.getenv("DEFAULT_CHURCH_PROVIDER") or "google_places",
        default_search_radius_miles=default_search_radius_miles,
        osm_user_agent=os.getenv("OSM_USER_AGENT") or "ChurchDirectory/1.0",
        churches_csv_path=os.getenv("CHURCHES_CSV_PATH", ""),
        admin_port=int(os.getenv("ADMIN_PORT", "9000")),
    )


def require_database_url(settings: Settings) -> str:
    if not settings.database_url:
        raise ConfigError("DATABASE_URL must be set in the environment.")
    return settings.database_url


def require_ai_key(settings: Settings) -> None:
    if not settings.anthropic_api_key and not settings.openai_api_key:
        raise ConfigError("ANTHROPIC_API_KEY or OPENAI_API_KEY must be set in the environment.")
