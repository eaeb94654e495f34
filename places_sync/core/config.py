"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CITIES = ("Vancouver", "Burnaby", "Richmond", "Surrey")
DEFAULT_RELEVANCE_KEYWORDS = (
    "indian",
    "pakistani",
    "bangladeshi",
    "nepali",
    "sri lankan",
    "afghan",
    "punjabi",
    "gujarati",
    "tamil",
    "kerala",
    "kashmiri",
    "desi",
    "biryani",
    "dosa",
    "chaat",
    "mithai",
    "halal",
    "bollywood",
    "gurdwara",
    "temple",
    "mandir",
    "mosque",
    "masjid",
    "indpak",
)


class ConfigError(RuntimeError):
    """Raised when configuration is missing or malformed."""


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float


METRO_VANCOUVER = BoundingBox(north=49.45, south=49.0, east=-122.4, west=-123.45)


@dataclass(frozen=True)
class Settings:
    google_places_key: str
    database_url: str
    yelp_api_key: str = ""
    admin_key: str = ""
    worker_port: int = 9000
    max_pages: int = 1
    match_threshold: float = 0.85
    retention_days: int = 14
    merge_distance_meters: float = 80.0
    match_batch_limit: int = 200
    google_delay_seconds: float = 0.1
    yelp_delay_seconds: float = 0.2
    request_timeout_seconds: float = 10.0
    geofence: BoundingBox = METRO_VANCOUVER
    target_country: str = "CA"
    target_regions: Tuple[str, ...] = ("BC", "British Columbia")
    relevance_keywords: Tuple[str, ...] = DEFAULT_RELEVANCE_KEYWORDS
    cities: Tuple[str, ...] = DEFAULT_CITIES


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    values = tuple(part.strip() for part in raw.split(",") if part.strip())
    return values or default


def _load_geofence() -> BoundingBox:
    box = BoundingBox(
        north=_env_number("GEOFENCE_NORTH", str(METRO_VANCOUVER.north), float),
        south=_env_number("GEOFENCE_SOUTH", str(METRO_VANCOUVER.south), float),
        east=_env_number("GEOFENCE_EAST", str(METRO_VANCOUVER.east), float),
        west=_env_number("GEOFENCE_WEST", str(METRO_VANCOUVER.west), float),
    )
    if box.south >= box.north or box.west >= box.east:
        raise ConfigError(f"Geofence bounds are inverted: {box}")
    return box


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_places_key = os.getenv("GOOGLE_PLACES_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    yelp_api_key = os.getenv("YELP_API_KEY", "")
    admin_key = os.getenv("ADMIN_KEY", "")
    match_threshold = _env_number("MATCH_THRESHOLD", "0.85", float)
    if not 0.0 < match_threshold <= 1.0:
        raise ConfigError(f"MATCH_THRESHOLD must be in (0, 1], got {match_threshold}")

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_places_key:
        logger.warning("GOOGLE_PLACES_KEY is not configured; Google Places requests will fail.")
    if not yelp_api_key:
        logger.warning("YELP_API_KEY is not configured; Yelp enrichment is disabled.")
    if not admin_key:
        logger.warning("ADMIN_KEY is not configured; admin endpoints will reject every request.")

    return Settings(
        google_places_key=google_places_key,
        database_url=database_url,
        yelp_api_key=yelp_api_key,
        admin_key=admin_key,
        worker_port=_env_number("WORKER_PORT", "9000", int),
        max_pages=_env_number("WORKER_MAX_PAGES", "1", int),
        match_threshold=match_threshold,
        retention_days=_env_number("RETENTION_DAYS", "14", int),
        merge_distance_meters=_env_number("MERGE_DISTANCE_METERS", "80", float),
        match_batch_limit=_env_number("MATCH_BATCH_LIMIT", "200", int),
        google_delay_seconds=_env_number("GOOGLE_DELAY_SECONDS", "0.1", float),
        yelp_delay_seconds=_env_number("YELP_DELAY_SECONDS", "0.2", float),
        request_timeout_seconds=_env_number("REQUEST_TIMEOUT_SECONDS", "10", float),
        geofence=_load_geofence(),
        target_country=os.getenv("TARGET_COUNTRY", "CA").strip().upper(),
        target_regions=_env_list("TARGET_REGIONS", ("BC", "British Columbia")),
        relevance_keywords=tuple(k.lower() for k in _env_list("RELEVANCE_KEYWORDS", DEFAULT_RELEVANCE_KEYWORDS)),
        cities=_env_list("SYNC_CITIES", DEFAULT_CITIES),
    )
