"""
Runtime configuration for CareConnect API
Values come from the environment (optionally a .env file)
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_OVERPASS_URLS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://z.overpass-api.de/api/interpreter",
]
DEFAULT_DB_PATH = BASE_DIR / "data_cache" / "facilities.sqlite"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _overpass_urls() -> List[str]:
    """Configured endpoint first, then the public mirrors (deduplicated, order kept)."""
    configured = os.getenv("OVERPASS_URL")
    candidates = [configured.strip() if configured else None] + DEFAULT_OVERPASS_URLS
    urls: List[str] = []
    for endpoint in candidates:
        if endpoint and endpoint not in urls:
            urls.append(endpoint)
    return urls


@dataclass(frozen=True)
class Settings:
    """Process-wide settings. Build with get_settings() or directly in tests."""
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    overpass_urls: List[str] = field(default_factory=lambda: list(DEFAULT_OVERPASS_URLS))
    user_agent: str = "CareConnect/1.0"
    geocoder_timeout: float = 10.0
    overpass_timeout: float = 60.0
    geocode_cache_ttl: int = 0  # seconds; 0 disables the geocode cache
    cache_max_entries: int = 1024
    redis_url: Optional[str] = None
    facility_db_path: str = str(DEFAULT_DB_PATH)
    max_search_radius_km: float = 50.0
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings from the environment once per process."""
    return Settings(
        nominatim_url=os.getenv("NOMINATIM_URL", DEFAULT_NOMINATIM_URL),
        overpass_urls=_overpass_urls(),
        user_agent=os.getenv("USER_AGENT", "CareConnect/1.0"),
        geocoder_timeout=_env_float("GEOCODER_TIMEOUT", 10.0),
        overpass_timeout=_env_float("OVERPASS_TIMEOUT", 60.0),
        geocode_cache_ttl=_env_int("GEOCODE_CACHE_TTL", 0),
        cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 1024),
        redis_url=os.getenv("REDIS_URL") or None,
        facility_db_path=os.getenv("FACILITY_DB_PATH", str(DEFAULT_DB_PATH)),
        max_search_radius_km=_env_float("MAX_SEARCH_RADIUS_KM", 50.0),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", True),
    )
