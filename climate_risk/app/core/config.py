"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from climate_risk.app.core.config import settings
    print(settings.OPEN_METEO_ARCHIVE_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Climate Risk Signals"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Data providers ──
    DATA_PROVIDER: str = "open_meteo"  # open_meteo | nasa_power
    OPEN_METEO_ARCHIVE_URL: str = "https://archive-api.open-meteo.com/v1/archive"
    OPEN_METEO_ELEVATION_URL: str = "https://api.open-meteo.com/v1/elevation"
    NASA_POWER_URL: str = "https://power.larc.nasa.gov/api/temporal/daily/point"
    LANDSLIDE_CATALOG_URL: str = "https://data.nasa.gov/resource/h9d8-neg4.json"
    WEATHER_FETCH_TIMEOUT: float = 30.0  # seconds
    FETCH_MAX_RETRIES: int = 3
    FETCH_BACKOFF_BASE: float = 1.0  # wait = base * 2^attempt

    # ── Cache ──
    CACHE_ENABLED: bool = True
    CACHE_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_KEY_PREFIX: str = "climate"
    CACHE_CLEANUP_INTERVAL: int = 3600  # seconds, 0 disables the sweeper
    CACHE_TTL_HISTORICAL: int = 30 * 24 * 3600
    CACHE_TTL_FORECAST: int = 6 * 3600
    CACHE_TTL_EVENTS: int = 24 * 3600
    CACHE_TTL_LANDSLIDES: int = 30 * 24 * 3600
    CACHE_TTL_FLOODS: int = 24 * 3600
    CACHE_TTL_INDICES: int = 30 * 24 * 3600
    CACHE_TTL_AGGREGATES: int = 3600

    # ── Regional defaults ──
    NORMAL_TEMPERATURE_C: float = 22.5
    LANDSLIDE_SEARCH_RADIUS_KM: float = 25.0
    LANDSLIDE_LOOKBACK_YEARS: int = 15
    DEFAULT_LOOKBACK_DAYS: int = 365
    MAX_HISTORY_YEARS: int = 10

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
