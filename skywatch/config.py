"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Skywatch"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Postgres ---
    database_url: str
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_command_timeout: float = 30.0
    # Seconds to wait for a free pooled connection before giving up
    db_acquire_timeout: float = 10.0

    # --- Redis ---
    redis_url: str = "redis://redis:6379"

    # --- Upstream APIs ---
    nasa_api_key: str = "DEMO_KEY"
    nasa_api_base: str = "https://api.nasa.gov"
    nasa_osdr_url: str = Field(
        default="https://visualization.osdr.nasa.gov/biodata/api/v2/datasets/?format=json",
        validation_alias=AliasChoices("nasa_osdr_url", "nasa_api_url"),
    )
    iss_url: str = Field(
        default="https://api.wheretheiss.at/v1/satellites/25544",
        validation_alias=AliasChoices("iss_url", "where_iss_url"),
    )
    spacex_api_base: str = "https://api.spacexdata.com"
    http_timeout_seconds: float = 30.0
    http_user_agent: str = "Skywatch/0.1"

    # --- Sync intervals (seconds) ---
    iss_sync_interval: int = 120
    osdr_sync_interval: int = 600
    apod_sync_interval: int = 43200  # 12h
    neo_sync_interval: int = 7200  # 2h
    donki_sync_interval: int = 3600  # 1h
    spacex_sync_interval: int = 3600  # 1h

    # --- Locking ---
    lock_backend: str = "postgres"  # postgres | redis
    redis_lock_ttl_seconds: int = 300

    # --- Sources ---
    sources_config_path: str | None = None  # defaults to the bundled sources.yaml

    # --- Rate Limiting ---
    rate_limit_per_minute: int = 100
    rate_limit_window_seconds: int = 60

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
