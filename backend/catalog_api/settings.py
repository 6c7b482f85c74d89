"""Runtime configuration for the Mediadex catalog service."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.paths import default_database_url


class CatalogSettings(BaseSettings):
    """Environment-aware settings for the catalog API and import worker."""

    database_url: str = Field(
        default_factory=default_database_url,
        description="Connection URL for the catalog SQLite database.",
    )
    database_echo: bool = Field(
        default=False, description="Enable SQL echo for debugging queries."
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis-backed job queue.",
    )
    redis_queue_name: str = Field(
        default="mediadex-imports",
        description="RQ queue name used for import jobs.",
    )
    queue_worker_name: str = Field(
        default="import-worker",
        description="Identifier used when reporting job worker executions.",
    )
    api_host: str = Field(default="0.0.0.0", description="Interface the API server binds to.")
    api_port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = Field(default="INFO", description="Root log level for the API and worker processes.")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser.",
    )
    import_job_timeout_seconds: int = Field(
        default=6 * 60 * 60,
        description="Maximum wall time for a single import job before RQ aborts it.",
    )
    jikan_base_url: str = Field(
        default="https://api.jikan.moe/v4",
        description="Base URL of the primary metadata provider.",
    )
    anilist_url: str = Field(
        default="https://graphql.anilist.co",
        description="GraphQL endpoint of the cover-art provider.",
    )
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    user_agent: str = Field(default="Mediadex/0.1 (+catalog import)")
    import_batch_size: int = Field(default=50, ge=1)
    import_cooldown_seconds: int = Field(default=30, ge=0)
    primary_requests_per_second: float = Field(default=3.0, gt=0)
    cover_requests_per_minute: float = Field(default=90.0, gt=0)
    season_delay_seconds: float = Field(default=0.333, ge=0)
    group_delay_seconds: float = Field(default=0.5, ge=0)
    primary_max_attempts: int = Field(default=3, ge=1)
    network_backoff_seconds: float = Field(default=1.0, ge=0)
    rate_limit_backoff_seconds: float = Field(default=2.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="MEDIADEX_",
        env_file=".env",
        env_file_encoding="utf-8",
    )
