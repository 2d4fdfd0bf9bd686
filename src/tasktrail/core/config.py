# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TASKTRAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Database
    db_path: Path = Path("tasktrail.db")
    auto_migrate: bool = True

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_workers: int = 1
    api_keys: list[str] = []
    cors_origins: list[str] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v: object) -> list[str]:
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v if isinstance(v, list) else []

    @field_validator("api_keys", mode="before")
    @classmethod
    def _parse_api_keys(cls, v: object) -> list[str]:
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v if isinstance(v, list) else []

    # Read views
    reference_timezone: str = "UTC"
    feed_default_limit: int = 50
    feed_max_limit: int = 100
    timeline_default_limit: int = 100
    timeline_max_limit: int = 500
    query_max_limit: int = 1000

    # Access verification
    access_allow_unregistered: bool = False

    # Ingestion channel
    channel_max_queue: int = 10_000
    channel_dead_letter_limit: int = 1_000
    audit_log_dir: str = ""

    # Aggregation
    aggregation_enabled: bool = True
    aggregation_interval_seconds: float = 300.0
    aggregation_periods: list[str] = ["hour", "day"]

    @field_validator("aggregation_periods", mode="before")
    @classmethod
    def _parse_aggregation_periods(cls, v: object) -> list[str]:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v if isinstance(v, list) else []

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


def get_settings() -> Settings:
    return Settings()
