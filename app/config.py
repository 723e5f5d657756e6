from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Workforce Signal"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Providers
    firecrawl_api_key: str | None = None
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    classifier_api_key: str | None = None
    classifier_base_url: str | None = None
    classifier_model: str = "gpt-4o-mini"
    classifier_temperature: float = 0.0
    request_timeout_seconds: float = 30.0

    # Ingestion runtime
    workforce_signal_mode: str = "fixture"
    fixture_dir: str = "fixtures/pages"
    sources_config_path: str | None = None
    inter_source_delay_seconds: float = 2.0
    extraction_max_chars: int = 15_000

    # Reconciliation
    lookback_days: int = 60
    candidate_limit: int = 5
    auto_verify_threshold: int = 90
    merge_conflict_retries: int = 3
    company_name_matching: str = "exact"

    # Security
    cors_origins: list[str] = []

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_namespace: str = "workforce_signal"
    metrics_disable: bool = False

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
