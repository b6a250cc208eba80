"""Configuration management for the Copilot metrics forwarder."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NAMESPACE = "github.copilot"


class Settings(BaseSettings):
    """Invocation settings, read once from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Logging
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # GitHub
    github_token: str = Field(min_length=1)
    github_enterprise_id: str = Field(min_length=1)
    github_team_slugs: Optional[str] = Field(
        default=None,
        description="Comma-separated list of team slugs to process",
    )
    github_api_url: str = Field(default="https://api.github.com")
    github_metrics_lookback_days: int = Field(default=1, ge=1, le=28)
    mock_github_api: Optional[str] = Field(
        default=None,
        description="Any value makes the fetch layer return fixture data",
    )

    # Datadog
    datadog_api_key: str = Field(min_length=1)
    datadog_metric_namespace: str = Field(default=DEFAULT_NAMESPACE)
    datadog_site: str = Field(default="datadoghq.eu")
    datadog_batch_size: int = Field(default=100, ge=1)

    # Pipeline
    skip_enterprise_metrics: Optional[str] = Field(
        default=None,
        description="Any value skips the enterprise scope",
    )
    submit_max_attempts: int = Field(default=3, ge=1, le=10)
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    scope_timeout_seconds: float = Field(default=120.0, gt=0)
    scope_concurrency: int = Field(default=1, ge=1)

    @field_validator("datadog_metric_namespace", mode="before")
    @classmethod
    def validate_namespace(cls, v):
        # An empty override falls back to the default namespace
        if v is None or not str(v).strip():
            return DEFAULT_NAMESPACE
        namespace = str(v).strip().strip(".")
        if " " in namespace or ":" in namespace:
            raise ValueError("metric namespace must not contain spaces or colons")
        return namespace

    @field_validator("github_api_url", mode="before")
    @classmethod
    def validate_github_api_url(cls, v):
        return str(v).rstrip("/")

    @property
    def skip_enterprise(self) -> bool:
        """True when SKIP_ENTERPRISE_METRICS is set to any value."""
        return self.skip_enterprise_metrics is not None

    @property
    def use_mock_github(self) -> bool:
        """True when MOCK_GITHUB_API is set to any value."""
        return self.mock_github_api is not None

    def get_team_slugs(self) -> List[str]:
        """Parse team slugs from config, keeping their configured order."""
        if not self.github_team_slugs:
            return []
        return [s.strip() for s in self.github_team_slugs.split(",") if s.strip()]

    def get_datadog_series_url(self) -> str:
        """Datadog v2 series intake URL for the configured site."""
        return f"https://api.{self.datadog_site}/api/v2/series"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
