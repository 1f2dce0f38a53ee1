# src/matchpro/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Object cache ===
    cache_enabled: bool = True
    cache_backend: Literal["memory", "local", "sqlite", "redis", "s3"] = "local"
    cache_root: Path = Path("~/.matchpro/cache")
    cache_redis_url: str = ""
    cache_s3_bucket: str = ""
    cache_s3_prefix: str = "cache/"
    cache_s3_region: str = ""
    cache_s3_endpoint_url: str = ""
    schema_version: str = "v2"

    # === Compute workflow ===
    workflow_url: str = ""
    workflow_api_key: str = ""
    workflow_user: str = "MatchPro User"
    compute_timeout_s: float = 60.0

    # === Batch ===
    batch_concurrency_limit: int = 3
    retry_max_retries: int = 2
    retry_base_delay_s: float = 1.0
    retry_backoff_factor: float = 2.0
    single_flight_enabled: bool = True

    # === Client progress ===
    progress_store_path: Path = Path(
        "~/.matchpro/progress/batch-match-metadata.json"
    )

    # === API server ===
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("batch_concurrency_limit")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("batch_concurrency_limit must be >= 1")
        return v

    @field_validator("compute_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("compute_timeout_s must be > 0")
        return v

    @field_validator("retry_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("retry_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_backend == "s3" and not self.cache_s3_bucket:
            errors.append("CACHE_BACKEND=s3 requires CACHE_S3_BUCKET")

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if self.workflow_api_key and not self.workflow_url:
            errors.append("WORKFLOW_API_KEY is set but WORKFLOW_URL is empty")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def workflow_configured(self) -> bool:
        """Whether the HTTP compute workflow can be called."""
        return bool(self.workflow_url and self.workflow_api_key)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
