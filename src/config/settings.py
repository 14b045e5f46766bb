# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: database location,
logging, digest supervisor pacing, task queue retry policy and chunker sizes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is missing or internally inconsistent.

    Also raised at the point of use when a required collaborator (vendor,
    search backend) was never configured. Such errors are never retried.
    """


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    db_path: Path = Path("~/.digestkit/digestkit.db")
    data_root: Path = Path("~/.digestkit/data")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str = ""
    log_rotation: str = "10MB"
    log_retention: int = 30

    # === Digest supervisor ===
    digest_max_attempts: int = 3
    digest_excluded_prefixes: str = "app,.git,node_modules,.digestkit"
    digest_concurrency: int = 1
    digest_start_delay_s: float = 3.0
    digest_idle_sleep_s: float = 1.0
    digest_file_delay_s: float = 1.0
    digest_failure_base_delay_s: float = 5.0
    digest_failure_max_delay_s: float = 60.0
    digest_stale_threshold_s: int = 600
    digest_stale_sweep_interval_s: float = 60.0
    digest_deferral_cooldown_s: float = 60.0
    digest_lock_stale_s: int = 600
    digest_lock_owner: str = "digestkit"

    # === Task queue ===
    task_poll_interval_s: float = 1.0
    task_batch_size: int = 5
    task_max_attempts: int = 3
    task_stale_timeout_s: int = 300
    task_stale_recovery_interval_s: float = 60.0
    task_retry_base_delay_s: int = 10
    task_retry_max_delay_s: int = 21600
    task_retry_jitter: float = 0.3
    task_rate_limit_per_second: float = 0.0
    task_default_timeout_s: float = 30.0

    # === Chunking ===
    chunk_target_tokens: int = 900
    chunk_max_tokens: int = 1200
    chunk_overlap_ratio: float = 0.15
    chunk_min_overlap_tokens: int = 80
    chunk_max_overlap_tokens: int = 180

    # === Vendors ===
    vendor_timeout_s: float = 30.0

    # --- Validators ---

    @field_validator("task_retry_jitter", "chunk_overlap_ratio")
    @classmethod
    def validate_fraction(cls, v: float) -> float:  # noqa: N805
        if not 0.0 <= v < 1.0:
            raise ValueError("must be within [0, 1)")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.chunk_target_tokens > self.chunk_max_tokens:
            errors.append("CHUNK_TARGET_TOKENS must be <= CHUNK_MAX_TOKENS")

        if self.chunk_min_overlap_tokens > self.chunk_max_overlap_tokens:
            errors.append(
                "CHUNK_MIN_OVERLAP_TOKENS must be <= CHUNK_MAX_OVERLAP_TOKENS"
            )

        for name in (
            "digest_max_attempts",
            "digest_concurrency",
            "task_batch_size",
            "task_max_attempts",
            "chunk_target_tokens",
        ):
            if getattr(self, name) < 1:
                errors.append(f"{name.upper()} must be >= 1")

        if self.task_retry_base_delay_s > self.task_retry_max_delay_s:
            errors.append(
                "TASK_RETRY_BASE_DELAY_S must be <= TASK_RETRY_MAX_DELAY_S"
            )

        if self.task_rate_limit_per_second < 0:
            errors.append("TASK_RATE_LIMIT_PER_SECOND must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def digest_excluded_prefixes_list(self) -> list[str]:
        """Parse comma-separated excluded path prefixes."""
        return [
            p.strip().strip("/")
            for p in self.digest_excluded_prefixes.split(",")
            if p.strip().strip("/")
        ]

    @property
    def resolved_data_root(self) -> Path:
        return Path(self.data_root).expanduser()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
