# src/config/settings.py
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Environment
variables use the ``REPROSTORE_`` prefix (e.g. ``REPROSTORE_DATA_DIR``).
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
        env_prefix="REPROSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    data_dir: Path = Path("./data")

    # === Repository ===
    repository_backend: Literal["sqlite", "memory"] = "sqlite"
    database_filename: str = "reprostore.db"

    # === Uploads ===
    max_upload_size_mb: int = 500

    # === Staging sweep ===
    staging_max_age_hours: float = 1.0
    staging_sweep_interval_minutes: float = 0.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("max_upload_size_mb")
    @classmethod
    def validate_upload_size(cls, v: int) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError("max_upload_size_mb must be > 0")
        return v

    @field_validator("staging_sweep_interval_minutes")
    @classmethod
    def validate_sweep_interval(cls, v: float) -> float:  # noqa: N805
        """0 disables the periodic sweep (startup sweep still runs)."""
        if v < 0:
            raise ValueError("staging_sweep_interval_minutes must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.staging_max_age_hours <= 0:
            errors.append("STAGING_MAX_AGE_HOURS must be > 0")

        if self.repository_backend == "sqlite" and not self.database_filename.strip():
            errors.append("DATABASE_FILENAME is required for the sqlite backend")

        if "/" in self.database_filename or "\\" in self.database_filename:
            errors.append("DATABASE_FILENAME must be a bare file name")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def staging_max_age_seconds(self) -> float:
        return self.staging_max_age_hours * 3600.0

    @property
    def database_path(self) -> Path:
        """Absolute path of the sqlite database under the data directory."""
        return self.data_dir.expanduser() / self.database_filename


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off CLI runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
