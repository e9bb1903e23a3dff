"""Settings and configuration management for dbbench."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DBBENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage configuration
    home: Path = Field(
        default=Path.home() / ".dbbench",
        description="Root directory for container data, logs and configuration",
    )

    state_db: str | None = Field(
        default=None,
        description="Path to SQLite state database (defaults to <home>/state.db)",
    )

    # Logging configuration
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format (json or text)",
    )

    # Server configuration
    bind_address: str = Field(
        default="127.0.0.1",
        description="Address spawned database servers listen on",
    )

    # Lifecycle configuration
    readiness_attempts: int = Field(
        default=30,
        description="Number of readiness probe attempts before a start is reported as failed",
    )

    readiness_interval_s: float = Field(
        default=0.5,
        description="Seconds between readiness probe attempts",
    )

    stop_timeout_s: int = Field(
        default=10,
        description="Grace period in seconds before a server process is force-killed",
    )

    start_max_retries: int = Field(
        default=3,
        description="Start attempts when the server loses its port between check and bind",
    )

    command_timeout_s: int = Field(
        default=120,
        description="Timeout in seconds for buffered client-binary commands",
    )

    @property
    def containers_dir(self) -> Path:
        """Directory holding per-engine container directories."""
        return self.home / "containers"

    @property
    def config_file(self) -> Path:
        """Location of the binary configuration store."""
        return self.home / "config.json"

    @property
    def state_db_path(self) -> str:
        """Resolved path of the SQLite state database."""
        return self.state_db or str(self.home / "state.db")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
