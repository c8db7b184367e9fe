"""Application configuration using Pydantic BaseSettings."""

import logging
from pathlib import Path

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".forgecraft"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    # Storage locations
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, alias="FORGECRAFT_DATA_DIR")
    database_url: str = Field(default="", alias="DATABASE_URL")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local API server (consumed by the desktop UI)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8765, alias="PORT")
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # Inference binary (stable-diffusion.cpp)
    sd_binary_path: Path | None = Field(default=None, alias="SD_BINARY_PATH")
    models_dir: Path | None = Field(default=None, alias="MODELS_DIR")

    # Queue processor
    poll_interval_seconds: float = Field(default=0.1, gt=0, alias="POLL_INTERVAL_SECONDS")
    remove_background: bool = Field(default=False, alias="REMOVE_BACKGROUND")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def resolved_sd_binary_path(self) -> Path:
        """Binary location, defaulting to the path the setup wizard installs to."""
        return self.sd_binary_path or self.data_dir / "services" / "sd-cpp" / "bin" / "sd"

    @property
    def resolved_models_dir(self) -> Path:
        return self.models_dir or self.data_dir / "models"

    @model_validator(mode="after")
    def derive_database_url(self) -> "Settings":
        """Point DATABASE_URL at the data directory when it is not set explicitly.

        The queue and history stores live in one SQLite file so they survive
        restarts alongside the generated images.
        """
        if not self.database_url:
            self.database_url = f"sqlite+aiosqlite:///{self.data_dir / 'forgecraft.db'}"
        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
