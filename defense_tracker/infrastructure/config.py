"""
Centralized configuration management for the defense tracking application.

Provides environment-specific configuration with validation and type safety
using pydantic-settings. Each section reads its own environment prefix.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class DatabaseConfig(BaseSettings):
    """
    Database configuration settings.

    Handles both SQLite and MySQL configurations with validation
    and connection URL generation.

    Example:
        >>> db_config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")
        >>> db_config.get_connection_url()
        'sqlite:///./test.db'
    """

    backend: Literal["sqlite", "mysql"] = Field("sqlite", description="Database backend type")

    sqlite_path: str | None = Field("./defense_tracker.db", description="SQLite database file path")

    mysql_host: str | None = Field("localhost", description="MySQL host")
    mysql_port: int | None = Field(3306, ge=1, le=65535, description="MySQL port")
    mysql_user: str | None = Field("root", description="MySQL username")
    mysql_password: str | None = Field("", description="MySQL password")
    mysql_database: str | None = Field("defense_tracker", description="MySQL database name")
    mysql_charset: str = Field("utf8mb4", description="MySQL character set")

    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    pool_recycle: int = Field(3600, ge=60, description="Connection pool recycle time (seconds)")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Ensure the directory exists and the file carries a .db suffix."""
        if v and v != ":memory:":
            path = Path(v)
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def validate_mysql_config(self):
        if self.backend == "mysql":
            missing = []
            if not self.mysql_host:
                missing.append("mysql_host")
            if not self.mysql_user:
                missing.append("mysql_user")
            if not self.mysql_database:
                missing.append("mysql_database")
            if missing:
                raise ValueError(f"MySQL backend requires: {', '.join(missing)}")
        return self

    def get_connection_url(self) -> str:
        """
        Generate database connection URL.

        Raises:
            ValueError: If backend is unsupported
        """
        if self.backend == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        elif self.backend == "mysql":
            password_part = f":{self.mysql_password}" if self.mysql_password else ""
            return (
                f"mysql+pymysql://{self.mysql_user}{password_part}@{self.mysql_host}:"
                f"{self.mysql_port}/{self.mysql_database}?charset={self.mysql_charset}"
            )
        else:
            raise ValueError(f"Unsupported database backend: {self.backend}")

    def get_engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": self.echo, "future": True}
        if self.backend == "mysql":
            options.update(pool_pre_ping=self.pool_pre_ping, pool_recycle=self.pool_recycle)
        return options


class LoggingConfig(BaseSettings):
    """Logging levels, output format and file destination."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field("./logs/app.log", description="Log file path")
    max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Max log file size in bytes")
    backup_count: int = Field(5, ge=1, description="Number of backup log files")
    structured: bool = Field(True, description="Use structured JSON logging")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}


class ApplicationConfig(BaseSettings):
    """
    Main application configuration, including the approval policy switches.

    Example:
        >>> config = ApplicationConfig(require_rubric_for_approval=True)
        >>> config.require_rubric_for_approval
        True
    """

    title: str = Field("Postgraduate Defense Tracker", description="API title")
    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    version: str = Field("0.1.0", description="Application version")

    # Approval policy
    require_rubric_for_approval: bool = Field(
        False, description="Block approval of scored stages that have no published rubric"
    )
    notify_on_approve: bool = Field(True, description="Notify student and panel on approval")
    notify_on_advance: bool = Field(True, description="Notify student and panel on advancement")
    notify_on_schedule: bool = Field(
        True, description="Notify students and panel when a defence is scheduled"
    )

    cors_origins: list[str] = Field(["*"], description="Allowed CORS origins")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container with lazily loaded sections.

    Example:
        >>> settings = get_settings()
        >>> settings.database.get_connection_url()
        >>> settings.app.require_rubric_for_approval
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._database: DatabaseConfig | None = None
        self._logging: LoggingConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            level = "DEBUG" if self.app.debug else "INFO"
            if self.app.environment == "production":
                level = "WARNING"
            self._logging = LoggingConfig() if "LOG_LEVEL" in os.environ else LoggingConfig(level=level)
        return self._logging

    def is_development(self) -> bool:
        return self.app.environment == "development"

    def is_production(self) -> bool:
        return self.app.environment == "production"

    def is_testing(self) -> bool:
        return self.app.environment == "testing"

    def get_environment_info(self) -> dict[str, Any]:
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "database_backend": self.database.backend,
            "logging_level": self.logging.level,
            "policy": {
                "require_rubric_for_approval": self.app.require_rubric_for_approval,
                "notify_on_approve": self.app.notify_on_approve,
                "notify_on_advance": self.app.notify_on_advance,
                "notify_on_schedule": self.app.notify_on_schedule,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached application settings instance."""
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON file of ``{"section": {"key": value}}`` pairs.

    Each entry is exported as ``SECTION_KEY`` in the environment before the
    settings cache is rebuilt.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If file format is unsupported
    """
    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    if config_path.suffix.lower() != ".json":
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    with open(config_path) as f:
        config_data = json.load(f)

    for section, values in config_data.items():
        if isinstance(values, dict):
            for key, value in values.items():
                os.environ[f"{section.upper()}_{key.upper()}"] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()
