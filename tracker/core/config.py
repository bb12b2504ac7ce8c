"""Configuration management for the tracker."""

import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tracker.core.models import DEFAULT_PROJECT_TYPES

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class GlobalConfig(BaseSettings):
    """Global tracker configuration loaded from environment variables."""

    # Storage
    data_dir: str = Field("~/.project-tracker", alias="TRACKER_DATA_DIR")
    database_name: str = Field("tracker.db", alias="TRACKER_DATABASE_NAME")
    db_busy_timeout_ms: int = Field(5000, alias="DB_BUSY_TIMEOUT_MS")
    db_busy_retries: int = Field(3, alias="DB_BUSY_RETRIES")

    # Integration defaults surfaced to the UI
    jira_url: str = Field("https://jira.company.com/browse/", alias="JIRA_URL")
    default_email_domain: str = Field("company.com", alias="DEFAULT_EMAIL_DOMAIN")
    project_types: str = Field(",".join(DEFAULT_PROJECT_TYPES), alias="PROJECT_TYPES")

    # MCP server
    mcp_host: str = Field("127.0.0.1", alias="MCP_HOST")
    mcp_port: int = Field(8765, alias="MCP_PORT")

    # Logging configuration
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("mcp_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError(f"MCP_PORT must be between 1 and 65535, got: {v}")
        return v

    @field_validator("db_busy_timeout_ms", "db_busy_retries")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must be >= 0, got: {v}")
        return v

    @property
    def data_path(self) -> Path:
        """Expanded data directory."""
        return Path(self.data_dir).expanduser()

    @property
    def database_path(self) -> Path:
        """Full path of the SQLite database file."""
        return self.data_path / self.database_name

    def get_project_types_list(self) -> list[str]:
        """Parse project types from comma-separated string."""
        types = [t.strip() for t in self.project_types.split(",") if t.strip()]
        return types or list(DEFAULT_PROJECT_TYPES)

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.data_path.mkdir(parents=True, exist_ok=True)

        if self.log_file:
            Path(self.log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)


def load_environment(env_file: str = ".env") -> None:
    """Load environment variables from .env files.

    The per-user file in the data directory is read first, then ``env_file``
    in the current directory. Variables already set are never overridden.

    Args:
        env_file: Path to .env file (default: .env in current directory)
    """
    user_env = Path.home() / ".project-tracker" / ".env"
    if user_env.exists():
        load_dotenv(user_env)

    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Load the process-wide configuration once."""
    load_environment()
    return GlobalConfig()


def configure_logging(config: GlobalConfig, stream=None, level: Optional[str] = None) -> None:
    """Configure root logging from config.

    MCP stdio transport owns stdout, so console logs go to stderr.

    Args:
        config: Loaded configuration
        stream: Console stream (default: stderr)
        level: Overrides config.log_level when given
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, (level or config.log_level).upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
