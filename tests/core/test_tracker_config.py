"""Tests for tracker configuration and logging setup."""

import logging
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from tracker.core.config import GlobalConfig, configure_logging, load_environment

pytestmark = pytest.mark.unit

ENV_VARS = (
    "TRACKER_DATA_DIR",
    "TRACKER_DATABASE_NAME",
    "DB_BUSY_TIMEOUT_MS",
    "DB_BUSY_RETRIES",
    "JIRA_URL",
    "DEFAULT_EMAIL_DOMAIN",
    "PROJECT_TYPES",
    "MCP_HOST",
    "MCP_PORT",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run each test without tracker env vars or a local .env file."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestGlobalConfig:
    """Environment-backed settings."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = GlobalConfig()
        assert config.database_name == "tracker.db"
        assert config.default_email_domain == "company.com"
        assert config.mcp_host == "127.0.0.1"
        assert config.mcp_port == 8765
        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.get_project_types_list() == ["Personal", "Team", "Company"]

    def test_env_overrides(self, monkeypatch, tmp_path):
        """Environment variables override defaults."""
        monkeypatch.setenv("TRACKER_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("JIRA_URL", "https://jira.example.com/browse/")
        monkeypatch.setenv("DB_BUSY_RETRIES", "5")
        config = GlobalConfig()
        assert config.database_path == tmp_path / "data" / "tracker.db"
        assert config.jira_url == "https://jira.example.com/browse/"
        assert config.db_busy_retries == 5

    def test_data_dir_expands_home(self):
        """A leading ~ expands to the home directory."""
        config = GlobalConfig(TRACKER_DATA_DIR="~/somewhere")
        assert config.data_path == Path.home() / "somewhere"

    def test_project_types_parsing(self, monkeypatch):
        """PROJECT_TYPES is comma separated; blanks are dropped."""
        monkeypatch.setenv("PROJECT_TYPES", " Research, Ops ,,")
        assert GlobalConfig().get_project_types_list() == ["Research", "Ops"]

    def test_empty_project_types_fall_back(self, monkeypatch):
        """An empty list falls back to the defaults."""
        monkeypatch.setenv("PROJECT_TYPES", " , ")
        assert GlobalConfig().get_project_types_list() == ["Personal", "Team", "Company"]

    def test_log_level_normalized(self, monkeypatch):
        """Log level is upper-cased."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert GlobalConfig().log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch):
        """Unknown log levels are rejected."""
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            GlobalConfig()

    def test_invalid_port(self, monkeypatch):
        """Ports outside 1-65535 are rejected."""
        monkeypatch.setenv("MCP_PORT", "70000")
        with pytest.raises(ValidationError):
            GlobalConfig()

    def test_negative_retries(self, monkeypatch):
        """Retry count cannot be negative."""
        monkeypatch.setenv("DB_BUSY_RETRIES", "-1")
        with pytest.raises(ValidationError):
            GlobalConfig()

    def test_ensure_directories(self, tmp_path):
        """Data and log directories are created."""
        config = GlobalConfig(
            TRACKER_DATA_DIR=str(tmp_path / "data"),
            LOG_FILE=str(tmp_path / "logs" / "tracker.log"),
        )
        config.ensure_directories()
        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "logs").is_dir()


class TestLoadEnvironment:
    """.env loading."""

    def test_loads_local_env_file(self, tmp_path):
        """Variables from ./.env become visible to GlobalConfig."""
        (tmp_path / ".env").write_text("DEFAULT_EMAIL_DOMAIN=example.org\n")
        load_environment()
        try:
            assert GlobalConfig().default_email_domain == "example.org"
        finally:
            os.environ.pop("DEFAULT_EMAIL_DOMAIN", None)

    def test_does_not_override_existing(self, monkeypatch, tmp_path):
        """Variables already set win over the file."""
        monkeypatch.setenv("DEFAULT_EMAIL_DOMAIN", "set.example")
        (tmp_path / ".env").write_text("DEFAULT_EMAIL_DOMAIN=file.example\n")
        load_environment()
        assert GlobalConfig().default_email_domain == "set.example"


class TestConfigureLogging:
    """Root logger setup."""

    def test_level_and_file_handler(self, tmp_path):
        """Configured level applies and a file handler is attached."""
        log_file = tmp_path / "logs" / "tracker.log"
        config = GlobalConfig(LOG_LEVEL="DEBUG", LOG_FILE=str(log_file))
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        try:
            configure_logging(config)
            assert root.level == logging.DEBUG
            assert any(isinstance(h, logging.FileHandler) for h in root.handlers)
            logging.getLogger("tracker.test").debug("hello")
            for handler in root.handlers:
                handler.flush()
            assert "hello" in log_file.read_text()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved[1]
            root.setLevel(saved[0])

    def test_level_override(self):
        """An explicit level wins over the config."""
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        try:
            configure_logging(GlobalConfig(LOG_LEVEL="DEBUG"), level="WARNING")
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved[1]
            root.setLevel(saved[0])
