"""Tests for the harvest-scheduler command line."""

import json
import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from harvest_scheduler import __version__
from harvest_scheduler.cli.exit_codes import ExitCode
from harvest_scheduler.config import LoggingConfig
from harvest_scheduler.main import app, setup_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration lookup at an empty directory."""
    monkeypatch.setenv("HARVEST_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("HARVEST_DATA_DIR", str(tmp_path))
    for name in ("BASE_URL", "TIMEZONE", "LOG_LEVEL", "LOG_FILE", "DATABASE_URL", "JOBSTORE_URL"):
        monkeypatch.delenv(f"HARVEST_{name}", raising=False)
    yield
    logging.getLogger().handlers.clear()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_default_level(self):
        """Test the configured level is used."""
        setup_logging(LoggingConfig(level="ERROR"))

        assert logging.getLogger().level == logging.ERROR

    def test_verbose_and_debug(self):
        """Test command line flags raise the level."""
        setup_logging(LoggingConfig(level="ERROR"), verbose=True)
        assert logging.getLogger().level == logging.INFO

        setup_logging(LoggingConfig(level="ERROR"), debug=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_rotating_log_file(self, tmp_path):
        """Test a rotating file handler is added for a log file."""
        log_file = tmp_path / "logs" / "scheduler.log"

        setup_logging(LoggingConfig(max_size=1024, backup_count=2), log_file=log_file)

        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].maxBytes == 1024
        assert handlers[0].backupCount == 2
        assert log_file.parent.exists()


class TestMain:
    """Tests for the main callback."""

    def test_version(self):
        """Test --version prints the version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == ExitCode.SUCCESS
        assert __version__ in result.output

    def test_help(self):
        """Test the command overview."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "preview" in result.output
        assert "config" in result.output


class TestPreview:
    """Tests for the preview command."""

    def test_monthly_end_of_month(self):
        """Test end-of-month schedules in a leap year."""
        result = runner.invoke(
            app,
            ["preview", "--interval", "monthly", "--start-at", "2024-01-31T10:00",
             "--timezone", "UTC", "--count", "3"],
        )

        assert result.exit_code == 0, result.output
        assert "2024-01-31T10:00:00+00:00" in result.output
        assert "2024-02-29T10:00:00+00:00" in result.output
        assert "2024-03-31T10:00:00+00:00" in result.output

    def test_resume_after_last_run(self):
        """Test previews start after the last run."""
        result = runner.invoke(
            app,
            ["preview", "-i", "daily", "-s", "2024-01-10T10:30", "-l", "2024-01-15T10:30",
             "-z", "UTC", "-n", "1"],
        )

        assert result.exit_code == 0, result.output
        assert "2024-01-16T10:30:00+00:00" in result.output

    def test_unknown_interval(self):
        """Test unknown cadences are rejected."""
        result = runner.invoke(app, ["preview", "-i", "hourly", "-s", "2024-01-10T10:30"])

        assert result.exit_code == ExitCode.INVALID_ARGUMENT
        assert "Unknown interval" in result.output

    def test_invalid_date(self):
        """Test malformed dates are rejected."""
        result = runner.invoke(app, ["preview", "-i", "daily", "-s", "yesterday"])

        assert result.exit_code == ExitCode.INVALID_ARGUMENT

    def test_unknown_timezone(self):
        """Test unknown time zones are rejected."""
        result = runner.invoke(
            app, ["preview", "-i", "daily", "-s", "2024-01-10T10:30", "-z", "Mars/Olympus_Mons"]
        )

        assert result.exit_code == ExitCode.INVALID_ARGUMENT


class TestConfigCommands:
    """Tests for the config commands."""

    def test_show_json(self):
        """Test JSON output of the effective configuration."""
        result = runner.invoke(app, ["config", "show", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["webhook"]["base_url"] == "http://localhost:9130"

    def test_show_table(self):
        """Test table output of the effective configuration."""
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0, result.output
        assert "Webhook" in result.output
        assert "base_url" in result.output

    def test_validate_ok(self):
        """Test a valid configuration passes."""
        result = runner.invoke(app, ["config", "validate"])

        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_validate_errors(self, monkeypatch):
        """Test invalid configuration exits with a configuration error."""
        monkeypatch.setenv("HARVEST_BASE_URL", "not-a-url")

        result = runner.invoke(app, ["config", "validate"])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        assert "webhook.base_url" in result.output


class TestRunCommand:
    """Tests for the run command."""

    def test_run_starts_service(self):
        """Test run hands the loaded configuration to the service."""
        with patch("harvest_scheduler.daemon.service.run_service", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(app, ["run"])

        assert result.exit_code == 0, result.output
        mock_run.assert_awaited_once()
        assert mock_run.await_args.args[0].webhook.base_url == "http://localhost:9130"

    def test_run_rejects_invalid_config(self, monkeypatch):
        """Test run refuses to start with configuration errors."""
        monkeypatch.setenv("HARVEST_TIMEZONE", "Mars/Olympus_Mons")

        with patch("harvest_scheduler.daemon.service.run_service", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(app, ["run"])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        mock_run.assert_not_awaited()
