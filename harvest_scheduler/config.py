"""
Harvest Scheduler Configuration Management.

Handles loading and validating configuration from various sources:
- Default values
- Configuration file (TOML)
- Environment variables
"""

from __future__ import annotations

import json
import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "harvest-scheduler"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "harvest-scheduler"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class WebhookConfig:
    """Configuration for the harvester's start interface."""

    base_url: str = "http://localhost:9130"
    start_path: str = "/erm-usage-harvester/start"

    # Headers carrying tenant identity and auth token
    tenant_header: str = "X-Okapi-Tenant"
    token_header: str = "X-Okapi-Token"

    timeout: float = 30.0  # seconds


@dataclass
class SchedulerConfig:
    """Configuration for the scheduler backend."""

    # Scheduler name, unique per process
    name: str = "harvest-scheduler"

    # Zone periodic configurations are evaluated in (None = system local)
    timezone: Optional[str] = None

    # Job store URL (None = in-memory job store)
    jobstore_url: Optional[str] = None

    # Reinstall the recurring jobs of all stored configurations on start
    restore_on_start: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None
    max_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class HarvestSchedulerConfig:
    """Main configuration container for the harvest scheduler."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database holding the periodic configurations
    database_url: str = ""

    def __post_init__(self):
        """Initialize derived values."""
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/harvest_scheduler.db"


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "HARVEST_"
) -> HarvestSchedulerConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/harvest-scheduler/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = HarvestSchedulerConfig()
    default_database_url = config.database_url

    # Determine config file path
    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    # Override with environment variables
    config = _load_from_env(config, env_prefix)

    # Keep the default database inside a relocated data directory
    if config.database_url == default_database_url:
        config.database_url = f"sqlite:///{config.data_dir}/harvest_scheduler.db"

    return config


def _load_from_file(path: Path, config: HarvestSchedulerConfig) -> HarvestSchedulerConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return config

    for section in ("webhook", "scheduler", "logging"):
        section_obj = getattr(config, section)
        for key, value in data.get(section, {}).items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)
            else:
                logger.warning(f"Unknown configuration key in {path}: {section}.{key}")

    if isinstance(config.logging.file, str):
        config.logging.file = Path(config.logging.file)

    # Top-level settings
    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"])
    if "database_url" in data:
        config.database_url = data["database_url"]

    return config


def _env_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_from_env(config: HarvestSchedulerConfig, prefix: str) -> HarvestSchedulerConfig:
    """Load configuration from environment variables."""

    # Webhook settings
    if env_val := os.environ.get(f"{prefix}BASE_URL"):
        config.webhook.base_url = env_val
    if env_val := os.environ.get(f"{prefix}START_PATH"):
        config.webhook.start_path = env_val
    if env_val := os.environ.get(f"{prefix}WEBHOOK_TIMEOUT"):
        config.webhook.timeout = float(env_val)

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}SCHEDULER_NAME"):
        config.scheduler.name = env_val
    if env_val := os.environ.get(f"{prefix}TIMEZONE"):
        config.scheduler.timezone = env_val
    if env_val := os.environ.get(f"{prefix}JOBSTORE_URL"):
        config.scheduler.jobstore_url = env_val
    if env_val := os.environ.get(f"{prefix}RESTORE_ON_START"):
        config.scheduler.restore_on_start = _env_bool(env_val)

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()
    if env_val := os.environ.get(f"{prefix}LOG_FILE"):
        config.logging.file = Path(env_val)

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def _validate_url(url: str) -> bool:
    """Validate a URL format."""
    url_pattern = r"^https?://[^\s/$.?#].[^\s]*$"
    return bool(re.match(url_pattern, url))


def _validate_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def validate_config(config: HarvestSchedulerConfig) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[ValidationError] = []

    if not _validate_url(config.webhook.base_url):
        errors.append(ValidationError(
            field="webhook.base_url",
            message=f"Invalid URL format: {config.webhook.base_url}",
            severity="error"
        ))

    if not config.webhook.start_path.startswith("/"):
        errors.append(ValidationError(
            field="webhook.start_path",
            message=f"Path must start with '/': {config.webhook.start_path}",
            severity="error"
        ))

    if config.webhook.timeout <= 0:
        errors.append(ValidationError(
            field="webhook.timeout",
            message=f"Timeout must be positive: {config.webhook.timeout}",
            severity="error"
        ))

    if config.scheduler.timezone and not _validate_timezone(config.scheduler.timezone):
        errors.append(ValidationError(
            field="scheduler.timezone",
            message=f"Unknown time zone: {config.scheduler.timezone}",
            severity="error"
        ))

    if config.scheduler.jobstore_url is None:
        errors.append(ValidationError(
            field="scheduler.jobstore_url",
            message="No job store configured. Scheduled jobs will not survive restarts.",
            severity="warning"
        ))

    if config.logging.level.upper() not in LOG_LEVELS:
        errors.append(ValidationError(
            field="logging.level",
            message=f"Unknown log level: {config.logging.level}",
            severity="error"
        ))

    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning"
        ))

    return errors


def config_to_dict(config: HarvestSchedulerConfig) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert

    Returns:
        Dictionary representation with paths rendered as strings
    """
    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "webhook": {
            "base_url": config.webhook.base_url,
            "start_path": config.webhook.start_path,
            "tenant_header": config.webhook.tenant_header,
            "token_header": config.webhook.token_header,
            "timeout": config.webhook.timeout,
        },
        "scheduler": {
            "name": config.scheduler.name,
            "timezone": config.scheduler.timezone,
            "jobstore_url": config.scheduler.jobstore_url,
            "restore_on_start": config.scheduler.restore_on_start,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
            "max_size": config.logging.max_size,
            "backup_count": config.logging.backup_count,
        },
    }


def export_config_json(config: HarvestSchedulerConfig) -> str:
    """Export configuration as a JSON string."""
    return json.dumps(config_to_dict(config), indent=2)
