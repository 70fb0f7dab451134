"""CLI command modules for the harvest scheduler."""

from harvest_scheduler.cli import config, preview, run
from harvest_scheduler.cli.exit_codes import ExitCode

__all__ = [
    "ExitCode",
    "config",
    "preview",
    "run",
]
