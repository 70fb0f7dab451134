"""Main CLI entry point for the harvest scheduler."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from harvest_scheduler import __app_name__, __version__
from harvest_scheduler.cli import config, preview, run
from harvest_scheduler.cli.exit_codes import ExitCode
from harvest_scheduler.config import LOG_LEVELS, LoggingConfig

# Create the main Typer app
app = typer.Typer(
    name=__app_name__,
    help="Harvest scheduler - Periodic and on-demand usage statistics harvesting.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Console for CLI output
console = Console()

# Register commands
app.add_typer(run.app, name="run")
app.add_typer(config.app, name="config")
app.command("preview")(preview.preview)

# Global state for CLI options
_global_state: dict[str, bool] = {
    "verbose": False,
    "debug": False,
}
_log_file: dict[str, Optional[Path]] = {"path": None}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def setup_logging(
    logging_config: Optional[LoggingConfig] = None,
    verbose: bool = False,
    debug: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """Set up the root logger.

    The console level comes from the configuration unless ``--verbose`` or
    ``--debug`` raise it. A log file (from the command line, else from the
    configuration) is rotated and always receives DEBUG records.

    Args:
        logging_config: Logging configuration (default: WARNING to stderr)
        verbose: Enable INFO level logging
        debug: Enable DEBUG level logging
        log_file: Log file overriding the configured one
    """
    logging_config = logging_config or LoggingConfig(level="WARNING")

    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif logging_config.level.upper() in LOG_LEVELS:
        level = getattr(logging, logging_config.level.upper())
    else:
        level = logging.INFO

    if debug:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    else:
        format_str = logging_config.format

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    handlers.append(console_handler)

    log_file = log_file or _log_file["path"] or logging_config.file
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=logging_config.max_size,
            backupCount=logging_config.backup_count,
        )
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        format=format_str,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    # APScheduler reports every job submission at INFO
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}, file={log_file}")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging).",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """Harvest scheduler - Periodic and on-demand usage statistics harvesting.

    [bold]Commands:[/bold]

    • [cyan]run[/cyan] - Start the scheduler service
    • [cyan]preview[/cyan] - Show upcoming fire times of a periodic configuration
    • [cyan]config[/cyan] - Inspect configuration

    [bold]Examples:[/bold]

        harvest-scheduler run
        harvest-scheduler preview --interval monthly --start-at 2024-01-31T10:00
        harvest-scheduler config validate
    """
    _global_state["verbose"] = verbose
    _global_state["debug"] = debug
    _log_file["path"] = log_file

    setup_logging(verbose=verbose, debug=debug, log_file=log_file)

    logger = logging.getLogger(__name__)
    logger.debug(f"{__app_name__} v{__version__} starting")


def get_global_option(name: str) -> bool:
    """Get the value of a global CLI option (verbose, debug)."""
    return _global_state.get(name, False)


__all__ = [
    "app",
    "console",
    "get_global_option",
    "setup_logging",
]


if __name__ == "__main__":
    app()
