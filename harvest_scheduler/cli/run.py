"""harvest-scheduler run command - Start the scheduler service."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from harvest_scheduler.cli.exit_codes import ExitCode

app = typer.Typer(help="Start the harvest scheduler service.")
console = Console()


@app.callback(invoke_without_command=True)
def run(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Start the harvest scheduler in the foreground.

    The service reinstalls the recurring job of every stored periodic
    configuration and runs until interrupted (SIGINT/SIGTERM).

    Example:
        harvest-scheduler run
        harvest-scheduler --verbose run --config config.toml
    """
    if ctx.invoked_subcommand is not None:
        return

    from harvest_scheduler.config import load_config, validate_config
    from harvest_scheduler.daemon.service import run_service
    from harvest_scheduler.main import get_global_option, setup_logging

    config = load_config(config_file)

    errors = [e for e in validate_config(config) if e.severity == "error"]
    if errors:
        for error in errors:
            console.print(f"[red]{error}[/red]")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)

    setup_logging(
        config.logging,
        verbose=get_global_option("verbose"),
        debug=get_global_option("debug"),
    )

    console.print("[bold green]Starting harvest scheduler...[/bold green]")
    console.print(f"  Start interface: {config.webhook.base_url}{config.webhook.start_path}")
    console.print(f"  Database: {config.database_url}")
    console.print(f"  Job store: {config.scheduler.jobstore_url or 'memory'}")

    try:
        asyncio.run(run_service(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(code=ExitCode.CANCELLED)
    except Exception as e:
        logging.exception("Scheduler service error")
        console.print(f"[red]Scheduler service error: {e}[/red]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)
