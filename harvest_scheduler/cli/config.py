"""harvest-scheduler config command - Configuration inspection."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from harvest_scheduler.cli.exit_codes import ExitCode

app = typer.Typer(help="Inspect harvest scheduler configuration.")
console = Console()

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)


@app.command("show")
def show_config(
    config_file: Optional[Path] = _CONFIG_OPTION,
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, json).",
    ),
) -> None:
    """Show the effective configuration.

    Example:
        harvest-scheduler config show
        harvest-scheduler config show --format json
    """
    from harvest_scheduler.config import config_to_dict, export_config_json, load_config

    config = load_config(config_file)

    if format == "json":
        typer.echo(export_config_json(config))
        return
    if format != "table":
        console.print(f"[red]Unknown format: {format}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    data = config_to_dict(config)
    console.print("[bold]Harvest Scheduler Configuration[/bold]")
    console.print()

    general = Table(title="General")
    general.add_column("Key", style="cyan")
    general.add_column("Value")
    for key in ("config_dir", "data_dir", "database_url"):
        general.add_row(key, str(data[key]))
    console.print(general)
    console.print()

    for section in ("webhook", "scheduler", "logging"):
        table = Table(title=section.capitalize())
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key, value in data[section].items():
            table.add_row(key, "[dim]not set[/dim]" if value is None else str(value))
        console.print(table)
        console.print()


@app.command("validate")
def validate(config_file: Optional[Path] = _CONFIG_OPTION) -> None:
    """Validate the effective configuration.

    Exits with a configuration error code if any check fails.

    Example:
        harvest-scheduler config validate
    """
    from harvest_scheduler.config import load_config, validate_config

    config = load_config(config_file)

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    all_passed = True
    for error in validate_config(config):
        if error.severity == "error":
            status = "[red]✗[/red]"
            all_passed = False
        else:
            status = "[yellow]![/yellow]"
        console.print(f"  {status} {error}")

    console.print()
    if all_passed:
        console.print("[green]Configuration is valid[/green]")
    else:
        console.print("[red]Configuration has errors[/red]")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)
