"""harvest-scheduler preview command - Show upcoming fire times."""

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from harvest_scheduler.cli.exit_codes import ExitCode

console = Console()


def _parse_datetime(value: str, option: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid ISO 8601 date for {option}: {value}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)


def preview(
    interval: str = typer.Option(
        ...,
        "--interval",
        "-i",
        help="Harvest cadence (daily, weekly, monthly).",
    ),
    start_at: str = typer.Option(
        ...,
        "--start-at",
        "-s",
        help="Schedule anchor as ISO 8601 date, e.g. 2024-01-31T10:00.",
    ),
    last_triggered_at: Optional[str] = typer.Option(
        None,
        "--last-triggered-at",
        "-l",
        help="Last fire time as ISO 8601 date.",
    ),
    timezone: Optional[str] = typer.Option(
        None,
        "--timezone",
        "-z",
        help="Time zone of the schedule (default: system local zone).",
    ),
    count: int = typer.Option(
        6,
        "--count",
        "-n",
        help="Number of fire times to show.",
        min=1,
        max=100,
    ),
) -> None:
    """Show when a periodic configuration would fire.

    Example:
        harvest-scheduler preview --interval monthly --start-at 2024-01-31T10:00
        harvest-scheduler preview -i weekly -s 2024-03-04T02:30 -l 2024-03-11T02:30
    """
    from zoneinfo import ZoneInfoNotFoundError

    from harvest_scheduler.scheduler.models import PeriodicConfig, PeriodicInterval
    from harvest_scheduler.scheduler.trigger_compiler import compile_trigger, resolve_timezone

    periodic_interval = PeriodicInterval.parse(interval)
    if periodic_interval is None:
        console.print(f"[red]Unknown interval: {interval}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    try:
        tz = resolve_timezone(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        console.print(f"[red]Unknown time zone: {timezone}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    config = PeriodicConfig(
        start_at=_parse_datetime(start_at, "--start-at"),
        periodic_interval=periodic_interval,
        last_triggered_at=(
            _parse_datetime(last_triggered_at, "--last-triggered-at")
            if last_triggered_at
            else None
        ),
    )

    trigger = compile_trigger("preview", config, tz)
    if trigger is None:
        console.print("[red]Configuration does not compile to a schedule[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    console.print(f"[bold]Schedule:[/bold] {trigger.expression} ({trigger.timezone})")
    console.print(f"[bold]Effective start:[/bold] {trigger.start_at.isoformat()}")
    console.print()

    table = Table(title="Upcoming Fire Times")
    table.add_column("#", style="dim")
    table.add_column("Fire Time", style="green")
    table.add_column("Weekday", style="cyan")

    for index, fire_time in enumerate(trigger.fire_times(count), start=1):
        table.add_row(str(index), fire_time.isoformat(), fire_time.strftime("%A"))

    console.print(table)
