"""
Main CLI application using Typer.
"""

import logging
from datetime import date, time
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..adapters.mock_repository import MockScheduleRepository
from ..adapters.supabase_repository import SupabaseRepository
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulingError
from ..domain.models import BLOCK_TYPES
from ..services.admin import ScheduleAdminService
from ..services.availability import AvailabilityService, ScheduleRepositoryProtocol
from ..services.booking import BookingService, generate_confirmation_number

app = typer.Typer(
    name="bookingslots",
    help="Check availability and manage bookings for the practice",
    add_completion=False
)

console = Console()

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use the bundled JSON schedule instead of the hosted database."),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        # Mock mode works without any configuration
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_repository(config: AppConfig, mock: bool) -> ScheduleRepositoryProtocol:
    if mock:
        return MockScheduleRepository.from_json_file(
            config.mock_data_file,
            fallback_timezone=config.timezone,
        )

    if not config.data_source.is_configured():
        raise ValueError(
            "data_source.url and data_source.api_key must be set in the config file "
            "(or use --mock)."
        )

    return SupabaseRepository(
        url=config.data_source.url,
        api_key=config.data_source.api_key,
        timeout=config.data_source.timeout_seconds,
        fallback_timezone=config.timezone,
    )


def _setup(config_file: Optional[Path], mock: bool):
    config = _load_config(config_file, mock)
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using bundled schedule data[/yellow]\n")
    return config, _build_repository(config, mock)


def _parse_date(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid time '{value}', expected HH:MM") from e


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(1)


@app.command()
def slots(
    day: Annotated[str, typer.Argument(help="Date to check (YYYY-MM-DD)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
    available_only: Annotated[bool, typer.Option("--available-only", "-a", help="Hide slots that cannot be booked.")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the slot grid for a day.

    Examples:

        bookingslots slots 2026-10-21 --mock
        bookingslots slots 2026-10-21 --duration 90 --available-only
    """
    try:
        config, repository = _setup(config_file, mock)
        requested_day = _parse_date(day)
        minutes = duration if duration is not None else config.default_duration_minutes

        service = AvailabilityService(repository=repository)
        result = service.get_time_slots(requested_day, minutes, only_available=available_only)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not result:
        console.print(
            f"[yellow]⚠ No slots on {requested_day.isoformat()}.[/yellow]\n"
            "The practice may be closed that day."
        )
        return

    bookable = sum(1 for slot in result if slot.available)
    console.print(
        f"[bold green]✓ {bookable} of {len(result)} slot(s) bookable "
        f"for a {minutes}-minute service:[/bold green]\n"
    )
    for slot in result:
        marker = "[green]●[/green]" if slot.available else "[dim]○[/dim]"
        style = "" if slot.available else "[dim]"
        console.print(f"  {marker} {style}{slot.format_display()}")
    console.print()


@app.command()
def hours(
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List the active business hours.
    """
    try:
        _, repository = _setup(config_file, mock)
        rows = repository.get_business_hours()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No business hours configured.[/yellow]")
        return

    table = Table(title="Business hours", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("Opens")
    table.add_column("Closes")

    for row in rows:
        table.add_row(
            WEEKDAY_NAMES[row.day_of_week],
            row.start_time.strftime("%H:%M"),
            row.end_time.strftime("%H:%M"),
        )

    console.print()
    console.print(table)
    console.print()


@app.command("set-hours")
def set_hours(
    day_of_week: Annotated[int, typer.Argument(help="Weekday, 0=Sunday ... 6=Saturday")],
    opens: Annotated[str, typer.Argument(help="Opening time (HH:MM)")],
    closes: Annotated[str, typer.Argument(help="Closing time (HH:MM)")],
    closed: Annotated[bool, typer.Option("--closed", help="Mark the day as closed.")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Set the opening hours of one weekday.
    """
    try:
        _, repository = _setup(config_file, mock)
        stored = ScheduleAdminService(repository).update_business_hours(
            day_of_week=day_of_week,
            start_time=_parse_time(opens),
            end_time=_parse_time(closes),
            is_active=not closed,
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    state = "closed" if not stored.is_active else (
        f"{stored.start_time.strftime('%H:%M')} - {stored.end_time.strftime('%H:%M')}"
    )
    console.print(f"[green]✓ {WEEKDAY_NAMES[stored.day_of_week]}: {state}[/green]")


@app.command()
def block(
    title: Annotated[str, typer.Argument(help="Label shown in the admin calendar")],
    start: Annotated[str, typer.Argument(help="Start (YYYY-MM-DD HH:MM, business timezone)")],
    end: Annotated[str, typer.Argument(help="End (YYYY-MM-DD HH:MM, business timezone)")],
    block_type: Annotated[str, typer.Option("--type", "-t", help=f"One of: {', '.join(BLOCK_TYPES)}")] = "personal",
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Block a period so nobody can book it.
    """
    try:
        config, repository = _setup(config_file, mock)
        settings = repository.get_appointment_settings()
        tz = settings.timezone if settings else config.timezone
        stored = ScheduleAdminService(repository).create_time_block(
            title=title,
            start=pendulum.parse(start, tz=tz),
            end=pendulum.parse(end, tz=tz),
            block_type=block_type,
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Blocked {stored.time_range} ({stored.block_type}), id {stored.id}[/green]")


@app.command()
def unblock(
    block_id: Annotated[str, typer.Argument(help="Id of the time block to remove")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Remove a time block.
    """
    try:
        _, repository = _setup(config_file, mock)
        ScheduleAdminService(repository).delete_time_block(block_id)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Time block {block_id} removed.[/green]")


@app.command()
def book(
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Slot start (HH:MM)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
    service_id: Annotated[Optional[str], typer.Option("--service", help="Service id")] = None,
    client_id: Annotated[Optional[str], typer.Option("--client", help="Client id")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes for the therapist")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book a slot after checking it is still free.
    """
    try:
        config, repository = _setup(config_file, mock)
        minutes = duration if duration is not None else config.default_duration_minutes
        appointment = BookingService(repository).book_appointment(
            _parse_date(day),
            _parse_time(start),
            minutes,
            service_id=service_id,
            client_id=client_id,
            notes=notes,
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"[bold green]✓ Booked {appointment.appointment_date.isoformat()} "
        f"{appointment.start_time.strftime('%H:%M')} - {appointment.end_time.strftime('%H:%M')}[/bold green]\n"
        f"  Appointment id: {appointment.id}\n"
        f"  Confirmation:   {generate_confirmation_number()}"
    )


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Id of the appointment")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Cancel an appointment (respects the cancellation cut-off).
    """
    try:
        _, repository = _setup(config_file, mock)
        BookingService(repository).cancel_appointment(appointment_id)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Appointment {appointment_id} cancelled.[/green]")


@app.command()
def reschedule(
    appointment_id: Annotated[str, typer.Argument(help="Id of the appointment")],
    day: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="New slot start (HH:MM)")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Move an appointment to another slot, keeping its length.
    """
    try:
        _, repository = _setup(config_file, mock)
        moved = BookingService(repository).reschedule_appointment(
            appointment_id, _parse_date(day), _parse_time(start)
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"[green]✓ Appointment {appointment_id} moved to {moved.appointment_date.isoformat()} "
        f"{moved.start_time.strftime('%H:%M')}[/green]"
    )


@app.command()
def settings(
    buffer: Annotated[Optional[int], typer.Option("--buffer", help="Buffer minutes around appointments")] = None,
    advance_days: Annotated[Optional[int], typer.Option("--advance-days", help="How far ahead clients may book")] = None,
    notice_hours: Annotated[Optional[int], typer.Option("--notice-hours", help="Minimum notice for a booking")] = None,
    cutoff_hours: Annotated[Optional[int], typer.Option("--cutoff-hours", help="Cancellation cut-off")] = None,
    timezone: Annotated[Optional[str], typer.Option("--timezone", help="Business timezone (IANA name)")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the appointment settings, or update them when options are given.
    """
    changes = {
        key: value
        for key, value in {
            "buffer_time_minutes": buffer,
            "advance_booking_days": advance_days,
            "minimum_notice_hours": notice_hours,
            "cancellation_cutoff_hours": cutoff_hours,
            "timezone": timezone,
        }.items()
        if value is not None
    }

    try:
        _, repository = _setup(config_file, mock)
        if changes:
            current = ScheduleAdminService(repository).update_appointment_settings(**changes)
        else:
            current = repository.get_appointment_settings()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if current is None:
        console.print("[yellow]No appointment settings configured.[/yellow]")
        return

    table = Table(title="Appointment settings", show_header=False)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    table.add_row("Buffer", f"{current.buffer_time_minutes} min")
    table.add_row("Advance booking", f"{current.advance_booking_days} days")
    table.add_row("Minimum notice", f"{current.minimum_notice_hours} h")
    table.add_row("Cancellation cut-off", f"{current.cancellation_cutoff_hours} h")
    table.add_row("Timezone", current.timezone)

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    console.print(f"\n[bold cyan]bookingslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
