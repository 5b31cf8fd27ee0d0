"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SlotEngineError, SlotUnavailableError
from ..domain.timeutils import parse_date, time_to_minutes
from ..services.booking_service import BookingService

app = typer.Typer(
    name="salonslots",
    help="Find and book free appointment slots in a salon",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
ServiceOption = Annotated[
    List[str], typer.Option("--service", "-s", help="Service-ID (mehrfach angebbar)")
]
StaffOption = Annotated[
    Optional[str], typer.Option("--staff", help="Gewünschte Mitarbeiter-ID")
]
NowOption = Annotated[
    Optional[str], typer.Option("--now", help="Referenzzeitpunkt (ISO 8601) statt der aktuellen Zeit")
]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path]):
    """Load config and salon data and wire up the booking service."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _setup_logging(config.log_level)

    store = InMemoryBookingStore.from_json(config.get_data_file())
    service = BookingService(store, default_rules=config.booking_rules.to_domain())
    return config, store, service


def _salon_timezone(store: InMemoryBookingStore, config: AppConfig) -> str:
    """The salon's own timezone; the configured one only for unknown salons."""
    salon = store.get_salon(config.salon_id)
    return salon.timezone if salon is not None else config.timezone


def _parse_now(value: Optional[str], tz: str):
    if value is None:
        return None
    try:
        return pendulum.parse(value, tz=tz)
    except ValueError as e:
        raise typer.BadParameter(f"Ungültiger Zeitpunkt: {value} ({e})")


def _staff_names(store: InMemoryBookingStore, salon_id: str) -> Dict[str, str]:
    return {member.id: member.display_name for member in store.get_staff(salon_id)}


@app.command()
def slots(
    services: ServiceOption,
    config_file: ConfigOption = None,
    staff: StaffOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Anzahl Tage")] = None,
    now: NowOption = None,
):
    """
    List bookable slots grouped by day.

    Examples:

        salonslots slots --service svc-cut
        salonslots slots -s svc-cut -s svc-wash --staff staff-anna --days 7
    """
    try:
        config, store, service = _load(config_file)
        tz = _salon_timezone(store, config)
        start_date = parse_date(start) if start else None

        slots_by_date = service.get_available_slots(
            config.salon_id,
            services,
            staff_id=staff,
            start_date=start_date,
            days_to_fetch=days or config.days_to_fetch,
            now=_parse_now(now, tz),
        )

        console.print()
        if not slots_by_date:
            console.print(
                "[yellow]⚠ Keine freien Termine gefunden.[/yellow]\n"
                "Versuchen Sie einen längeren Zeitraum oder eine andere Mitarbeiterin."
            )
            return

        names = _staff_names(store, config.salon_id)
        total = sum(len(day_slots) for day_slots in slots_by_date.values())

        table = Table(
            title=f"{total} freie Termin(e)",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Datum", style="bold yellow")
        table.add_column("Zeit")
        table.add_column("Mitarbeiter", style="dim")

        for day_slots in slots_by_date.values():
            for slot in day_slots:
                table.add_row(
                    slot.date.format("dd, DD.MM.YYYY", locale="de"),
                    f"{slot.start_time} – {slot.end_time}",
                    names.get(slot.staff_id, slot.staff_id),
                )

        console.print(table)
        console.print()

    except FileNotFoundError as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    except (SlotEngineError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command(name="next")
def next_slot(
    services: ServiceOption,
    config_file: ConfigOption = None,
    staff: StaffOption = None,
    now: NowOption = None,
):
    """
    Show the earliest bookable slot.
    """
    try:
        config, store, service = _load(config_file)
        tz = _salon_timezone(store, config)
        slot = service.find_next_available_slot(
            config.salon_id,
            services,
            staff_id=staff,
            days_to_fetch=config.days_to_fetch,
            now=_parse_now(now, tz),
        )

        if slot is None:
            console.print("\n[yellow]⚠ Kein freier Termin gefunden.[/yellow]\n")
            raise typer.Exit(1)

        names = _staff_names(store, config.salon_id)
        console.print(Panel.fit(
            f"[bold]{slot.format_display()}[/bold]\n"
            f"Mitarbeiter: {names.get(slot.staff_id, slot.staff_id)}",
            title="Nächster freier Termin"
        ))

    except FileNotFoundError as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    except (SlotEngineError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def book(
    services: ServiceOption,
    staff: Annotated[str, typer.Option("--staff", help="Mitarbeiter-ID")],
    date: Annotated[str, typer.Option("--date", help="Datum (YYYY-MM-DD)")],
    time: Annotated[str, typer.Option("--time", help="Startzeit (HH:MM)")],
    config_file: ConfigOption = None,
    customer_id: Annotated[Optional[str], typer.Option("--customer-id", help="Bestehende Kunden-ID")] = None,
    first_name: Annotated[Optional[str], typer.Option("--first-name")] = None,
    last_name: Annotated[Optional[str], typer.Option("--last-name")] = None,
    email: Annotated[Optional[str], typer.Option("--email")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes")] = None,
    accept: Annotated[bool, typer.Option("--accept", help="AGB und Datenschutz akzeptieren")] = False,
    now: NowOption = None,
):
    """
    Reserve a slot.

    The in-memory store is loaded fresh per call, so the booking only lives
    for the duration of the command.
    """
    try:
        config, store, service = _load(config_file)
        tz = _salon_timezone(store, config)
        submission = {
            "salon_id": config.salon_id,
            "service_ids": services,
            "staff_id": staff,
            "day": parse_date(date),
            "start_minutes": time_to_minutes(time),
            "customer": {
                "customer_id": customer_id,
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "phone": phone,
                "notes": notes,
                "accepted_terms": accept,
                "accepted_privacy": accept,
            },
        }
        result = service.create_booking(
            submission,
            now=_parse_now(now, tz),
        )

        lines = [
            f"[bold green]✓ Termin {result.status.value}[/bold green]\n",
            f"[bold]Bestätigungsnummer:[/bold] {result.confirmation_number}",
            f"[bold]Beginn:[/bold] {result.starts_at.in_timezone(tz).format('DD.MM.YYYY HH:mm')}",
            f"[bold]Ende:[/bold] {result.ends_at.in_timezone(tz).format('DD.MM.YYYY HH:mm')}",
        ]
        if result.reserved_until is not None:
            lines.append(
                f"[bold]Reserviert bis:[/bold] "
                f"{result.reserved_until.in_timezone(tz).format('HH:mm')}"
            )
        console.print(Panel.fit("\n".join(lines), title="Buchung"))

    except SlotUnavailableError as e:
        console.print(f"[bold yellow]Termin nicht verfügbar:[/bold yellow] {escape(str(e))}")
        raise typer.Exit(2)

    except FileNotFoundError as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    except (SlotEngineError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
