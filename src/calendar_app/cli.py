"""
Command-line interface for the calendar application.
"""

import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from calendar_app.console import ConsoleMenu
from calendar_app.console import categories_table
from calendar_app.console import contacts_table
from calendar_app.console import events_table
from calendar_app.controller import CalendarController
from calendar_app.db import CalendarDatabase
from calendar_app.models import DEFAULT_CONFIG
from calendar_app.models import DEFAULT_DATA_FILE
from calendar_app.models import DEFAULT_DATABASE
from calendar_app.models import AppConfig
from calendar_app.models import CalendarError
from calendar_app.models import Event
from calendar_app.models import SyncStats
from calendar_app.notifications import run_clock
from calendar_app.preflight import print_issues
from calendar_app.preflight import run_preflight_checks
from calendar_app.sorting import CONTACT_SORT_OPTIONS
from calendar_app.sorting import EVENT_SORT_OPTIONS
from calendar_app.sorting import resolve_option
from calendar_app.validation import parse_date
from calendar_app.validation import parse_date_time
from calendar_app.validation import parse_offset
from calendar_app.xml_store import XMLStore

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Personal calendar: events, contacts and categories kept in an XML file "
    "and a SQLite database.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    data_file: Path | None = None
    database: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    data_file: Annotated[
        Path | None,
        typer.Option("--data-file", help=f"XML data file (default: {DEFAULT_DATA_FILE})"),
    ] = None,
    database: Annotated[
        Path | None,
        typer.Option("--database", help=f"SQLite database (default: {DEFAULT_DATABASE})"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.data_file = data_file
    state.database = database
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if "calendar-app" not in parser:
        return {}
    return dict(parser["calendar-app"])


def _build_config() -> AppConfig:
    config_file = _load_config_file(state.config_path)
    data_file = state.data_file or config_file.get("data_file") or DEFAULT_DATA_FILE
    database = state.database or config_file.get("database") or DEFAULT_DATABASE
    return AppConfig(
        data_file=Path(data_file).expanduser(),
        database=Path(database).expanduser(),
        verbose=state.verbose,
    )


def _open_controller() -> CalendarController:
    """Load the data file and reconcile it into the database."""
    cfg = _build_config()
    controller = CalendarController(XMLStore(cfg.data_file), CalendarDatabase(cfg.database))
    if not controller.init():
        console.print(
            f"[yellow]Database unavailable, working from {cfg.data_file} only.[/] "
            "Changes will be synchronized on the next successful connection."
        )
    return controller


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/] {message}")
    raise typer.Exit(1)


def _parse_or_fail(parse, value: str, label: str):
    try:
        return parse(value)
    except CalendarError as e:
        _fail(f"Invalid {label}: {e}")


def _sort_option(value: str | None, options: tuple[str, ...], default: str) -> str:
    if value is None:
        return default
    resolved = resolve_option(value, options)
    if resolved is None:
        raise typer.BadParameter(f"choose one of: {', '.join(options)}")
    return resolved


def _stats_panel(stats: SyncStats) -> Panel:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Inserted", str(stats.inserted))
    results.add_row("Updated", str(stats.updated))
    results.add_row("Unchanged", str(stats.unchanged))
    restored = Text(str(stats.restored))
    if stats.restored:
        restored.stylize("yellow")
    results.add_row("Restored", restored)
    return Panel(results, title="[bold]Results[/bold]", expand=False)


def _run(action):
    """Run a controller operation, turning calendar errors into exit code 1."""
    try:
        return action()
    except CalendarError as e:
        _fail(str(e))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None


# ---------------------------------------------------------------------------
# Interactive console
# ---------------------------------------------------------------------------


@app.command()
def menu() -> None:
    """Start the interactive numbered menu."""
    controller = _open_controller()
    ConsoleMenu(controller, console).run()


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@app.command()
def events(
    on: Annotated[
        str | None,
        typer.Option("--date", help="Only events on this day (YYYY-MM-DD or dd.mm.yyyy)"),
    ] = None,
    sort: Annotated[
        str | None,
        typer.Option("--sort", help=f"Sort by: {', '.join(EVENT_SORT_OPTIONS)}"),
    ] = None,
    detailed: Annotated[
        bool, typer.Option("--detailed", "-d", help="Show reminders, descriptions and contacts")
    ] = False,
) -> None:
    """List events."""
    sort_by = _sort_option(sort, EVENT_SORT_OPTIONS, "Date")
    controller = _open_controller()
    controller.sort_events(sort_by)
    if on is not None:
        day = _parse_or_fail(parse_date, on, "date")
        console.print(
            events_table(
                controller.get_events_by_date(day), detailed, title=f"Events on {day:%d.%m.%Y}"
            )
        )
    else:
        console.print(events_table(controller.events, detailed))


@app.command()
def contacts(
    sort: Annotated[
        str | None,
        typer.Option("--sort", help=f"Sort by: {', '.join(CONTACT_SORT_OPTIONS)}"),
    ] = None,
    detailed: Annotated[
        bool, typer.Option("--detailed", "-d", help="Show the events of each contact")
    ] = False,
) -> None:
    """List contacts."""
    sort_by = _sort_option(sort, CONTACT_SORT_OPTIONS, "First name")
    controller = _open_controller()
    controller.sort_contacts(sort_by)
    console.print(contacts_table(controller.contacts, detailed))


@app.command()
def categories() -> None:
    """List categories."""
    controller = _open_controller()
    controller.sort_categories()
    console.print(categories_table(controller.categories))


# ---------------------------------------------------------------------------
# Adding records
# ---------------------------------------------------------------------------


@app.command("add-category")
def add_category(
    name: Annotated[str, typer.Argument(help="Category name")],
    color: Annotated[str, typer.Option("--color", help="Color as #RRGGBB")] = "#FFFFFF",
) -> None:
    """Add a category."""
    controller = _open_controller()
    _run(lambda: controller.add_new_category(name, color))
    console.print(f"[green]Category {name!r} added.[/]")


@app.command("add-event")
def add_event(
    name: Annotated[str, typer.Argument(help="Event name")],
    when: Annotated[str, typer.Argument(help="Date and time as dd.mm.yyyy HH:MM")],
    notify: Annotated[
        str, typer.Option("--notify", help="Remind this long before the event (HH:MM)")
    ] = "00:00",
    location: Annotated[str, typer.Option("--location", "-l")] = "",
    description: Annotated[str, typer.Option("--description")] = "",
    category: Annotated[
        str | None, typer.Option("--category", help="Category name")
    ] = None,
    contact_ids: Annotated[
        list[int] | None,
        typer.Option("--contact", help="Contact id to attach (repeatable)"),
    ] = None,
) -> None:
    """Add an event."""
    when_dt = _parse_or_fail(parse_date_time, when, "date")
    offset = _parse_or_fail(parse_offset, notify, "notification offset")
    controller = _open_controller()

    chosen_category = None
    if category is not None:
        chosen_category = next((c for c in controller.categories if c.name == category), None)
        if chosen_category is None:
            _fail(f"No category named {category!r}")

    attached = []
    for contact_id in contact_ids or []:
        contact = controller.get_contact_by_id(contact_id)
        if contact is None:
            _fail(f"No contact with id {contact_id}")
        attached.append(contact)

    _run(
        lambda: controller.add_new_event(
            name, when_dt, offset, location, chosen_category, description, attached
        )
    )
    console.print(f"[green]Event {name!r} added for {when_dt:%d.%m.%Y %H:%M}.[/]")


@app.command("add-contact")
def add_contact(
    first_name: Annotated[str, typer.Argument(help="First name")],
    last_name: Annotated[str, typer.Argument(help="Last name")],
    phone: Annotated[str, typer.Argument(help="Phone number (9 digits)")],
    event_ids: Annotated[
        list[int] | None,
        typer.Option("--event", help="Event id to attach (repeatable)"),
    ] = None,
) -> None:
    """Add a contact."""
    controller = _open_controller()
    attached = []
    for event_id in event_ids or []:
        event = controller.get_event_by_id(event_id)
        if event is None:
            _fail(f"No event with id {event_id}")
        attached.append(event)
    _run(lambda: controller.add_new_contact(first_name, last_name, phone, attached))
    console.print(f"[green]Contact {first_name} {last_name} added.[/]")


# ---------------------------------------------------------------------------
# Deleting records
# ---------------------------------------------------------------------------

_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


@app.command("delete-event")
def delete_event(
    event_id: Annotated[int, typer.Argument(help="Event id")],
    yes: _YES = False,
) -> None:
    """Delete an event."""
    controller = _open_controller()
    event = controller.get_event_by_id(event_id)
    if event is None:
        _fail(f"No event with id {event_id}")
    if not yes:
        typer.confirm(f"Delete event {event.name!r} ({event.formatted_date})?", abort=True)
    _run(lambda: controller.delete_event(event))
    console.print("[green]Event deleted.[/]")


@app.command("delete-contact")
def delete_contact(
    contact_id: Annotated[int, typer.Argument(help="Contact id")],
    yes: _YES = False,
) -> None:
    """Delete a contact."""
    controller = _open_controller()
    contact = controller.get_contact_by_id(contact_id)
    if contact is None:
        _fail(f"No contact with id {contact_id}")
    if not yes:
        typer.confirm(f"Delete contact {contact}?", abort=True)
    _run(lambda: controller.delete_contact(contact))
    console.print("[green]Contact deleted.[/]")


@app.command("delete-category")
def delete_category(
    category_id: Annotated[int, typer.Argument(help="Category id")],
    yes: _YES = False,
) -> None:
    """Delete a category; its events are kept without a category."""
    controller = _open_controller()
    category = controller.get_category_by_id(category_id)
    if category is None:
        _fail(f"No category with id {category_id}")
    if not yes:
        typer.confirm(f"Delete category {category.name!r}?", abort=True)
    _run(lambda: controller.delete_category(category))
    console.print("[green]Category deleted.[/]")


@app.command()
def purge(
    before: Annotated[
        str, typer.Option("--before", help="Delete events dated before this day")
    ],
    yes: _YES = False,
) -> None:
    """Permanently delete every event dated before a given day."""
    day = _parse_or_fail(parse_date, before, "date")
    controller = _open_controller()
    old = [e for e in controller.events if e.date.date() < day]
    if not old:
        console.print(f"No events before {day:%d.%m.%Y}.")
        return
    if not yes:
        typer.confirm(f"Permanently delete {len(old)} event(s)?", abort=True)

    removed = _run(lambda: controller.delete_old_events(day))
    console.print(f"[green]Deleted {removed} event(s).[/]")


# ---------------------------------------------------------------------------
# Store maintenance
# ---------------------------------------------------------------------------


@app.command()
def sync() -> None:
    """Reconcile the data file into the database and rewrite the file."""
    cfg = _build_config()
    controller = CalendarController(XMLStore(cfg.data_file), CalendarDatabase(cfg.database))
    controller.init()
    if not controller.database_synchronized:
        _fail(f"Could not synchronize with {cfg.database}; see the log above.")
    console.print(_stats_panel(controller.last_sync))


@app.command()
def status() -> None:
    """Show configuration, store health and record counts."""
    cfg = _build_config()
    config_exists = state.config_path.exists()
    data_exists = cfg.data_file.exists()
    db_exists = cfg.database.exists()

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(str(state.config_path) + " ")
    info.append("✓" if config_exists else "(not found)", style="green" if config_exists else "dim")
    info.append("\n  Data file: ", style="bold")
    info.append(str(cfg.data_file) + " ")
    info.append("✓" if data_exists else "(not found)", style="green" if data_exists else "yellow")
    info.append("\n  Database:  ", style="bold")
    info.append(str(cfg.database) + " ")
    info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    console.print(Panel(info, title="[bold]Calendar — Status[/bold]"))

    issues = run_preflight_checks(cfg)
    if issues:
        print_issues(issues, console)
        raise typer.Exit(1)

    counts = Table(show_header=True, header_style="bold cyan")
    counts.add_column("Store", style="bold")
    counts.add_column("Categories", justify="right")
    counts.add_column("Events", justify="right")
    counts.add_column("Contacts", justify="right")

    snapshot = XMLStore(cfg.data_file).load()
    if snapshot is not None:
        counts.add_row(
            "Data file",
            str(len(snapshot.categories)),
            str(len(snapshot.events)),
            str(len(snapshot.contacts)),
        )
    if db_exists:
        try:
            db_counts = CalendarDatabase(cfg.database).counts()
        except CalendarError as e:
            _fail(str(e))
        counts.add_row(
            "Database",
            str(db_counts["categories"]),
            str(db_counts["events"]),
            str(db_counts["contacts"]),
        )
    if counts.row_count:
        console.print(counts)
    else:
        console.print(
            "[yellow]No data yet — run[/] [cyan]calendar-app menu[/] [yellow]to add some.[/]"
        )


@app.command()
def inspect(
    file: Annotated[Path, typer.Argument(help="XML data file to read", exists=True)],
    detailed: Annotated[bool, typer.Option("--detailed", "-d")] = False,
) -> None:
    """Show the contents of a data file without touching the live data."""
    try:
        snapshot = XMLStore(file).load()
    except CalendarError as e:
        _fail(str(e))
    if snapshot is None:
        console.print(f"[yellow]{file} is empty.[/]")
        return
    console.print(categories_table(snapshot.categories))
    console.print(events_table(snapshot.events, detailed))
    console.print(contacts_table(snapshot.contacts, detailed))


@app.command()
def watch(
    interval: Annotated[
        float, typer.Option("--interval", help="Seconds between clock ticks")
    ] = 1.0,
) -> None:
    """Show a running clock and announce event reminders as they come due."""
    controller = _open_controller()

    def clock_panel(now: datetime) -> Panel:
        return Panel(
            Text(now.strftime("%d.%m.%Y %H:%M:%S"), style="bold", justify="center"),
            title="[bold]Calendar clock[/bold]",
            subtitle="Ctrl-C to stop",
        )

    with Live(clock_panel(datetime.now()), console=console, transient=True) as live:

        def on_due(event: Event) -> None:
            live.console.print(
                Panel(
                    f"[bold]{event.name}[/] at {event.formatted_date}"
                    + (f"\n{event.location}" if event.location else ""),
                    title="[bold yellow]Reminder[/bold yellow]",
                    expand=False,
                )
            )

        run_clock(
            lambda: controller.events,
            lambda now: live.update(clock_panel(now)),
            on_due,
            interval=interval,
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
