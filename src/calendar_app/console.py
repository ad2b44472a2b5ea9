"""
Interactive console menu and the rich renderers shared with the CLI commands.
"""

import logging
from collections.abc import Callable
from collections.abc import Sequence
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from calendar_app.controller import CalendarController
from calendar_app.models import CalendarError
from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import Event
from calendar_app.models import ValidationError
from calendar_app.sorting import CONTACT_SORT_OPTIONS
from calendar_app.sorting import EVENT_SORT_OPTIONS
from calendar_app.validation import format_offset
from calendar_app.validation import format_phone
from calendar_app.validation import is_color_valid
from calendar_app.validation import parse_date
from calendar_app.validation import parse_date_time
from calendar_app.validation import parse_offset

logger = logging.getLogger(__name__)

SKIP = "skip"


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _color_swatch(color_hex: str) -> Text:
    swatch = Text("■ ", style=color_hex if is_color_valid(color_hex) else "")
    swatch.append(color_hex, style="dim")
    return swatch


def events_table(events: Sequence[Event], detailed: bool = False, title: str = "Events") -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", justify="right", width=3)
    table.add_column("Id", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Date")
    table.add_column("Location")
    table.add_column("Category")
    if detailed:
        table.add_column("Notify at")
        table.add_column("Description", overflow="fold")
        table.add_column("Contacts")
    for i, event in enumerate(events, 1):
        if event.category is not None:
            category = Text(event.category.name, style=event.category.color_hex
                            if is_color_valid(event.category.color_hex) else "")
        else:
            category = Text("No category", style="dim")
        row = [
            str(i),
            str(event.id),
            event.name,
            event.formatted_date,
            event.location or Text("No location", style="dim"),
            category,
        ]
        if detailed:
            row += [
                f"{event.formatted_notify_at} ({format_offset(event.notify_offset)} before)",
                event.description or Text("No description", style="dim"),
                "\n".join(str(c) for c in event.contacts) or Text("—", style="dim"),
            ]
        table.add_row(*row)
    return table


def contacts_table(contacts: Sequence[Contact], detailed: bool = False) -> Table:
    table = Table(title="Contacts", show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", justify="right", width=3)
    table.add_column("Id", style="dim", justify="right")
    table.add_column("First name", style="bold")
    table.add_column("Last name", style="bold")
    table.add_column("Phone number")
    if detailed:
        table.add_column("Events")
    for i, contact in enumerate(contacts, 1):
        row = [str(i), str(contact.id), contact.first_name, contact.last_name, contact.phone_number]
        if detailed:
            row.append(
                "\n".join(f"{e.name} ({e.formatted_date})" for e in contact.events)
                or Text("—", style="dim")
            )
        table.add_row(*row)
    return table


def categories_table(categories: Sequence[Category]) -> Table:
    table = Table(title="Categories", show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", justify="right", width=3)
    table.add_column("Id", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Color")
    for i, category in enumerate(categories, 1):
        table.add_row(str(i), str(category.id), category.name, _color_swatch(category.color_hex))
    return table


# ---------------------------------------------------------------------------
# Interactive menu
# ---------------------------------------------------------------------------


def _default_prompt(text: str, default: str | None = None) -> str:
    if default is None:
        return typer.prompt(text)
    return typer.prompt(text, default=default, show_default=bool(default))


class ConsoleMenu:
    """Numbered menu driving a CalendarController from the terminal."""

    def __init__(
        self,
        controller: CalendarController,
        console: Console,
        prompt: Callable[..., str] = _default_prompt,
    ):
        self.controller = controller
        self.console = console
        self.prompt = prompt
        self.options: list[tuple[str, Callable[[], None]]] = [
            ("Show events", self.show_events),
            ("Show events detailed", self.show_events_detailed),
            ("Show events on a date", self.show_events_on_date),
            ("Add new event", self.add_event),
            ("Edit event", self.edit_event),
            ("Delete event", self.delete_event),
            ("Show contacts", self.show_contacts),
            ("Show contacts detailed", self.show_contacts_detailed),
            ("Add new contact", self.add_contact),
            ("Edit contact", self.edit_contact),
            ("Delete contact", self.delete_contact),
            ("Show categories", self.show_categories),
            ("Add new category", self.add_category),
            ("Edit category", self.edit_category),
            ("Delete category", self.delete_category),
            ("Sort events", self.sort_events),
            ("Sort contacts", self.sort_contacts),
            ("Delete events older than a date", self.delete_old_events),
        ]

    # -- Main loop -----------------------------------------------------------

    def run(self) -> None:
        while True:
            self._print_menu()
            choice = self.prompt("Option").strip()
            if choice == "0":
                self.console.print("Exiting.")
                return
            if not choice.isdigit() or not 1 <= int(choice) <= len(self.options):
                self.console.print("[bold red]Incorrect option.[/] Try again.")
                continue
            label, action = self.options[int(choice) - 1]
            try:
                action()
            except CalendarError as e:
                logger.debug(f"{label} failed: {e}")
                self.console.print(f"[bold red]Error:[/] {e}")
                self.console.print("Please try again.\n")

    def _print_menu(self) -> None:
        menu = Table(show_header=False, box=None, padding=(0, 2))
        menu.add_column("#", style="bold", justify="right", width=3)
        menu.add_column()
        for i, (label, _) in enumerate(self.options, 1):
            menu.add_row(str(i), label)
        menu.add_row("0", "Exit")
        self.console.rule("[bold]Calendar[/bold]")
        if not self.controller.database_synchronized:
            self.console.print("[yellow]Working offline: changes are saved to the data file only.[/]")
        self.console.print(menu)

    # -- Input helpers -------------------------------------------------------

    def _ask_text(self, label: str, default: str | None = None, required: bool = True) -> str:
        while True:
            value = self.prompt(label, default=default if default is not None else "").strip()
            if value or not required:
                return value
            self.console.print("[bold red]Input cannot be empty.[/] Please try again.")

    def _ask_parsed(self, label: str, parse: Callable, default: str | None = None):
        while True:
            raw = self._ask_text(label, default)
            try:
                return parse(raw)
            except ValidationError as e:
                self.console.print(f"[bold red]{e}.[/] Try again.")

    def _ask_date_time(self, exclude: Event | None = None, default: str | None = None):
        while True:
            when = self._ask_parsed("Date and time (dd.mm.yyyy HH:MM)", parse_date_time, default)
            if not self.controller.is_date_time_occupied(when, exclude):
                return when
            self.console.print(
                "[bold red]The chosen date and time is already occupied.[/] "
                "Please choose another one."
            )

    def _ask_offset(self, default: timedelta = timedelta(0)) -> timedelta:
        return self._ask_parsed("Notify before (HH:MM)", parse_offset, format_offset(default))

    def _ask_phone(self, exclude: Contact | None = None, default: str | None = None) -> str:
        while True:
            phone = self._ask_parsed("Phone number (9 digits)", format_phone, default)
            if not self.controller.is_phone_number_exists(phone, exclude):
                return phone
            self.console.print(
                "[bold red]This phone number is already in use.[/] Please enter a different one."
            )

    def _ask_color(self, default: str = "#FFFFFF") -> str:
        while True:
            color = self._ask_text("Color (#RRGGBB)", default)
            if is_color_valid(color):
                return color.upper()
            self.console.print("[bold red]Invalid color.[/] Use the #RRGGBB format.")

    def _pick_one(self, records: Sequence, label: str, allow_skip: bool = False, current=None):
        """
        Choose a record by its list number; None when skipped or nothing to choose.

        With ``current`` set, empty input keeps it.
        """
        if not records:
            self.console.print(f"[yellow]Nothing to select ({label}).[/]")
            return None
        for i, record in enumerate(records, 1):
            self.console.print(f"  [bold]{i:>3}[/]  {str(record).splitlines()[0]}")
        hint = f' (type "{SKIP}" for none)' if allow_skip else ""
        if current is not None:
            hint += f", Enter keeps {str(current).splitlines()[0]}"
        while True:
            question = f"Select {label} [1-{len(records)}]{hint}"
            if current is not None:
                raw = self.prompt(question, default="").strip().lower()
                if raw == "":
                    return current
            else:
                raw = self.prompt(question).strip().lower()
            if allow_skip and raw == SKIP:
                return None
            if raw.isdigit() and 1 <= int(raw) <= len(records):
                return records[int(raw) - 1]
            self.console.print("[bold red]Incorrect input![/] Please enter a valid number.")

    def _pick_many(self, records: Sequence, label: str, current: Sequence = ()) -> list:
        """Choose records by comma-separated list numbers; empty input keeps ``current``."""
        if not records:
            return []
        for i, record in enumerate(records, 1):
            marker = "*" if any(record is c for c in current) else " "
            self.console.print(f"  [bold]{i:>3}[/]{marker} {str(record).splitlines()[0]}")
        while True:
            raw = self.prompt(
                f'Select {label}s by number, comma separated (type "{SKIP}" for none)',
                default="",
            ).strip().lower()
            if raw == "":
                return list(current)
            if raw == SKIP:
                return []
            parts = [p.strip() for p in raw.split(",") if p.strip()]
            if all(p.isdigit() and 1 <= int(p) <= len(records) for p in parts):
                chosen = []
                for p in parts:
                    record = records[int(p) - 1]
                    if not any(record is c for c in chosen):
                        chosen.append(record)
                return chosen
            self.console.print("[bold red]Incorrect input![/] Please enter valid numbers.")

    # -- Events --------------------------------------------------------------

    def show_events(self) -> None:
        self.console.print(events_table(self.controller.events))

    def show_events_detailed(self) -> None:
        self.console.print(events_table(self.controller.events, detailed=True))

    def show_events_on_date(self) -> None:
        day = self._ask_parsed("Date (dd.mm.yyyy)", parse_date)
        events = self.controller.get_events_by_date(day)
        self.console.print(events_table(events, detailed=True, title=f"Events on {day:%d.%m.%Y}"))

    def add_event(self) -> None:
        name = self._ask_text("Name")
        when = self._ask_date_time()
        offset = self._ask_offset()
        location = self._ask_text("Location", required=False)
        description = self._ask_text("Description", required=False)
        category = self._pick_one(self.controller.categories, "category", allow_skip=True)
        contacts = self._pick_many(self.controller.contacts, "contact")
        self.controller.add_new_event(name, when, offset, location, category, description, contacts)
        self.console.print("[green]Event added successfully![/]\n")

    def edit_event(self) -> None:
        event = self._pick_one(self.controller.events, "event")
        if event is None:
            return
        name = self._ask_text("Name", event.name)
        when = self._ask_date_time(exclude=event, default=event.formatted_date)
        offset = self._ask_offset(event.notify_offset)
        location = self._ask_text("Location", event.location, required=False)
        description = self._ask_text("Description", event.description, required=False)
        category = self._pick_one(
            self.controller.categories, "category", allow_skip=True, current=event.category
        )
        contacts = self._pick_many(self.controller.contacts, "contact", event.contacts)
        self.controller.update_event(
            event, name, when, offset, location, category, description, contacts
        )
        self.console.print("[green]Event updated successfully![/]\n")

    def delete_event(self) -> None:
        event = self._pick_one(self.controller.events, "event")
        if event is None:
            return
        self.controller.delete_event(event)
        self.console.print("[green]Event deleted successfully![/]\n")

    def delete_old_events(self) -> None:
        day = self._ask_parsed("Delete events before (dd.mm.yyyy)", parse_date)
        removed = self.controller.delete_old_events(day)
        self.console.print(f"[green]Deleted {removed} event(s).[/]\n")

    def sort_events(self) -> None:
        choice = self._pick_one(EVENT_SORT_OPTIONS, "sort order")
        self.controller.sort_events(choice)
        self.show_events()

    # -- Contacts ------------------------------------------------------------

    def show_contacts(self) -> None:
        self.console.print(contacts_table(self.controller.contacts))

    def show_contacts_detailed(self) -> None:
        self.console.print(contacts_table(self.controller.contacts, detailed=True))

    def add_contact(self) -> None:
        first_name = self._ask_text("First name")
        last_name = self._ask_text("Last name")
        phone = self._ask_phone()
        events = self._pick_many(self.controller.events, "event")
        self.controller.add_new_contact(first_name, last_name, phone, events)
        self.console.print("[green]Contact added successfully![/]\n")

    def edit_contact(self) -> None:
        contact = self._pick_one(self.controller.contacts, "contact")
        if contact is None:
            return
        first_name = self._ask_text("First name", contact.first_name)
        last_name = self._ask_text("Last name", contact.last_name)
        phone = self._ask_phone(exclude=contact, default=contact.phone_number)
        events = self._pick_many(self.controller.events, "event", contact.events)
        self.controller.update_contact(contact, first_name, last_name, phone, events)
        self.console.print("[green]Contact updated successfully![/]\n")

    def delete_contact(self) -> None:
        contact = self._pick_one(self.controller.contacts, "contact")
        if contact is None:
            return
        self.controller.delete_contact(contact)
        self.console.print("[green]Contact deleted successfully![/]\n")

    def sort_contacts(self) -> None:
        choice = self._pick_one(CONTACT_SORT_OPTIONS, "sort order")
        self.controller.sort_contacts(choice)
        self.show_contacts()

    # -- Categories ----------------------------------------------------------

    def show_categories(self) -> None:
        self.console.print(categories_table(self.controller.categories))

    def add_category(self) -> None:
        while True:
            name = self._ask_text("Name")
            if not self.controller.is_category_exists(name):
                break
            self.console.print("[bold red]This category already exists.[/] Choose another name.")
        color = self._ask_color()
        self.controller.add_new_category(name, color)
        self.console.print("[green]Category added successfully![/]\n")

    def edit_category(self) -> None:
        category = self._pick_one(self.controller.categories, "category")
        if category is None:
            return
        while True:
            name = self._ask_text("Name", category.name)
            if not self.controller.is_category_exists(name, exclude=category):
                break
            self.console.print("[bold red]This category already exists.[/] Choose another name.")
        color = self._ask_color(category.color_hex)
        self.controller.update_category(category, name, color)
        self.console.print("[green]Category updated successfully![/]\n")

    def delete_category(self) -> None:
        category = self._pick_one(self.controller.categories, "category")
        if category is None:
            return
        self.controller.delete_category(category)
        self.console.print("[green]Category deleted successfully![/]\n")
