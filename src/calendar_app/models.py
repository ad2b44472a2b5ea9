"""
Pure data models, no sqlite or XML imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from pathlib import Path

DEFAULT_DATA_DIR = Path.home() / ".local/share/calendar-app"
DEFAULT_DATA_FILE = DEFAULT_DATA_DIR / "data.xml"
DEFAULT_DATABASE = DEFAULT_DATA_DIR / "calendar.db"
DEFAULT_CONFIG = Path.home() / ".config/calendar-app.conf"

DISPLAY_DATE_FORMAT = "%d.%m.%Y %H:%M"

# Identifier of a record that has not been written to the database yet.
UNASSIGNED = 0


class CalendarError(Exception):
    """Base exception for calendar errors."""

    pass


class ValidationError(CalendarError):
    """Input rejected before any store write (format or uniqueness)."""

    pass


class DuplicateError(ValidationError):
    """A name, date-time or phone number is already taken by another record."""

    pass


class NotFoundError(CalendarError):
    """Operation references an unassigned or unknown record."""

    pass


class StoreError(CalendarError):
    """The database or the snapshot file could not be read or written."""

    pass


@dataclass
class AppConfig:
    """Configuration for a calendar session."""

    data_file: Path = DEFAULT_DATA_FILE
    database: Path = DEFAULT_DATABASE
    verbose: bool = False


# Entities form a reference cycle (Event.contacts <-> Contact.events), so they
# compare by identity: eq=False keeps object.__eq__/__hash__.


@dataclass(eq=False)
class Category:
    name: str
    color_hex: str = "#FFFFFF"
    id: int = UNASSIGNED

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Contact:
    first_name: str
    last_name: str
    phone_number: str
    id: int = UNASSIGNED
    events: list["Event"] = field(default_factory=list, repr=False)

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name} | {self.phone_number}"


@dataclass(eq=False)
class Event:
    name: str
    date: datetime
    notify_offset: timedelta = timedelta(0)
    location: str = ""
    description: str = ""
    category: Category | None = None
    id: int = UNASSIGNED
    contacts: list[Contact] = field(default_factory=list, repr=False)

    @property
    def notify_at(self) -> datetime:
        """Moment the reminder for this event fires."""
        return self.date - self.notify_offset

    @property
    def formatted_date(self) -> str:
        return self.date.strftime(DISPLAY_DATE_FORMAT)

    @property
    def formatted_notify_at(self) -> str:
        return self.notify_at.strftime(DISPLAY_DATE_FORMAT)

    def __str__(self) -> str:
        location = self.location or "No location"
        description = self.description or "No description"
        category = self.category.name if self.category is not None else "No category"
        return f"{self.name} | {self.formatted_date} | {location}\n{description}\n{category}"


@dataclass
class SyncStats:
    """Statistics for a reconciliation pass."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    restored: int = 0


@dataclass
class Snapshot:
    """The three collections as read from a store."""

    categories: list[Category] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
