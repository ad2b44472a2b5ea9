"""
Sort orders offered for the event and contact lists.
"""

from collections.abc import Callable

from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import Event

EVENT_SORT_OPTIONS = ("Name", "Date", "Location", "Description", "Category")
CONTACT_SORT_OPTIONS = ("First name", "Last name", "Phone number")


def _event_category_key(event: Event):
    # Uncategorised events go last.
    if event.category is None:
        return (1, "")
    return (0, event.category.name.lower())


_EVENT_KEYS: dict[str, Callable[[Event], object]] = {
    "Name": lambda e: e.name.lower(),
    "Date": lambda e: e.date,
    "Location": lambda e: e.location.lower(),
    "Description": lambda e: e.description.lower(),
    "Category": _event_category_key,
}

_CONTACT_KEYS: dict[str, Callable[[Contact], object]] = {
    "First name": lambda c: c.first_name.lower(),
    "Last name": lambda c: c.last_name.lower(),
    "Phone number": lambda c: c.phone_number.replace(" ", ""),
}


def sort_events(events: list[Event], sort_by: str = "Date") -> None:
    """Sort in place; unknown labels fall back to date order."""
    events.sort(key=_EVENT_KEYS.get(sort_by, _EVENT_KEYS["Date"]))


def sort_contacts(contacts: list[Contact], sort_by: str = "First name") -> None:
    """Sort in place; unknown labels fall back to first-name order."""
    contacts.sort(key=_CONTACT_KEYS.get(sort_by, _CONTACT_KEYS["First name"]))


def sort_categories(categories: list[Category]) -> None:
    categories.sort(key=lambda c: c.name.lower())


def resolve_option(value: str, options: tuple[str, ...]) -> str | None:
    """Match a user-typed sort label case-insensitively (``last-name`` works too)."""
    wanted = value.strip().lower().replace("-", " ").replace("_", " ")
    for option in options:
        if option.lower() == wanted:
            return option
    return None
