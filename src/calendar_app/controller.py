"""
CalendarController: owns the three collections and every operation on them.

Callers get read-only views (tuples) and change data only through the named
operations below.  Each operation validates its input, updates the in-memory
collections (keeping Event <-> Contact links symmetric), then writes through:
to the database when the startup reconciliation succeeded, and always to the
XML snapshot file.

A database failure during a write is raised to the caller but the in-memory
change is kept; the record is simply ahead of the database until the next
reconciliation pass picks it up.
"""

import logging
from collections.abc import Callable
from collections.abc import Iterable
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from pathlib import Path

from calendar_app import associations
from calendar_app.db import CalendarDatabase
from calendar_app.models import UNASSIGNED
from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import DuplicateError
from calendar_app.models import Event
from calendar_app.models import NotFoundError
from calendar_app.models import Snapshot
from calendar_app.models import StoreError
from calendar_app.models import SyncStats
from calendar_app.models import ValidationError
from calendar_app.notifications import due_events
from calendar_app.sorting import CONTACT_SORT_OPTIONS
from calendar_app.sorting import EVENT_SORT_OPTIONS
from calendar_app.sorting import sort_categories
from calendar_app.sorting import sort_contacts
from calendar_app.sorting import sort_events
from calendar_app.validation import format_phone
from calendar_app.validation import is_color_valid
from calendar_app.validation import normalize_phone
from calendar_app.validation import require_text
from calendar_app.xml_store import XMLStore

__all__ = ["CalendarController", "EVENT_SORT_OPTIONS", "CONTACT_SORT_OPTIONS"]


def _minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def _find_by_id(records, record_id: int):
    for record in records:
        if record.id == record_id:
            return record
    return None


def _is_member(records, record) -> bool:
    return any(r is record for r in records)


def _remove_member(records: list, record) -> None:
    for i, r in enumerate(records):
        if r is record:
            del records[i]
            return


class CalendarController:
    """Repository facade over categories, events and contacts."""

    def __init__(self, xml_store: XMLStore, database: CalendarDatabase | None = None):
        self.xml_store = xml_store
        self.database = database
        self.logger = logging.getLogger(__name__)
        self.database_synchronized = False
        self.last_sync: SyncStats | None = None
        self._categories: list[Category] = []
        self._events: list[Event] = []
        self._contacts: list[Contact] = []

    # ------------------------------------------------------------------ #
    # Startup                                                             #
    # ------------------------------------------------------------------ #

    def init(self) -> bool:
        """
        Load the snapshot file, then reconcile it into the database.

        Returns True when the database is in use.  When it cannot be reached
        the controller keeps working from the snapshot file alone.
        """
        file_readable = True
        try:
            snapshot = self.xml_store.load()
        except StoreError as e:
            self.logger.error(f"Ignoring unreadable snapshot file: {e}")
            snapshot = None
            file_readable = False
        if snapshot is not None:
            self._adopt(snapshot)

        if self.database is None:
            self.logger.info("No database configured, using the snapshot file only")
            return False

        try:
            self.synchronize()
        except StoreError as e:
            self.logger.warning(
                f"Failed to synchronize with the database: {e}. "
                f"Changes are kept in {self.xml_store.path} and will be synchronized "
                f"on the next successful connection."
            )
            self.database_synchronized = False
            if not file_readable:
                return False
            # Records committed before the failure now carry their ids; the
            # file must hold them too or the next pass inserts them again.
            try:
                self.save_to_xml()
            except StoreError as save_error:
                self.logger.error(f"Could not rewrite the snapshot file: {save_error}")
            return False
        return True

    def synchronize(self) -> SyncStats:
        """Run a full reconciliation pass and adopt the database's view of the data."""
        if self.database is None:
            raise StoreError("No database configured")
        stats = SyncStats()
        fresh = self.database.synchronize(self._categories, self._events, self._contacts, stats)
        self._adopt(fresh)
        self.database_synchronized = True
        self.last_sync = stats
        self.save_to_xml()
        return stats

    def _adopt(self, snapshot: Snapshot) -> None:
        self._categories = list(snapshot.categories)
        self._events = list(snapshot.events)
        self._contacts = list(snapshot.contacts)

    # ------------------------------------------------------------------ #
    # Read-only views                                                     #
    # ------------------------------------------------------------------ #

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)

    @property
    def events(self) -> tuple[Event, ...]:
        return tuple(self._events)

    @property
    def contacts(self) -> tuple[Contact, ...]:
        return tuple(self._contacts)

    def get_category_by_id(self, category_id: int) -> Category | None:
        return _find_by_id(self._categories, category_id)

    def get_event_by_id(self, event_id: int) -> Event | None:
        return _find_by_id(self._events, event_id)

    def get_contact_by_id(self, contact_id: int) -> Contact | None:
        return _find_by_id(self._contacts, contact_id)

    def get_events_by_date(self, day: date) -> tuple[Event, ...]:
        return tuple(e for e in self._events if e.date.date() == day)

    def due_notifications(self, now: datetime) -> list[Event]:
        return due_events(self._events, now)

    # ------------------------------------------------------------------ #
    # Uniqueness predicates                                               #
    # ------------------------------------------------------------------ #

    def is_category_exists(self, name: str, exclude: Category | None = None) -> bool:
        name = name.strip()
        return any(c.name == name and c is not exclude for c in self._categories)

    def is_date_time_occupied(self, when: datetime, exclude: Event | None = None) -> bool:
        when = _minute(when)
        return any(e.date == when and e is not exclude for e in self._events)

    def is_phone_number_exists(self, phone_number: str, exclude: Contact | None = None) -> bool:
        wanted = normalize_phone(phone_number)
        return any(
            normalize_phone(c.phone_number) == wanted and c is not exclude
            for c in self._contacts
        )

    # ------------------------------------------------------------------ #
    # Validation helpers                                                  #
    # ------------------------------------------------------------------ #

    def _check_category(self, name: str, color_hex: str, exclude: Category | None) -> tuple:
        name = require_text(name, "Category name")
        color_hex = color_hex.strip().upper()
        if not is_color_valid(color_hex):
            raise ValidationError(f"Invalid color: {color_hex!r} (expected #RRGGBB)")
        if self.is_category_exists(name, exclude):
            raise DuplicateError(f"Category {name!r} already exists")
        return name, color_hex

    def _check_event(
        self,
        name: str,
        when: datetime,
        notify_offset: timedelta,
        category: Category | None,
        contacts: Iterable[Contact],
        exclude: Event | None,
    ) -> tuple:
        name = require_text(name, "Event name")
        when = _minute(when)
        if notify_offset < timedelta(0):
            raise ValidationError("Notification offset cannot be negative")
        if self.is_date_time_occupied(when, exclude):
            raise DuplicateError(
                f"The date and time {when:%d.%m.%Y %H:%M} is already occupied by another event"
            )
        if category is not None and not _is_member(self._categories, category):
            raise NotFoundError(f"Category {category} is not part of this calendar")
        contacts = list(contacts)
        for contact in contacts:
            if not _is_member(self._contacts, contact):
                raise NotFoundError(f"Contact {contact} is not part of this calendar")
        return name, when, contacts

    def _check_contact(
        self,
        first_name: str,
        last_name: str,
        phone_number: str,
        events: Iterable[Event],
        exclude: Contact | None,
    ) -> tuple:
        first_name = require_text(first_name, "First name")
        last_name = require_text(last_name, "Last name")
        formatted = format_phone(phone_number)
        if self.is_phone_number_exists(formatted, exclude):
            raise DuplicateError(f"Phone number {formatted} is already in use")
        events = list(events)
        for event in events:
            if not _is_member(self._events, event):
                raise NotFoundError(f"Event {event.name!r} is not part of this calendar")
        return first_name, last_name, formatted, events

    @staticmethod
    def _require_member(records, record, label: str) -> None:
        if not _is_member(records, record):
            raise NotFoundError(f"{label} {record} is not part of this calendar")

    # ------------------------------------------------------------------ #
    # Write-through                                                       #
    # ------------------------------------------------------------------ #

    def _write_through(self, store_op: Callable | None, *args) -> None:
        """Apply ``store_op`` to the database (if in use), then rewrite the snapshot file."""
        error = None
        if store_op is not None and self.database_synchronized:
            try:
                store_op(*args)
            except StoreError as e:
                self.logger.error(f"Database write failed, change kept locally: {e}")
                error = e
        self.save_to_xml()
        if error is not None:
            raise error

    # ------------------------------------------------------------------ #
    # Add                                                                 #
    # ------------------------------------------------------------------ #

    def add_new_category(self, name: str, color_hex: str = "#FFFFFF") -> Category:
        name, color_hex = self._check_category(name, color_hex, None)
        category = Category(name=name, color_hex=color_hex)
        self._categories.append(category)
        self.logger.debug(f"Added category {name!r}")
        self._write_through(self.database and self.database.upsert_category, category)
        return category

    def add_new_event(
        self,
        name: str,
        when: datetime,
        notify_offset: timedelta = timedelta(0),
        location: str = "",
        category: Category | None = None,
        description: str = "",
        contacts: Iterable[Contact] = (),
    ) -> Event:
        name, when, contacts = self._check_event(
            name, when, notify_offset, category, contacts, None
        )
        event = Event(
            name=name,
            date=when,
            notify_offset=notify_offset,
            location=location.strip(),
            description=description.strip(),
            category=category,
        )
        associations.replace_contacts(event, contacts)
        self._events.append(event)
        self.logger.debug(f"Added event {name!r} at {event.formatted_date}")
        self._write_through(self.database and self.database.upsert_event, event)
        return event

    def add_new_contact(
        self,
        first_name: str,
        last_name: str,
        phone_number: str,
        events: Iterable[Event] = (),
    ) -> Contact:
        first_name, last_name, formatted, events = self._check_contact(
            first_name, last_name, phone_number, events, None
        )
        contact = Contact(first_name=first_name, last_name=last_name, phone_number=formatted)
        associations.replace_events(contact, events)
        self._contacts.append(contact)
        self.logger.debug(f"Added contact {contact}")
        self._write_through(self.database and self.database.upsert_contact, contact)
        return contact

    # ------------------------------------------------------------------ #
    # Update                                                              #
    # ------------------------------------------------------------------ #

    def update_category(self, category: Category, name: str, color_hex: str) -> None:
        self._require_member(self._categories, category, "Category")
        name, color_hex = self._check_category(name, color_hex, category)
        category.name = name
        category.color_hex = color_hex
        self._write_through(self.database and self.database.upsert_category, category)

    def update_event(
        self,
        event: Event,
        name: str,
        when: datetime,
        notify_offset: timedelta,
        location: str,
        category: Category | None,
        description: str,
        contacts: Iterable[Contact],
    ) -> None:
        self._require_member(self._events, event, "Event")
        name, when, contacts = self._check_event(
            name, when, notify_offset, category, contacts, event
        )
        event.name = name
        event.date = when
        event.notify_offset = notify_offset
        event.location = location.strip()
        event.category = category
        event.description = description.strip()
        associations.replace_contacts(event, contacts)
        self._write_through(self.database and self.database.upsert_event, event)

    def update_contact(
        self,
        contact: Contact,
        first_name: str,
        last_name: str,
        phone_number: str,
        events: Iterable[Event],
    ) -> None:
        self._require_member(self._contacts, contact, "Contact")
        first_name, last_name, formatted, events = self._check_contact(
            first_name, last_name, phone_number, events, contact
        )
        contact.first_name = first_name
        contact.last_name = last_name
        contact.phone_number = formatted
        associations.replace_events(contact, events)
        self._write_through(self.database and self.database.upsert_contact, contact)

    # ------------------------------------------------------------------ #
    # Delete                                                              #
    # ------------------------------------------------------------------ #

    def _soft_delete_op(self, record, op_name: str) -> Callable | None:
        # Records never stored have nothing to flag in the database.
        if self.database is None or record.id == UNASSIGNED:
            return None
        return getattr(self.database, op_name)

    def delete_category(self, category: Category) -> None:
        """Remove a category; its events stay, uncategorised."""
        self._require_member(self._categories, category, "Category")
        for event in self._events:
            if event.category is category:
                event.category = None
        _remove_member(self._categories, category)
        self.logger.debug(f"Deleted category {category.name!r}")
        self._write_through(self._soft_delete_op(category, "soft_delete_category"), category)

    def delete_event(self, event: Event) -> None:
        self._require_member(self._events, event, "Event")
        associations.detach_event(event)
        _remove_member(self._events, event)
        self.logger.debug(f"Deleted event {event.name!r}")
        self._write_through(self._soft_delete_op(event, "soft_delete_event"), event)

    def delete_contact(self, contact: Contact) -> None:
        self._require_member(self._contacts, contact, "Contact")
        associations.detach_contact(contact)
        _remove_member(self._contacts, contact)
        self.logger.debug(f"Deleted contact {contact}")
        self._write_through(self._soft_delete_op(contact, "soft_delete_contact"), contact)

    def delete_old_events(self, before: date) -> int:
        """Permanently remove every event dated before midnight of ``before``."""
        cutoff = datetime.combine(before, time.min)
        old = [e for e in self._events if e.date < cutoff]
        for event in old:
            associations.detach_event(event)
            _remove_member(self._events, event)
        self.logger.info(f"Removing {len(old)} event(s) dated before {before:%d.%m.%Y}")
        self._write_through(self.database and self.database.delete_events_before, cutoff)
        return len(old)

    # ------------------------------------------------------------------ #
    # Sorting                                                             #
    # ------------------------------------------------------------------ #

    def sort_events(self, sort_by: str = "Date") -> None:
        sort_events(self._events, sort_by)

    def sort_contacts(self, sort_by: str = "First name") -> None:
        sort_contacts(self._contacts, sort_by)

    def sort_categories(self) -> None:
        sort_categories(self._categories)

    # ------------------------------------------------------------------ #
    # Snapshot file                                                       #
    # ------------------------------------------------------------------ #

    def save_to_xml(self) -> None:
        self.xml_store.save(self._categories, self._events, self._contacts)

    def load_from_xml(self, path: Path | None = None) -> Snapshot | None:
        """Read a snapshot file for inspection; the live collections are not touched."""
        return self.xml_store.load(path)
