"""
SQLite persistence for categories, events and contacts.

Every public method opens its own connection and runs in its own transaction
(commit on success, rollback on any error).  There is no transaction spanning
several records: a reconciliation pass that fails half-way keeps the records
it already wrote.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from datetime import timedelta
from pathlib import Path

from calendar_app.associations import add_contact
from calendar_app.associations import related_ids
from calendar_app.models import UNASSIGNED
from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import Event
from calendar_app.models import NotFoundError
from calendar_app.models import Snapshot
from calendar_app.models import StoreError
from calendar_app.models import SyncStats
from calendar_app.models import ValidationError

# Outcomes of a single-record reconciliation.
INSERTED = "inserted"
UPDATED = "updated"
UNCHANGED = "unchanged"
RESTORED = "restored"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category_name TEXT NOT NULL,
        color_hex TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_name TEXT NOT NULL,
        event_date TEXT NOT NULL,
        notification_offset INTEGER NOT NULL DEFAULT 0,
        event_location TEXT NOT NULL DEFAULT '',
        event_description TEXT NOT NULL DEFAULT '',
        category_id INTEGER REFERENCES categories(id),
        is_active INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS contacts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        phone_number TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS events_contacts (
        event_id INTEGER NOT NULL REFERENCES events(id),
        contact_id INTEGER NOT NULL REFERENCES contacts(id),
        PRIMARY KEY (event_id, contact_id)
    );
    CREATE INDEX IF NOT EXISTS idx_events_date ON events(event_date);
"""


def _date_key(value: datetime) -> str:
    # Minute-precision ISO strings sort chronologically as plain text.
    return value.isoformat(timespec="minutes")


def _offset_minutes(offset: timedelta) -> int:
    return int(offset.total_seconds()) // 60


def _category_values(category: Category) -> dict:
    return {"category_name": category.name, "color_hex": category.color_hex}


def _event_values(event: Event) -> dict:
    return {
        "event_name": event.name,
        "event_date": _date_key(event.date),
        "notification_offset": _offset_minutes(event.notify_offset),
        "event_location": event.location,
        "event_description": event.description,
        "category_id": event.category.id if event.category is not None else None,
    }


def _contact_values(contact: Contact) -> dict:
    return {
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "phone_number": contact.phone_number,
    }


def _row_differs(row: sqlite3.Row, values: dict) -> bool:
    return any(row[column] != value for column, value in values.items())


class CalendarDatabase:
    """Manages the SQLite database mirroring the in-memory collections."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.logger = logging.getLogger(__name__)
        self._schema_ready = False
        # Records that received a generated id in the current transaction.
        self._assigned: list = []

    # ------------------------------------------------------------------ #
    # Connection handling                                                 #
    # ------------------------------------------------------------------ #

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one logical operation."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        self._assigned = []
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if not self._schema_ready:
                conn.executescript(_SCHEMA)
                self._schema_ready = True
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            self._forget_assigned_ids()
            raise StoreError(f"Database error ({self.db_path}): {e}") from e
        except BaseException:
            conn.rollback()
            self._forget_assigned_ids()
            raise
        finally:
            conn.close()

    def _forget_assigned_ids(self) -> None:
        """Undo id write-backs of a rolled-back transaction."""
        for record in self._assigned:
            record.id = UNASSIGNED
        self._assigned = []

    def ping(self) -> None:
        """Raise StoreError unless the database can be opened and queried."""
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    def counts(self) -> dict[str, int]:
        """Number of active rows per entity table."""
        with self._connect() as conn:
            return {
                table: conn.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE is_active = 1"
                ).fetchone()[0]
                for table in ("categories", "events", "contacts")
            }

    # ------------------------------------------------------------------ #
    # Row writers (caller owns the connection)                            #
    # ------------------------------------------------------------------ #

    def _insert_row(self, conn, table: str, record, values: dict, keep_id: bool) -> None:
        """INSERT a row; assign the generated id back unless ``keep_id``."""
        if keep_id:
            values = {"id": record.id, **values}
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        cursor = conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        if not keep_id:
            record.id = cursor.lastrowid
            self._assigned.append(record)

    @staticmethod
    def _row_exists(conn, table: str, record_id: int) -> bool:
        row = conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return row is not None

    def _ensure_category_row(self, conn, category: Category | None) -> None:
        """Make sure a row exists for ``category`` so it can be referenced."""
        if category is None:
            return
        if category.id == UNASSIGNED:
            self._insert_row(conn, "categories", category, _category_values(category), False)
            self.logger.debug(f"Inserted category {category.name!r} as #{category.id}")
        elif not self._row_exists(conn, "categories", category.id):
            self._insert_row(conn, "categories", category, _category_values(category), True)
            self.logger.debug(f"Restored category {category.name!r} as #{category.id}")

    def _ensure_event_row(self, conn, event: Event) -> None:
        if event.id != UNASSIGNED and self._row_exists(conn, "events", event.id):
            return
        self._ensure_category_row(conn, event.category)
        keep_id = event.id != UNASSIGNED
        self._insert_row(conn, "events", event, _event_values(event), keep_id)
        self.logger.debug(
            f"{'Restored' if keep_id else 'Inserted'} event {event.name!r} as #{event.id}"
        )

    def _ensure_contact_row(self, conn, contact: Contact) -> None:
        if contact.id != UNASSIGNED and self._row_exists(conn, "contacts", contact.id):
            return
        keep_id = contact.id != UNASSIGNED
        self._insert_row(conn, "contacts", contact, _contact_values(contact), keep_id)
        self.logger.debug(
            f"{'Restored' if keep_id else 'Inserted'} contact "
            f"{contact.first_name} {contact.last_name} as #{contact.id}"
        )

    @staticmethod
    def _insert_links(conn, pairs) -> None:
        conn.executemany(
            "INSERT OR IGNORE INTO events_contacts (event_id, contact_id) VALUES (?, ?)",
            list(pairs),
        )

    def _replace_event_links(self, conn, event: Event) -> bool:
        """Full-replace the relationship rows of ``event`` if the id set changed."""
        for contact in event.contacts:
            self._ensure_contact_row(conn, contact)
        stored = {
            row[0]
            for row in conn.execute(
                "SELECT contact_id FROM events_contacts WHERE event_id = ?", (event.id,)
            )
        }
        current = related_ids(event.contacts)
        if stored == current:
            return False
        conn.execute("DELETE FROM events_contacts WHERE event_id = ?", (event.id,))
        self._insert_links(conn, ((event.id, contact_id) for contact_id in current))
        return True

    def _replace_contact_links(self, conn, contact: Contact) -> bool:
        for event in contact.events:
            self._ensure_event_row(conn, event)
        stored = {
            row[0]
            for row in conn.execute(
                "SELECT event_id FROM events_contacts WHERE contact_id = ?", (contact.id,)
            )
        }
        current = related_ids(contact.events)
        if stored == current:
            return False
        conn.execute("DELETE FROM events_contacts WHERE contact_id = ?", (contact.id,))
        self._insert_links(conn, ((event_id, contact.id) for event_id in current))
        return True

    @staticmethod
    def _fetch_row(conn, table: str, record, label: str) -> sqlite3.Row:
        if record.id == UNASSIGNED:
            raise NotFoundError(f"{label} {record} has not been stored yet")
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record.id,)).fetchone()
        if row is None:
            raise NotFoundError(f"{label} #{record.id} does not exist in the database")
        return row

    # ------------------------------------------------------------------ #
    # Insert                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _require_new(record, label: str) -> None:
        if record.id != UNASSIGNED:
            raise ValidationError(f"{label} {record} is already stored as #{record.id}")

    def _insert_category(self, conn, category: Category) -> None:
        self._require_new(category, "Category")
        self._ensure_category_row(conn, category)

    def _insert_event(self, conn, event: Event) -> None:
        self._require_new(event, "Event")
        self._ensure_event_row(conn, event)
        for contact in event.contacts:
            self._ensure_contact_row(conn, contact)
        self._insert_links(conn, ((event.id, c.id) for c in event.contacts))

    def _insert_contact(self, conn, contact: Contact) -> None:
        self._require_new(contact, "Contact")
        self._ensure_contact_row(conn, contact)
        for event in contact.events:
            self._ensure_event_row(conn, event)
        self._insert_links(conn, ((e.id, contact.id) for e in contact.events))

    def insert_category(self, category: Category) -> int:
        """Insert a new category and write the generated id back into it."""
        with self._connect() as conn:
            self._insert_category(conn, category)
        return category.id

    def insert_event(self, event: Event) -> int:
        """Insert a new event (plus any unstored category/contacts it references)."""
        with self._connect() as conn:
            self._insert_event(conn, event)
        return event.id

    def insert_contact(self, contact: Contact) -> int:
        """Insert a new contact (plus any unstored events it references)."""
        with self._connect() as conn:
            self._insert_contact(conn, contact)
        return contact.id

    # ------------------------------------------------------------------ #
    # Update                                                              #
    # ------------------------------------------------------------------ #

    def _update_category(self, conn, category: Category) -> bool:
        row = self._fetch_row(conn, "categories", category, "Category")
        values = _category_values(category)
        if not _row_differs(row, values):
            return False
        conn.execute(
            "UPDATE categories SET category_name = ?, color_hex = ? WHERE id = ?",
            (*values.values(), category.id),
        )
        return True

    def _update_event(self, conn, event: Event) -> bool:
        row = self._fetch_row(conn, "events", event, "Event")
        self._ensure_category_row(conn, event.category)
        values = _event_values(event)
        changed = False
        if _row_differs(row, values):
            conn.execute(
                "UPDATE events SET event_name = ?, event_date = ?, notification_offset = ?, "
                "event_location = ?, event_description = ?, category_id = ? WHERE id = ?",
                (*values.values(), event.id),
            )
            changed = True
        return self._replace_event_links(conn, event) or changed

    def _update_contact(self, conn, contact: Contact) -> bool:
        row = self._fetch_row(conn, "contacts", contact, "Contact")
        values = _contact_values(contact)
        changed = False
        if _row_differs(row, values):
            conn.execute(
                "UPDATE contacts SET first_name = ?, last_name = ?, phone_number = ? WHERE id = ?",
                (*values.values(), contact.id),
            )
            changed = True
        return self._replace_contact_links(conn, contact) or changed

    def update_category(self, category: Category) -> bool:
        """Write changed fields of a stored category; returns True if anything was written."""
        with self._connect() as conn:
            return self._update_category(conn, category)

    def update_event(self, event: Event) -> bool:
        """Write changed fields and, if needed, the full contact set of a stored event."""
        with self._connect() as conn:
            return self._update_event(conn, event)

    def update_contact(self, contact: Contact) -> bool:
        """Write changed fields and, if needed, the full event set of a stored contact."""
        with self._connect() as conn:
            return self._update_contact(conn, contact)

    # ------------------------------------------------------------------ #
    # Reconciliation                                                      #
    # ------------------------------------------------------------------ #

    def _upsert(self, record, insert, update, ensure) -> str:
        with self._connect() as conn:
            if record.id == UNASSIGNED:
                insert(conn, record)
                return INSERTED
            try:
                return UPDATED if update(conn, record) else UNCHANGED
            except NotFoundError:
                # Stored elsewhere under this id but missing here (e.g. a new
                # database file): bring the row back under the same id.
                self.logger.warning(
                    f"#{record.id} ({record}) is missing from the database, restoring it"
                )
                ensure(conn, record)
                update(conn, record)
                return RESTORED

    def upsert_category(self, category: Category) -> str:
        return self._upsert(
            category, self._insert_category, self._update_category, self._ensure_category_row
        )

    def upsert_event(self, event: Event) -> str:
        return self._upsert(event, self._insert_event, self._update_event, self._ensure_event_row)

    def upsert_contact(self, contact: Contact) -> str:
        return self._upsert(
            contact, self._insert_contact, self._update_contact, self._ensure_contact_row
        )

    def _reserve_ids(
        self, categories: list[Category], events: list[Event], contacts: list[Contact]
    ) -> None:
        """
        Move each table's id sequence past every id the collections already use.

        A record stored under id N in another database file is restored under
        N here; a new record inserted earlier in the same pass must not take N.
        """
        highest = {
            "categories": max(
                (c.id for c in (*categories, *(e.category for e in events if e.category))),
                default=UNASSIGNED,
            ),
            "events": max(
                (e.id for e in (*events, *(e for c in contacts for e in c.events))),
                default=UNASSIGNED,
            ),
            "contacts": max(
                (c.id for c in (*contacts, *(c for e in events for c in e.contacts))),
                default=UNASSIGNED,
            ),
        }
        with self._connect() as conn:
            for table, top in highest.items():
                if top == UNASSIGNED:
                    continue
                row = conn.execute(
                    "SELECT seq FROM sqlite_sequence WHERE name = ?", (table,)
                ).fetchone()
                if row is None:
                    conn.execute(
                        "INSERT INTO sqlite_sequence (name, seq) VALUES (?, ?)", (table, top)
                    )
                elif row["seq"] < top:
                    conn.execute("UPDATE sqlite_sequence SET seq = ? WHERE name = ?", (top, table))
                else:
                    continue
                self.logger.debug(f"Reserved {table} ids up to #{top}")

    def synchronize(
        self,
        categories: list[Category],
        events: list[Event],
        contacts: list[Contact],
        stats: SyncStats | None = None,
    ) -> Snapshot:
        """
        Reconcile the in-memory collections into the database, then reload.

        Categories go first, then events (they reference categories), then
        contacts (they reference events).  Each record is reconciled in its own
        transaction; the first failure propagates and earlier records stay
        written.

        Returns the active rows as a fresh snapshot.
        """
        stats = stats if stats is not None else SyncStats()
        self._reserve_ids(categories, events, contacts)
        passes = (
            (categories, self.upsert_category),
            (events, self.upsert_event),
            (contacts, self.upsert_contact),
        )
        for records, upsert in passes:
            for record in records:
                outcome = upsert(record)
                setattr(stats, outcome, getattr(stats, outcome) + 1)

        self.logger.info(
            f"Reconciled: {stats.inserted} inserted, {stats.updated} updated, "
            f"{stats.unchanged} unchanged, {stats.restored} restored"
        )
        return self.load_all()

    # ------------------------------------------------------------------ #
    # Delete                                                              #
    # ------------------------------------------------------------------ #

    def _soft_delete(self, conn, table: str, record, label: str) -> None:
        if record.id == UNASSIGNED:
            raise NotFoundError(f"{label} {record} has not been stored yet")
        cursor = conn.execute(f"UPDATE {table} SET is_active = 0 WHERE id = ?", (record.id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"{label} #{record.id} does not exist in the database")

    def soft_delete_category(self, category: Category) -> None:
        """Flag a category inactive and clear it from the events that used it."""
        with self._connect() as conn:
            self._soft_delete(conn, "categories", category, "Category")
            conn.execute(
                "UPDATE events SET category_id = NULL WHERE category_id = ?", (category.id,)
            )

    def soft_delete_event(self, event: Event) -> None:
        """Flag an event inactive and drop its relationship rows."""
        with self._connect() as conn:
            self._soft_delete(conn, "events", event, "Event")
            conn.execute("DELETE FROM events_contacts WHERE event_id = ?", (event.id,))

    def soft_delete_contact(self, contact: Contact) -> None:
        """Flag a contact inactive and drop its relationship rows."""
        with self._connect() as conn:
            self._soft_delete(conn, "contacts", contact, "Contact")
            conn.execute("DELETE FROM events_contacts WHERE contact_id = ?", (contact.id,))

    def delete_events_before(self, cutoff: datetime) -> int:
        """
        Physically delete every event dated before ``cutoff``.

        The relationship rows and the events go in one transaction: both
        deletions happen or neither does.  Returns the number of events removed.
        """
        key = _date_key(cutoff)
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM events_contacts WHERE event_id IN "
                "(SELECT id FROM events WHERE event_date < ?)",
                (key,),
            )
            cursor = conn.execute("DELETE FROM events WHERE event_date < ?", (key,))
            removed = cursor.rowcount
        self.logger.info(f"Purged {removed} event(s) dated before {key}")
        return removed

    # ------------------------------------------------------------------ #
    # Load                                                                #
    # ------------------------------------------------------------------ #

    def load_all(self) -> Snapshot:
        """Read all active rows and rebuild the Event <-> Contact associations."""
        with self._connect() as conn:
            categories = [
                Category(id=row["id"], name=row["category_name"], color_hex=row["color_hex"])
                for row in conn.execute(
                    "SELECT * FROM categories WHERE is_active = 1 ORDER BY id"
                )
            ]
            categories_by_id = {c.id: c for c in categories}

            events = [
                Event(
                    id=row["id"],
                    name=row["event_name"],
                    date=datetime.fromisoformat(row["event_date"]),
                    notify_offset=timedelta(minutes=row["notification_offset"]),
                    location=row["event_location"],
                    description=row["event_description"],
                    category=categories_by_id.get(row["category_id"]),
                )
                for row in conn.execute("SELECT * FROM events WHERE is_active = 1 ORDER BY id")
            ]
            events_by_id = {e.id: e for e in events}

            contacts = [
                Contact(
                    id=row["id"],
                    first_name=row["first_name"],
                    last_name=row["last_name"],
                    phone_number=row["phone_number"],
                )
                for row in conn.execute("SELECT * FROM contacts WHERE is_active = 1 ORDER BY id")
            ]
            contacts_by_id = {c.id: c for c in contacts}

            # Links to inactive endpoints are ignored.
            for row in conn.execute(
                "SELECT event_id, contact_id FROM events_contacts ORDER BY event_id, contact_id"
            ):
                event = events_by_id.get(row["event_id"])
                contact = contacts_by_id.get(row["contact_id"])
                if event is not None and contact is not None:
                    add_contact(event, contact)

        return Snapshot(categories=categories, events=events, contacts=contacts)
