"""
Full-snapshot XML file holding the three collections.

The file is the local copy of the data: it is read at startup before the
database is reconciled, and rewritten in full after every change.  Records keep
their database ids (0 for records never stored); cross references use
file-local ``ref`` keys so unstored records round-trip as well.

Layout::

    <calendar>
      <categories>
        <category ref="cat-0" id="1" name="Work" color="#FF0000"/>
      </categories>
      <events>
        <event ref="evt-0" id="3" name="Standup" date="2025-01-10T09:00"
               notify-offset="00:15" location="" category="cat-0">
          <description>...</description>
          <contact ref="con-0"/>
        </event>
      </events>
      <contacts>
        <contact ref="con-0" id="2" first-name="Jane" last-name="Doe"
                 phone="123 456 789"/>
      </contacts>
    </calendar>
"""

import logging
import os
import tempfile
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path

from calendar_app.associations import add_contact
from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import Event
from calendar_app.models import Snapshot
from calendar_app.models import StoreError
from calendar_app.models import ValidationError
from calendar_app.validation import format_offset
from calendar_app.validation import parse_offset

logger = logging.getLogger(__name__)


def _encode(categories: list[Category], events: list[Event], contacts: list[Contact]) -> ET.Element:
    category_refs = {id(c): f"cat-{i}" for i, c in enumerate(categories)}
    contact_refs = {id(c): f"con-{i}" for i, c in enumerate(contacts)}

    root = ET.Element("calendar")

    categories_el = ET.SubElement(root, "categories")
    for category in categories:
        ET.SubElement(
            categories_el,
            "category",
            ref=category_refs[id(category)],
            id=str(category.id),
            name=category.name,
            color=category.color_hex,
        )

    events_el = ET.SubElement(root, "events")
    for i, event in enumerate(events):
        event_el = ET.SubElement(
            events_el,
            "event",
            ref=f"evt-{i}",
            id=str(event.id),
            name=event.name,
            date=event.date.isoformat(timespec="minutes"),
        )
        event_el.set("notify-offset", format_offset(event.notify_offset))
        event_el.set("location", event.location)
        if event.category is not None and id(event.category) in category_refs:
            event_el.set("category", category_refs[id(event.category)])
        ET.SubElement(event_el, "description").text = event.description
        # The association is written once, from the event side.
        for contact in event.contacts:
            if id(contact) in contact_refs:
                ET.SubElement(event_el, "contact", ref=contact_refs[id(contact)])

    contacts_el = ET.SubElement(root, "contacts")
    for contact in contacts:
        contact_el = ET.SubElement(
            contacts_el, "contact", ref=contact_refs[id(contact)], id=str(contact.id)
        )
        contact_el.set("first-name", contact.first_name)
        contact_el.set("last-name", contact.last_name)
        contact_el.set("phone", contact.phone_number)

    return root


def _decode(root: ET.Element) -> Snapshot:
    if root.tag != "calendar":
        raise StoreError(f"Unexpected root element <{root.tag}>, expected <calendar>")

    snapshot = Snapshot()
    categories_by_ref: dict[str, Category] = {}
    contacts_by_ref: dict[str, Contact] = {}

    for el in root.iterfind("categories/category"):
        category = Category(
            id=int(el.get("id", "0")),
            name=el.get("name", ""),
            color_hex=el.get("color", "#FFFFFF"),
        )
        categories_by_ref[el.get("ref", "")] = category
        snapshot.categories.append(category)

    for el in root.iterfind("contacts/contact"):
        contact = Contact(
            id=int(el.get("id", "0")),
            first_name=el.get("first-name", ""),
            last_name=el.get("last-name", ""),
            phone_number=el.get("phone", ""),
        )
        contacts_by_ref[el.get("ref", "")] = contact
        snapshot.contacts.append(contact)

    for el in root.iterfind("events/event"):
        event = Event(
            id=int(el.get("id", "0")),
            name=el.get("name", ""),
            date=datetime.fromisoformat(el.get("date", "")),
            notify_offset=parse_offset(el.get("notify-offset", "00:00")),
            location=el.get("location", ""),
            description=el.findtext("description", default="") or "",
            category=categories_by_ref.get(el.get("category", "")),
        )
        snapshot.events.append(event)
        for link in el.iterfind("contact"):
            contact = contacts_by_ref.get(link.get("ref", ""))
            if contact is None:
                logger.warning(f"Event {event.name!r} links unknown contact {link.get('ref')!r}")
                continue
            add_contact(event, contact)

    return snapshot


class XMLStore:
    """Reads and writes the XML snapshot file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(
        self, categories: list[Category], events: list[Event], contacts: list[Contact]
    ) -> None:
        """Overwrite the snapshot file with the given collections."""
        tree = ET.ElementTree(_encode(categories, events, contacts))
        ET.indent(tree)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target then swap, so a crash never leaves half a file.
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "wb") as fh:
                    tree.write(fh, encoding="utf-8", xml_declaration=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}: {e}") from e
        logger.debug(
            f"Saved {len(categories)} categories, {len(events)} events, "
            f"{len(contacts)} contacts to {self.path}"
        )

    def load(self, path: Path | None = None) -> Snapshot | None:
        """
        Read a snapshot file (this store's file unless ``path`` is given).

        Returns None when the file does not exist or is empty.  Raises
        StoreError when it cannot be parsed.
        """
        path = Path(path) if path is not None else self.path
        if not path.exists() or path.stat().st_size == 0:
            logger.debug(f"No snapshot at {path}")
            return None
        try:
            root = ET.parse(path).getroot()
            return _decode(root)
        except ET.ParseError as e:
            raise StoreError(f"Cannot parse {path}: {e}") from e
        except (ValueError, ValidationError) as e:
            raise StoreError(f"Invalid value in {path}: {e}") from e
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
