"""
Event <-> Contact association maintenance.

Both sides of the many-to-many association are plain lists on the entities.
Every function here writes both sides, so that for any event ``e`` and contact
``c``::

    e in c.events  <=>  c in e.contacts

Membership is by identity (entities are ``eq=False`` dataclasses).  Adds and
removes check presence before writing, which makes them idempotent and keeps
the two sides from recursing into each other.
"""

from collections.abc import Iterable

from calendar_app.models import Contact
from calendar_app.models import Event


def _contains(items: list, obj) -> bool:
    return any(item is obj for item in items)


def _discard(items: list, obj) -> None:
    for i, item in enumerate(items):
        if item is obj:
            del items[i]
            return


def add_contact(event: Event, contact: Contact) -> None:
    """Link ``contact`` to ``event`` on both sides."""
    if not _contains(contact.events, event):
        contact.events.append(event)
    if not _contains(event.contacts, contact):
        event.contacts.append(contact)


def add_event(contact: Contact, event: Event) -> None:
    """Link ``event`` to ``contact`` on both sides."""
    add_contact(event, contact)


def remove_contact(event: Event, contact: Contact) -> None:
    """Unlink ``contact`` from ``event`` on both sides; no-op if not linked."""
    _discard(contact.events, event)
    _discard(event.contacts, contact)


def remove_event(contact: Contact, event: Event) -> None:
    """Unlink ``event`` from ``contact`` on both sides; no-op if not linked."""
    remove_contact(event, contact)


def replace_contacts(event: Event, new_contacts: Iterable[Contact]) -> None:
    """
    Make ``event.contacts`` equal (as a set) to ``new_contacts``.

    Contacts dropped from the list lose the event; contacts new to the list
    gain it.  Contacts present in both are left untouched.
    """
    new_contacts = list(new_contacts)
    current = list(event.contacts)

    for contact in current:
        if not _contains(new_contacts, contact):
            remove_contact(event, contact)

    for contact in new_contacts:
        if not _contains(current, contact):
            add_contact(event, contact)


def replace_events(contact: Contact, new_events: Iterable[Event]) -> None:
    """Mirror of :func:`replace_contacts` seen from the contact side."""
    new_events = list(new_events)
    current = list(contact.events)

    for event in current:
        if not _contains(new_events, event):
            remove_event(contact, event)

    for event in new_events:
        if not _contains(current, event):
            add_event(contact, event)


def detach_event(event: Event) -> None:
    """Remove ``event`` from every contact it is linked to."""
    replace_contacts(event, [])


def detach_contact(contact: Contact) -> None:
    """Remove ``contact`` from every event it is linked to."""
    replace_events(contact, [])


def related_ids(items: Iterable) -> set[int]:
    """Identifiers of persisted records in ``items``."""
    return {item.id for item in items if item.id}
