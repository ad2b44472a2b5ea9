"""
Shared pytest fixtures and record builders.
"""

from datetime import datetime
from datetime import timedelta

import pytest

from calendar_app.controller import CalendarController
from calendar_app.db import CalendarDatabase
from calendar_app.models import Category
from calendar_app.models import Contact
from calendar_app.models import Event
from calendar_app.xml_store import XMLStore

STANDUP_AT = datetime(2025, 1, 10, 9, 0)


def make_event(name: str = "Standup", when: datetime = STANDUP_AT, **kwargs) -> Event:
    """Return an unstored event; extra keyword arguments go to the dataclass."""
    kwargs.setdefault("notify_offset", timedelta(minutes=15))
    return Event(name=name, date=when, **kwargs)


def make_contact(
    first_name: str = "Jane", last_name: str = "Doe", phone: str = "123 456 789"
) -> Contact:
    return Contact(first_name=first_name, last_name=last_name, phone_number=phone)


def make_category(name: str = "Work", color_hex: str = "#FF0000") -> Category:
    return Category(name=name, color_hex=color_hex)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "calendar.db"


@pytest.fixture
def xml_path(tmp_path):
    return tmp_path / "data.xml"


@pytest.fixture
def database(db_path):
    return CalendarDatabase(db_path)


@pytest.fixture
def xml_store(xml_path):
    return XMLStore(xml_path)


@pytest.fixture
def controller(xml_store, database):
    """A controller reconciled against an empty database."""
    ctrl = CalendarController(xml_store, database)
    assert ctrl.init() is True
    return ctrl


@pytest.fixture
def offline_controller(xml_store):
    """A controller with no database: file-only mode."""
    ctrl = CalendarController(xml_store)
    assert ctrl.init() is False
    return ctrl
