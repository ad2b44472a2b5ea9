"""
Unit tests for CalendarDatabase: id assignment, change detection, link
replacement, soft deletes, restores and the atomic purge.
"""

import sqlite3
from datetime import datetime
from datetime import timedelta

import pytest

from calendar_app import associations
from calendar_app.db import INSERTED
from calendar_app.db import RESTORED
from calendar_app.db import UNCHANGED
from calendar_app.db import UPDATED
from calendar_app.db import CalendarDatabase
from calendar_app.models import NotFoundError
from calendar_app.models import StoreError
from calendar_app.models import SyncStats
from calendar_app.models import ValidationError
from tests.conftest import make_category
from tests.conftest import make_contact
from tests.conftest import make_event


def _rows(db_path, sql, params=()):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def _links(db_path):
    return set(_rows(db_path, "SELECT event_id, contact_id FROM events_contacts"))


class TestInsert:
    def test_insert_assigns_id(self, database):
        work = make_category()
        new_id = database.insert_category(work)
        assert new_id == work.id
        assert work.id > 0

    def test_insert_event_stores_unstored_references(self, database, db_path):
        work = make_category()
        jane = make_contact()
        standup = make_event(category=work)
        associations.add_contact(standup, jane)

        database.insert_event(standup)

        assert work.id > 0 and jane.id > 0 and standup.id > 0
        assert _links(db_path) == {(standup.id, jane.id)}
        row = _rows(db_path, "SELECT category_id, notification_offset FROM events")[0]
        assert row == (work.id, 15)

    def test_insert_rejects_stored_record(self, database):
        work = make_category()
        database.insert_category(work)
        with pytest.raises(ValidationError):
            database.insert_category(work)

    def test_failed_transaction_resets_assigned_ids(self, database, db_path, monkeypatch):
        jane = make_contact()
        standup = make_event()
        associations.add_contact(standup, jane)

        def boom(conn, pairs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(CalendarDatabase, "_insert_links", staticmethod(boom))
        with pytest.raises(StoreError):
            database.insert_event(standup)

        assert standup.id == 0
        assert jane.id == 0
        assert _rows(db_path, "SELECT COUNT(*) FROM events") == [(0,)]


class TestUpsert:
    def test_first_upsert_inserts_second_is_unchanged(self, database):
        work = make_category()
        assert database.upsert_category(work) == INSERTED
        assert database.upsert_category(work) == UNCHANGED

    def test_changed_field_is_written(self, database, db_path):
        standup = make_event()
        database.upsert_event(standup)
        standup.location = "Room 4"
        standup.notify_offset = timedelta(minutes=30)

        assert database.upsert_event(standup) == UPDATED
        row = _rows(db_path, "SELECT event_location, notification_offset FROM events")[0]
        assert row == ("Room 4", 30)

    def test_changed_contact_set_is_fully_replaced(self, database, db_path):
        jane, john = make_contact("Jane"), make_contact("John", phone="987 654 321")
        standup = make_event()
        associations.replace_contacts(standup, [jane])
        database.upsert_event(standup)

        associations.replace_contacts(standup, [john])
        assert database.upsert_event(standup) == UPDATED
        assert _links(db_path) == {(standup.id, john.id)}

    def test_contact_side_update_replaces_links(self, database, db_path):
        jane = make_contact()
        standup, review = make_event("Standup"), make_event(
            "Review", datetime(2025, 1, 11, 9, 0)
        )
        associations.replace_events(jane, [standup, review])
        database.upsert_contact(jane)
        assert len(_links(db_path)) == 2

        associations.replace_events(jane, [review])
        assert database.upsert_contact(jane) == UPDATED
        assert _links(db_path) == {(review.id, jane.id)}

    def test_missing_row_is_restored_under_same_id(self, database, db_path):
        work = make_category()
        work.id = 42
        assert database.upsert_category(work) == RESTORED
        assert _rows(db_path, "SELECT id, category_name FROM categories") == [(42, "Work")]

    def test_update_of_unstored_record_raises(self, database):
        with pytest.raises(NotFoundError):
            database.update_contact(make_contact())


class TestSoftDelete:
    def test_soft_deleted_event_is_not_loaded(self, database, db_path):
        jane = make_contact()
        standup = make_event()
        associations.add_contact(standup, jane)
        database.insert_event(standup)

        database.soft_delete_event(standup)

        snapshot = database.load_all()
        assert snapshot.events == []
        assert [c.first_name for c in snapshot.contacts] == ["Jane"]
        assert snapshot.contacts[0].events == []
        assert _links(db_path) == set()
        assert _rows(db_path, "SELECT is_active FROM events") == [(0,)]

    def test_soft_deleted_category_is_cleared_from_events(self, database, db_path):
        work = make_category()
        standup = make_event(category=work)
        database.insert_event(standup)

        database.soft_delete_category(work)

        snapshot = database.load_all()
        assert snapshot.categories == []
        assert snapshot.events[0].category is None
        assert _rows(db_path, "SELECT category_id FROM events") == [(None,)]

    def test_soft_delete_of_unknown_id_raises(self, database):
        ghost = make_contact()
        ghost.id = 99
        with pytest.raises(NotFoundError):
            database.soft_delete_contact(ghost)


class TestPurge:
    def test_deletes_events_before_cutoff(self, database, db_path):
        old = make_event("Old", datetime(2024, 12, 31, 23, 59))
        new = make_event("New", datetime(2025, 1, 1, 0, 0))
        jane = make_contact()
        associations.replace_contacts(old, [jane])
        database.insert_event(old)
        database.insert_event(new)

        assert database.delete_events_before(datetime(2025, 1, 1)) == 1

        assert _rows(db_path, "SELECT event_name FROM events") == [("New",)]
        assert _links(db_path) == set()

    def test_purge_is_all_or_nothing(self, database, db_path):
        old = make_event("Old", datetime(2024, 6, 1, 12, 0))
        jane = make_contact()
        associations.replace_contacts(old, [jane])
        database.insert_event(old)

        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TRIGGER refuse_delete BEFORE DELETE ON events "
            "BEGIN SELECT RAISE(ABORT, 'boom'); END;"
        )
        conn.commit()
        conn.close()

        with pytest.raises(StoreError, match="boom"):
            database.delete_events_before(datetime(2025, 1, 1))

        assert _rows(db_path, "SELECT COUNT(*) FROM events") == [(1,)]
        assert _links(db_path) == {(old.id, jane.id)}


class TestSynchronize:
    def test_reconciles_in_dependency_order_and_reloads(self, database):
        work = make_category()
        jane = make_contact()
        standup = make_event(category=work)
        associations.add_contact(standup, jane)
        stats = SyncStats()

        snapshot = database.synchronize([work], [standup], [jane], stats)

        # The contact is written along with its event, so its own pass finds it unchanged.
        assert (stats.inserted, stats.unchanged) == (2, 1)
        assert len(snapshot.events) == 1
        loaded = snapshot.events[0]
        assert loaded is not standup
        assert loaded.category is snapshot.categories[0]
        assert loaded.contacts == snapshot.contacts
        assert snapshot.contacts[0].events == [loaded]

    def test_new_records_never_take_stored_ids(self, database):
        alpha = make_category("Alpha")
        home = make_category("Home")
        home.id = 1

        snapshot = database.synchronize([alpha, home], [], [])

        assert sorted((c.id, c.name) for c in snapshot.categories) == [(1, "Home"), (2, "Alpha")]

    def test_new_linked_contact_skips_stored_contact_ids(self, database):
        jane = make_contact("Jane")
        john = make_contact("John", phone="987 654 321")
        john.id = 1
        standup = make_event()
        associations.replace_contacts(standup, [jane, john])

        snapshot = database.synchronize([], [standup], [jane, john])

        assert sorted(c.first_name for c in snapshot.contacts) == ["Jane", "John"]
        assert john.id == 1 and jane.id == 2
        assert len(snapshot.events[0].contacts) == 2

    def test_second_pass_reports_unchanged(self, database):
        work = make_category()
        standup = make_event(category=work)
        database.synchronize([work], [standup], [])

        stats = SyncStats()
        database.synchronize([work], [standup], [], stats)
        assert (stats.inserted, stats.unchanged) == (0, 2)

    def test_load_all_round_trips_fields(self, database):
        standup = make_event(location="Room 4", description="Daily sync")
        database.insert_event(standup)

        loaded = database.load_all().events[0]
        assert loaded.id == standup.id
        assert loaded.date == standup.date
        assert loaded.notify_offset == timedelta(minutes=15)
        assert loaded.location == "Room 4"
        assert loaded.description == "Daily sync"

    def test_counts_only_active_rows(self, database):
        a, b = make_contact("A"), make_contact("B", phone="987 654 321")
        database.insert_contact(a)
        database.insert_contact(b)
        database.soft_delete_contact(a)
        assert database.counts() == {"categories": 0, "events": 0, "contacts": 1}


def test_unopenable_database_raises_store_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    database = CalendarDatabase(blocker / "calendar.db")
    with pytest.raises(StoreError):
        database.ping()
