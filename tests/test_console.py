"""
Tests for the interactive console menu, driven by scripted answers.
"""

import io

import pytest
from rich.console import Console

from calendar_app.console import ConsoleMenu
from calendar_app.controller import CalendarController
from tests.conftest import STANDUP_AT
from tests.fake_store import FakeDatabase

ADD_EVENT = "4"
EDIT_EVENT = "5"
DELETE_EVENT = "6"
ADD_CONTACT = "9"
ADD_CATEGORY = "13"
EXIT = "0"


class ScriptedPrompt:
    """Answers prompts from a fixed list, recording every question asked."""

    def __init__(self, answers: list[str]):
        self.answers = list(answers)
        self.questions: list[str] = []

    def __call__(self, text: str, default: str | None = None) -> str:
        self.questions.append(text)
        if not self.answers:
            pytest.fail(f"Unexpected prompt: {text!r}")
        return self.answers.pop(0)


def _run_menu(controller, answers: list[str]) -> str:
    out = io.StringIO()
    prompt = ScriptedPrompt(answers)
    ConsoleMenu(controller, Console(file=out, width=160), prompt=prompt).run()
    assert prompt.answers == [], "not every scripted answer was consumed"
    return out.getvalue()


class TestMenu:
    def test_add_category_then_event(self, offline_controller):
        _run_menu(
            offline_controller,
            [
                ADD_CATEGORY, "Work", "#00ff00",
                ADD_EVENT, "Standup", "10.01.2025 09:00", "00:15", "Room 4", "", "1",
                EXIT,
            ],
        )

        [work] = offline_controller.categories
        [standup] = offline_controller.events
        assert work.color_hex == "#00FF00"
        assert standup.date == STANDUP_AT
        assert standup.category is work
        assert standup.location == "Room 4"

    def test_invalid_input_is_asked_again(self, offline_controller):
        output = _run_menu(
            offline_controller,
            [
                "99",
                ADD_EVENT, "", "Standup", "tomorrow", "10.01.2025 09:00", "15 min", "00:15",
                "", "",
                EXIT,
            ],
        )

        assert "Incorrect option" in output
        assert "Input cannot be empty" in output
        assert offline_controller.events[0].name == "Standup"

    def test_occupied_slot_is_asked_again(self, offline_controller):
        offline_controller.add_new_event("Standup", STANDUP_AT)
        output = _run_menu(
            offline_controller,
            [ADD_EVENT, "Retro", "10.01.2025 09:00", "10.01.2025 10:00", "00:00", "", "", EXIT],
        )
        assert "already occupied" in output
        assert [e.date.hour for e in offline_controller.events] == [9, 10]

    def test_add_contact_with_events(self, offline_controller):
        standup = offline_controller.add_new_event("Standup", STANDUP_AT)
        _run_menu(
            offline_controller,
            [ADD_CONTACT, "Jane", "Doe", "123456789", "1", EXIT],
        )
        [jane] = offline_controller.contacts
        assert jane.phone_number == "123 456 789"
        assert standup.contacts == [jane]

    def test_edit_event_keeps_category_on_empty_input(self, offline_controller):
        work = offline_controller.add_new_category("Work")
        offline_controller.add_new_category("Home")
        standup = offline_controller.add_new_event("Standup", STANDUP_AT, category=work)

        _run_menu(
            offline_controller,
            [EDIT_EVENT, "1", "Daily", "10.01.2025 09:00", "00:15", "", "", "", EXIT],
        )

        assert standup.name == "Daily"
        assert standup.category is work

    def test_edit_event_can_clear_category(self, offline_controller):
        work = offline_controller.add_new_category("Work")
        standup = offline_controller.add_new_event("Standup", STANDUP_AT, category=work)

        _run_menu(
            offline_controller,
            [EDIT_EVENT, "1", "Standup", "10.01.2025 09:00", "00:00", "", "", "skip", EXIT],
        )

        assert standup.category is None

    def test_delete_event(self, offline_controller):
        offline_controller.add_new_event("Standup", STANDUP_AT)
        _run_menu(offline_controller, [DELETE_EVENT, "1", EXIT])
        assert offline_controller.events == ()

    def test_store_error_is_reported_and_menu_continues(self, xml_store):
        controller = CalendarController(xml_store, FakeDatabase(fail_on={"upsert_category"}))
        controller.init()

        output = _run_menu(controller, [ADD_CATEGORY, "Work", "#FFFFFF", EXIT])

        assert "injected failure" in output
        assert "Please try again" in output
        assert "Exiting." in output
