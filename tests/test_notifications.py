"""
Unit tests for the reminder clock.
"""

from datetime import datetime
from datetime import timedelta

from calendar_app.notifications import due_events
from calendar_app.notifications import run_clock
from tests.conftest import STANDUP_AT
from tests.conftest import make_event


class FakeClock:
    """Advances by ``step`` on every reading."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


def test_due_events_matches_reminder_minute():
    standup = make_event()  # 09:00, reminded 15 minutes before
    assert due_events([standup], datetime(2025, 1, 10, 8, 45, 30)) == [standup]
    assert due_events([standup], datetime(2025, 1, 10, 8, 46)) == []


class TestRunClock:
    def test_reports_each_event_once_per_minute(self):
        standup = make_event()
        clock = FakeClock(STANDUP_AT - timedelta(minutes=15, seconds=-10))
        due, ticks = [], []

        count = run_clock(
            lambda: [standup],
            ticks.append,
            due.append,
            clock=clock,
            sleep=lambda _: None,
            max_ticks=5,
        )

        assert count == 5
        assert len(ticks) == 5
        assert due == [standup]

    def test_sees_events_added_while_running(self):
        events = []
        clock = FakeClock(STANDUP_AT - timedelta(minutes=15))
        due = []

        def on_tick(now):
            if not events:
                events.append(make_event())

        run_clock(lambda: events, on_tick, due.append, clock=clock, sleep=lambda _: None,
                  max_ticks=1)
        assert len(due) == 1

    def test_stops_on_keyboard_interrupt(self):
        def interrupt(_):
            raise KeyboardInterrupt

        ticks = run_clock(
            lambda: [], lambda now: None, lambda e: None, clock=FakeClock(STANDUP_AT),
            sleep=interrupt,
        )
        assert ticks == 1
