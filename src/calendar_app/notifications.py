"""
Event reminders: a one-second clock loop that reports events whose reminder
time (date minus notification offset) has come.
"""

import logging
import time
from collections.abc import Callable
from collections.abc import Iterable
from datetime import datetime

from calendar_app.models import Event

logger = logging.getLogger(__name__)


def due_events(events: Iterable[Event], now: datetime) -> list[Event]:
    """Events whose reminder falls in the same minute as ``now``."""
    minute = now.replace(second=0, microsecond=0)
    return [event for event in events if event.notify_at == minute]


def run_clock(
    events: Callable[[], Iterable[Event]],
    on_tick: Callable[[datetime], None],
    on_due: Callable[[Event], None],
    *,
    interval: float = 1.0,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: int | None = None,
) -> int:
    """
    Drive the reminder loop on the calling thread.

    Every ``interval`` seconds ``on_tick`` receives the current time, then
    ``on_due`` is called for each due event.  An event is reported once per
    reminder minute even though the loop ticks several times within it.
    ``events`` is called on every tick so edits made meanwhile are seen.

    Runs until interrupted (Ctrl-C) or ``max_ticks`` ticks; returns the number
    of ticks performed.
    """
    notified: set[tuple[int, datetime]] = set()
    ticks = 0
    try:
        while max_ticks is None or ticks < max_ticks:
            now = clock()
            on_tick(now)
            for event in due_events(events(), now):
                key = (id(event), event.notify_at)
                if key in notified:
                    continue
                notified.add(key)
                logger.debug(f"Reminder due: {event.name} at {event.formatted_date}")
                on_due(event)
            ticks += 1
            sleep(interval)
    except KeyboardInterrupt:
        logger.info("Reminder clock stopped")
    return ticks
