import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from discovery.models import DiscoveredEvent
from discovery.reminders import InMemoryNotifier, parse_event_datetime, reminder_time


def make_event(date="Oct 23, 2025 • 7:30 PM", time="7:30 PM"):
    return DiscoveredEvent(
        id="event-1",
        title="City Council Meeting",
        location="Phoenix, AZ",
        address="City Hall, 200 W Washington St, Phoenix, AZ",
        date=date,
        time=time,
        overview="Budget vote.",
        image_key="event1",
    )


@pytest.mark.parametrize("date_str, time_str, expected", [
    ("Oct 23, 2025 • 7:30 PM", "7:30 PM", datetime(2025, 10, 23, 19, 30)),
    ("December 12, 2024", "7:30 PM - 9:00 PM", datetime(2024, 12, 12, 19, 30)),
    ("Oct 23, 2025", "12:15 AM", datetime(2025, 10, 23, 0, 15)),
    ("Oct 23, 2025", "12:00 PM", datetime(2025, 10, 23, 12, 0)),
    ("Oct 23, 2025", "Time TBD", datetime(2025, 10, 23, 9, 0)),
    ("Oct 23, 2025", None, datetime(2025, 10, 23, 9, 0)),
    ("2025-10-23 • evening", "evening", datetime(2025, 10, 23, 9, 0)),
])
def test_parse_event_datetime(date_str, time_str, expected):
    assert parse_event_datetime(date_str, time_str) == expected


def test_parse_event_datetime_rejects_unknown_dates():
    assert parse_event_datetime("sometime soon", "7:30 PM") is None


def test_reminder_is_one_hour_before_start():
    now = datetime(2025, 10, 1, 8, 0)
    assert reminder_time(make_event(), now=now) == datetime(2025, 10, 23, 18, 30)


def test_no_reminder_for_past_or_unparseable_events():
    assert reminder_time(make_event(), now=datetime(2025, 10, 23, 18, 30)) is None
    assert reminder_time(make_event(date="TBD"), now=datetime(2025, 1, 1)) is None


def test_in_memory_notifier_schedule_cancel_and_due():
    notifier = InMemoryNotifier()
    later = notifier.schedule(make_event(), datetime(2025, 10, 23, 18, 30))
    sooner = notifier.schedule(make_event(), datetime(2025, 10, 20, 8, 0))

    assert [r.notification_id for r in notifier.scheduled] == [sooner, later]
    assert [r.notification_id for r in notifier.due(datetime(2025, 10, 21))] == [sooner]

    notifier.cancel(sooner)
    notifier.cancel("unknown")
    assert [r.notification_id for r in notifier.scheduled] == [later]
