"""Reminders for saved events, one hour before they start."""
from __future__ import annotations

import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import DiscoveredEvent
from .transformer import DATE_SEPARATOR

logger = logging.getLogger(__name__)

REMINDER_LEAD = timedelta(hours=1)
DEFAULT_HOUR = 9

DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%Y-%m-%d")
TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)", re.IGNORECASE)


def parse_event_datetime(date_str: str, time_str: Optional[str] = None) -> Optional[datetime]:
    """Parse ``"Oct 23, 2025 • 7:30 PM"`` style display values into a naive datetime.

    The start of a range like ``"7:30 PM - 9:00 PM"`` is used. A missing or
    unreadable time means 9:00 AM.
    """
    day_part = (date_str or "").split(DATE_SEPARATOR)[0].strip()
    day = None
    for fmt in DATE_FORMATS:
        try:
            day = datetime.strptime(day_part, fmt)
            break
        except ValueError:
            continue
    if day is None:
        logger.warning("Invalid date format: %r", date_str)
        return None

    if not time_str:
        return day.replace(hour=DEFAULT_HOUR)

    match = TIME_RE.search(time_str.split("-")[0])
    if not match:
        logger.warning("Could not parse time, defaulting to 9 AM: %r", time_str)
        return day.replace(hour=DEFAULT_HOUR)

    hours, minutes = int(match.group(1)), int(match.group(2))
    meridiem = match.group(3).upper()
    if meridiem == "PM" and hours != 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        logger.warning("Time out of range, defaulting to 9 AM: %r", time_str)
        return day.replace(hour=DEFAULT_HOUR)
    return day.replace(hour=hours, minute=minutes)


def reminder_time(event: DiscoveredEvent, now: Optional[datetime] = None) -> Optional[datetime]:
    """When to remind about ``event``, or None if it cannot be parsed or is already past."""
    starts_at = parse_event_datetime(event.date, event.time)
    if starts_at is None:
        return None
    remind_at = starts_at - REMINDER_LEAD
    if remind_at <= (now or datetime.now()):
        logger.info(f"Event is in the past, skipping reminder: {event.title}")
        return None
    return remind_at


@dataclass(frozen=True)
class Reminder:
    notification_id: str
    event_id: str
    title: str
    body: str
    remind_at: datetime


class Notifier(ABC):
    """Delivery channel for reminders."""

    @abstractmethod
    def schedule(self, event: DiscoveredEvent, remind_at: datetime) -> str:
        """Schedule a reminder and return its notification id."""

    @abstractmethod
    def cancel(self, notification_id: str) -> None:
        pass


class InMemoryNotifier(Notifier):
    """Keeps scheduled reminders in process; a delivery worker can poll :meth:`due`."""

    def __init__(self):
        self._reminders: Dict[str, Reminder] = {}
        self._lock = threading.Lock()

    def schedule(self, event: DiscoveredEvent, remind_at: datetime) -> str:
        reminder = Reminder(
            notification_id=str(uuid.uuid4()),
            event_id=event.id,
            title="Event Starting Soon!",
            body=f"{event.title} starts in 1 hour at {event.time or '9:00 AM'}",
            remind_at=remind_at,
        )
        with self._lock:
            self._reminders[reminder.notification_id] = reminder
        logger.info(f"Scheduled reminder for \"{event.title}\" at {remind_at.isoformat()}")
        return reminder.notification_id

    def cancel(self, notification_id: str) -> None:
        with self._lock:
            removed = self._reminders.pop(notification_id, None)
        if removed is not None:
            logger.info("Cancelled reminder %s", notification_id)

    @property
    def scheduled(self) -> List[Reminder]:
        with self._lock:
            return sorted(self._reminders.values(), key=lambda r: r.remind_at)

    def due(self, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or datetime.now()
        return [r for r in self.scheduled if r.remind_at <= now]
