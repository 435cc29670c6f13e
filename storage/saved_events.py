"""Persistence for events the user has saved."""
from __future__ import annotations

import asyncio
import json
import logging
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from discovery.models import SavedEvent
from discovery.reminders import Notifier, reminder_time

from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SAVED_EVENTS_KEY = "ballot:saved_events"
CURRENT_DATA_VERSION = 1


def serialize_event(event: SavedEvent) -> Dict[str, Any]:
    return event.to_dict()


def deserialize_event(data: Dict[str, Any]) -> SavedEvent:
    return SavedEvent.from_dict(data)


class SavedEventStore:
    """Reads and writes the ``{version, events}`` document under one key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> List[SavedEvent]:
        raw = self.store.get(SAVED_EVENTS_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to load saved events: {e}")
            return []
        if not isinstance(data, dict):
            logger.error("Saved events document is not an object, ignoring it")
            return []

        if data.get("version") != CURRENT_DATA_VERSION:
            logger.info(
                "Migrating saved events from version %s to %s", data.get("version"), CURRENT_DATA_VERSION
            )

        items = data.get("events") or []
        if not isinstance(items, list):
            logger.error("Saved events list is %s, not a list, ignoring it", type(items).__name__)
            return []

        events: List[SavedEvent] = []
        for item in items:
            try:
                events.append(deserialize_event(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable saved event: {e}")
        return events

    def save(self, events: List[SavedEvent]) -> None:
        data = {"version": CURRENT_DATA_VERSION, "events": [serialize_event(e) for e in events]}
        self.store.set(SAVED_EVENTS_KEY, json.dumps(data))

    def clear(self) -> None:
        self.store.delete(SAVED_EVENTS_KEY)


class SavedEventsManager:
    """In-memory list of saved events, persisted after every change.

    Each mutation updates the list first and then awaits the write, so the
    stored document always reflects the committed state. With a ``notifier``,
    saving schedules a reminder one hour before the event and removing
    cancels it.
    """

    def __init__(
        self,
        backend: SavedEventStore,
        executor: Optional[Executor] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backend = backend
        self.notifier = notifier
        self._executor = executor
        self._clock = clock
        self._events: List[SavedEvent] = []
        self.is_loading = True

    @property
    def events(self) -> List[SavedEvent]:
        return list(self._events)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def hydrate(self) -> List[SavedEvent]:
        self.is_loading = True
        try:
            self._events = await self._run(self.backend.load)
        finally:
            self.is_loading = False
        return self.events

    async def _persist(self) -> None:
        snapshot = list(self._events)
        try:
            await self._run(self.backend.save, snapshot)
        except OSError as e:
            logger.error(f"Failed to persist saved events: {e}")

    def has(self, event_id: str) -> bool:
        return any(e.id == event_id for e in self._events)

    def get(self, event_id: str) -> Optional[SavedEvent]:
        return next((e for e in self._events if e.id == event_id), None)

    def _schedule_reminder(self, event: SavedEvent) -> SavedEvent:
        if self.notifier is None or event.notification_id:
            return event
        remind_at = reminder_time(event, now=self._clock())
        if remind_at is None:
            return event
        try:
            notification_id = self.notifier.schedule(event, remind_at)
        except Exception as e:
            logger.error(f"Failed to schedule reminder for {event.title}: {e}")
            return event
        return event.with_notification(notification_id)

    def _cancel_reminder(self, event: SavedEvent) -> None:
        if self.notifier is None or not event.notification_id:
            return
        try:
            self.notifier.cancel(event.notification_id)
        except Exception as e:
            logger.error(f"Failed to cancel reminder {event.notification_id}: {e}")

    async def add(self, event: SavedEvent) -> Optional[SavedEvent]:
        """Save ``event`` (newest first) and return the stored copy.

        Returns None if an event with the same id is already saved.
        """
        if self.has(event.id):
            return None
        event = self._schedule_reminder(event)
        self._events = [event] + self._events
        await self._persist()
        return event

    async def remove(self, event_id: str) -> bool:
        event = self.get(event_id)
        if event is None:
            return False
        self._events = [e for e in self._events if e.id != event_id]
        self._cancel_reminder(event)
        await self._persist()
        return True
