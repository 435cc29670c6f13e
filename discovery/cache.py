"""TTL cache of generated events, keyed by normalized location."""
from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from storage.kv_store import KeyValueStore

from .models import DiscoveredEvent

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "ballot:event-cache:"
CACHE_VERSION = 1
DEFAULT_TTL_MS = 12 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_location(location: str) -> str:
    """``"Phoenix,  AZ"`` -> ``"phoenix-az"``."""
    normalized = re.sub(r"\s+", "-", location.lower().strip())
    return re.sub(r"[^a-z0-9-]", "", normalized)


def cache_key(location: str) -> str:
    return f"{CACHE_KEY_PREFIX}{normalize_location(location)}"


@dataclass(frozen=True)
class CacheHit:
    events: List[DiscoveredEvent]
    age_ms: int


@dataclass(frozen=True)
class CacheInfo:
    exists: bool
    age_ms: Optional[int] = None
    is_valid: Optional[bool] = None
    event_count: Optional[int] = None


class EventCache:
    """Stores event lists with a fixed time-to-live.

    Expired and missing entries look the same to callers: both are misses.
    Entries that fail to load are deleted.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.ttl_ms = ttl_ms
        self._clock = clock

    def _load_entry(self, location: str) -> Optional[tuple[int, List[DiscoveredEvent]]]:
        key = cache_key(location)
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            timestamp = entry["timestamp"]
            if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or timestamp <= 0:
                raise ValueError("invalid timestamp")
            if not isinstance(entry["events"], list):
                raise ValueError("events is not a list")
            events = [DiscoveredEvent.from_dict(item) for item in entry["events"]]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Invalid cache entry for {location} ({e}), clearing...")
            self.invalidate(location)
            return None
        return int(timestamp), events

    def get(self, location: str) -> Optional[CacheHit]:
        loaded = self._load_entry(location)
        if loaded is None:
            logger.info(f"No cache found for {location}")
            return None

        timestamp, events = loaded
        age = self._clock() - timestamp
        if age >= self.ttl_ms:
            logger.info(f"Cache expired for {location} (age: {round(age / 60000)}min)")
            return None

        logger.info(f"Cache hit for {location} (age: {round(age / 60000)}min, {len(events)} events)")
        return CacheHit(events=events, age_ms=max(age, 0))

    def put(self, location: str, events: List[DiscoveredEvent]) -> None:
        entry = {
            "location": location,
            "events": [event.to_dict() for event in events],
            "timestamp": self._clock(),
            "version": CACHE_VERSION,
        }
        try:
            self.store.set(cache_key(location), json.dumps(entry))
            logger.info(f"Cached {len(events)} events for {location}")
        except OSError as e:
            logger.error(f"Failed to cache events for {location}: {e}")

    def invalidate(self, location: str) -> None:
        try:
            self.store.delete(cache_key(location))
            logger.info(f"Cleared cache for {location}")
        except OSError as e:
            logger.error(f"Failed to clear cache for {location}: {e}")

    def invalidate_all(self) -> None:
        try:
            keys = [key for key in self.store.keys() if key.startswith(CACHE_KEY_PREFIX)]
            if keys:
                self.store.delete_many(keys)
                logger.info(f"Cleared {len(keys)} cache entries")
        except OSError as e:
            logger.error(f"Failed to clear all caches: {e}")

    def info(self, location: str) -> CacheInfo:
        """Report on an entry without validating its events."""
        raw = self.store.get(cache_key(location))
        if raw is None:
            return CacheInfo(exists=False)
        try:
            entry = json.loads(raw)
            age = self._clock() - int(entry["timestamp"])
            events = entry.get("events") or []
        except (ValueError, KeyError, TypeError):
            return CacheInfo(exists=True, is_valid=False)
        return CacheInfo(exists=True, age_ms=age, is_valid=age < self.ttl_ms, event_count=len(events))


def format_cache_age(age_ms: int) -> str:
    """``7_200_000`` -> ``"2h ago"``."""
    minutes = age_ms // 1000 // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}min ago"
    return "Just now"
