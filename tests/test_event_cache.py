"""Tests for the TTL event cache."""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from discovery.cache import (
    CACHE_KEY_PREFIX,
    DEFAULT_TTL_MS,
    EventCache,
    cache_key,
    format_cache_age,
    normalize_location,
)
from discovery.models import QA, DiscoveredEvent
from storage.kv_store import InMemoryStore

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


def make_event(event_id="event-1", title="Town Hall"):
    return DiscoveredEvent(
        id=event_id,
        title=title,
        location="Phoenix, AZ",
        address="City Hall, 200 W Washington St, Phoenix, AZ",
        date="Oct 23, 2025 • 7:30 PM",
        time="7:30 PM",
        overview="Budget discussion.",
        image_key="event1",
        source_urls=("https://phoenix.gov",),
        qa_pairs=(QA("When?", "Thursday"),),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def cache(store, clock):
    return EventCache(store, clock=clock)


def test_normalize_location():
    assert normalize_location("Phoenix,  AZ") == "phoenix-az"
    assert normalize_location("  San José, CA ") == "san-jos-ca"
    assert cache_key("Phoenix, AZ") == f"{CACHE_KEY_PREFIX}phoenix-az"


def test_miss_when_empty(cache):
    assert cache.get("Phoenix, AZ") is None


def test_put_then_get_round_trips(cache, clock):
    events = [make_event(), make_event("event-2", "Rally")]
    cache.put("Phoenix, AZ", events)
    clock.now += 60_000

    hit = cache.get("Phoenix, AZ")

    assert hit is not None
    assert hit.events == events
    assert hit.age_ms == 60_000


def test_ttl_boundary(cache, clock):
    cache.put("Phoenix, AZ", [make_event()])

    clock.now = T0 + DEFAULT_TTL_MS - 1
    assert cache.get("Phoenix, AZ") is not None

    clock.now = T0 + DEFAULT_TTL_MS
    assert cache.get("Phoenix, AZ") is None

    clock.now = T0 + DEFAULT_TTL_MS + 1
    assert cache.get("Phoenix, AZ") is None


def test_locations_normalizing_alike_share_an_entry(cache):
    cache.put("Phoenix, AZ", [make_event()])
    hit = cache.get("  phoenix   az ")
    assert hit is not None
    assert hit.events[0].id == "event-1"


def test_corrupt_entry_is_deleted(cache, store):
    store.set(cache_key("Phoenix, AZ"), "{not json")
    assert cache.get("Phoenix, AZ") is None
    assert store.get(cache_key("Phoenix, AZ")) is None


@pytest.mark.parametrize("entry", [
    {"events": [], "timestamp": 0},
    {"events": [], "timestamp": "yesterday"},
    {"events": "nope", "timestamp": T0},
    {"events": [{"id": "x"}], "timestamp": T0},
    {"timestamp": T0},
])
def test_invalid_entries_are_deleted(cache, store, entry):
    store.set(cache_key("Phoenix, AZ"), json.dumps(entry))
    assert cache.get("Phoenix, AZ") is None
    assert store.get(cache_key("Phoenix, AZ")) is None


def test_empty_list_is_cached(cache):
    cache.put("Nowhere, ZZ", [])
    hit = cache.get("Nowhere, ZZ")
    assert hit is not None
    assert hit.events == []


def test_invalidate_and_invalidate_all(cache, store):
    cache.put("Phoenix, AZ", [make_event()])
    cache.put("Austin, TX", [make_event()])
    store.set("ballot:saved_events", "{}")

    cache.invalidate("Phoenix, AZ")
    assert cache.get("Phoenix, AZ") is None
    assert cache.get("Austin, TX") is not None

    cache.invalidate_all()
    assert cache.get("Austin, TX") is None
    assert store.get("ballot:saved_events") == "{}"


def test_info(cache, clock):
    assert not cache.info("Phoenix, AZ").exists

    cache.put("Phoenix, AZ", [make_event(), make_event("event-2")])
    clock.now += 1000
    info = cache.info("Phoenix, AZ")
    assert info.exists
    assert info.is_valid
    assert info.age_ms == 1000
    assert info.event_count == 2

    clock.now = T0 + DEFAULT_TTL_MS
    assert not cache.info("Phoenix, AZ").is_valid


def test_write_failure_is_logged_not_raised(clock):
    class BrokenStore(InMemoryStore):
        def set(self, key, value):
            raise OSError("disk full")

    cache = EventCache(BrokenStore(), clock=clock)
    cache.put("Phoenix, AZ", [make_event()])
    assert cache.get("Phoenix, AZ") is None


def test_format_cache_age():
    assert format_cache_age(0) == "Just now"
    assert format_cache_age(59_999) == "Just now"
    assert format_cache_age(5 * 60_000) == "5min ago"
    assert format_cache_age(2 * 3_600_000) == "2h ago"
    assert format_cache_age(3 * 86_400_000) == "3d ago"
