"""Map validated raw records onto the canonical DiscoveredEvent shape."""
from __future__ import annotations

import logging
import random
import time as _time
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from .models import QA, DiscoveredEvent, EventAddress, RawEventRecord

logger = logging.getLogger(__name__)

LOCAL_IMAGE_POOL = ("event1", "event2", "event3")
LOCAL_IMAGE_KEYS = ("event1", "event2", "event3", "event4", "event5", "event-image")
DEFAULT_IMAGE_KEY = "event-image"

DATE_SEPARATOR = " • "
TIME_TBD = "Time TBD"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def rolling_hash(text: str) -> int:
    """Signed 32-bit ``h = h * 31 + code`` hash over the characters of ``text``."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def make_event_id(title: str, event_date: str, location: str, generated_at: int) -> str:
    """Identifier from event content plus the generation batch timestamp (ms)."""
    combined = f"{title}-{event_date}-{location}"
    return f"event-{abs(rolling_hash(combined))}-{generated_at}"


def _parse_iso_datetime(value: str) -> datetime:
    value = value.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_time(iso_start: str) -> Optional[str]:
    """``2025-10-23T19:30:00-07:00`` -> ``7:30 PM`` in the datetime's own offset."""
    try:
        dt = _parse_iso_datetime(iso_start)
    except (ValueError, AttributeError):
        logger.warning("Could not parse start time: %r", iso_start)
        return None
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_display_date(iso_date: str, iso_start: str) -> str:
    """Render ``Oct 23, 2025 • 7:30 PM``.

    Falls back to the raw ISO strings joined by the same separator when either
    value cannot be parsed.
    """
    display_time = format_time(iso_start)
    try:
        d = date.fromisoformat(iso_date.strip()[:10])
    except (ValueError, AttributeError):
        logger.warning("Could not parse event date: %r", iso_date)
        d = None
    if d is None or display_time is None:
        return f"{iso_date}{DATE_SEPARATOR}{iso_start}"
    return f"{_MONTHS[d.month - 1]} {d.day}, {d.year}{DATE_SEPARATOR}{display_time}"


def compose_address(address: EventAddress) -> str:
    composed = f"{address.venue}, {address.street}, {address.city}, {address.state}"
    if address.postal_code and address.postal_code.strip():
        composed += f" {address.postal_code.strip()}"
    return composed


def pick_local_image(rng: random.Random | None = None) -> str:
    return (rng or random).choice(LOCAL_IMAGE_POOL)


def resolve_image_key(key: Optional[str]) -> str:
    """Map unknown or missing keys to the default bundled image."""
    return key if key in LOCAL_IMAGE_KEYS else DEFAULT_IMAGE_KEY


def image_keyword_for(record: RawEventRecord) -> Optional[str]:
    """Keyword used for the remote image lookup, if any."""
    if record.image_keyword and record.image_keyword.strip():
        return record.image_keyword.strip()
    for tag in record.tags or []:
        if tag and tag.strip():
            return tag.strip()
    return None


def transform_event(
    record: RawEventRecord,
    image_url: Optional[str] = None,
    generated_at: Optional[int] = None,
    rng: random.Random | None = None,
) -> DiscoveredEvent:
    if generated_at is None:
        generated_at = int(_time.time() * 1000)

    title = record.name.strip()
    location = f"{record.address.city}, {record.address.state}".strip()
    display_time = format_time(record.time.start) or TIME_TBD

    return DiscoveredEvent(
        id=make_event_id(title, record.date, location, generated_at),
        title=title,
        location=location,
        address=compose_address(record.address).strip(),
        date=format_display_date(record.date, record.time.start),
        time=display_time,
        overview=record.overview.strip(),
        image_url=image_url or None,
        image_key=None if image_url else pick_local_image(rng),
        link=record.link,
        source_urls=tuple(record.source_urls),
        tags=tuple(record.tags) if record.tags is not None else None,
        venue=record.address.venue,
        organizer=record.organizer,
        website_link=record.website_link,
        impact_statement=record.impact_statement,
        qa_pairs=tuple(QA(qa.question, qa.answer) for qa in record.qa_pairs) if record.qa_pairs is not None else None,
    )


def transform_events(
    records: Sequence[RawEventRecord],
    image_urls: Iterable[Optional[str]] | None = None,
    generated_at: Optional[int] = None,
    rng: random.Random | None = None,
) -> List[DiscoveredEvent]:
    """Transform a batch, dropping records whose identifier repeats."""
    if generated_at is None:
        generated_at = int(_time.time() * 1000)
    urls = list(image_urls) if image_urls is not None else []
    urls += [None] * (len(records) - len(urls))

    events: List[DiscoveredEvent] = []
    seen: set[str] = set()
    for record, url in zip(records, urls):
        event = transform_event(record, url, generated_at, rng)
        if event.id in seen:
            logger.info("Dropping duplicate event: %s", event.title)
            continue
        seen.add(event.id)
        events.append(event)
    return events
