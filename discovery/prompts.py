"""Prompt text for event generation."""
from __future__ import annotations

import json
import re
from datetime import date, timedelta

MAX_LOCATION_LENGTH = 200
SEARCH_WINDOW_DAYS = 30
MAX_EVENTS = 10

SYSTEM_PROMPT = (
    "You search the live web and return ONLY valid JSON that matches the provided JSON Schema. "
    "No markdown, no commentary. Cite sources for each card in source_urls. "
    "Prefer official and reputable sources. Do not invent data. If unsure, omit the field. "
    "Keep ai_overview under 60 words and factual. "
    "Find as many political events as possible that fall within parameters."
)

EVENT_CARDS_SCHEMA = {
    "name": "EventCards",
    "schema": {
        "type": "object",
        "required": ["cards"],
        "properties": {
            "cards": {
                "type": "array",
                "maxItems": 50,
                "items": {
                    "type": "object",
                    "required": ["name", "date", "time", "address", "ai_overview", "link", "source_urls"],
                    "properties": {
                        "name": {"type": "string"},
                        "date": {"type": "string", "description": "ISO 8601 date, e.g., 2025-10-23"},
                        "time": {
                            "type": "object",
                            "required": ["start"],
                            "properties": {
                                "start": {"type": "string", "description": "ISO 8601 datetime with offset"},
                                "end": {"type": "string"},
                            },
                        },
                        "address": {
                            "type": "object",
                            "required": ["venue", "street", "city", "state"],
                            "properties": {
                                "venue": {"type": "string"},
                                "street": {"type": "string"},
                                "city": {"type": "string"},
                                "state": {"type": "string"},
                                "postal_code": {"type": "string"},
                                "country": {"type": "string"},
                            },
                        },
                        "location": {
                            "type": "object",
                            "properties": {"lat": {"type": "number"}, "lon": {"type": "number"}},
                        },
                        "ai_overview": {"type": "string", "description": "<= 60 words. Neutral, factual."},
                        "link": {"type": "string"},
                        "source_urls": {"type": "array", "items": {"type": "string"}},
                        "tags": {"type": "array", "items": {"type": "string"}},
                        "organizer": {"type": "string"},
                        "website_link": {"type": "string"},
                        "impact_statement": {
                            "type": "string",
                            "description": "One sentence on why this matters to local residents.",
                        },
                        "qa_pairs": {
                            "type": "array",
                            "maxItems": 3,
                            "items": {
                                "type": "object",
                                "required": ["question", "answer"],
                                "properties": {"question": {"type": "string"}, "answer": {"type": "string"}},
                            },
                        },
                        "image_keyword": {
                            "type": "string",
                            "description": "One or two words for a stock photo, e.g. town-hall",
                        },
                    },
                },
            }
        },
    },
}

EVENT_PROMPT_TEMPLATE = """{system_prompt}

JSON SCHEMA:
{schema}

USER PROMPT:
Find political events near the user and return JSON ONLY per the schema.

Location:
- City, State: {location}

Time window:
- Start: {start_date}
- End: {end_date}

Inclusion rules:
- Include rallies, canvasses, town halls, school board or city meetings, voter registration drives.
- Require concrete date, start time, venue, and address.
- Prefer official orgs, Mobilize, Eventbrite, Meetup, universities, and city government sites.
- Max {max_events} items.

Output:
- cards[] with name, date, time.start, time.end if known, address{{venue,street,city,state,postal_code,country}}, location{{lat,lon}} if present, ai_overview, link, source_urls[], and when known organizer, website_link, impact_statement, qa_pairs (up to 3), image_keyword.
- Do not include any text outside the JSON."""

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_UNSAFE_CHARS_RE = re.compile(r"[\"'`{}\[\]\\]")


def sanitize_location(location: str) -> str:
    """Make a user-supplied location safe to embed in the prompt.

    Strips control characters, quotes, backticks, braces, brackets and
    backslashes, collapses whitespace and caps the length.
    """
    cleaned = _CONTROL_CHARS_RE.sub(" ", location)
    cleaned = _UNSAFE_CHARS_RE.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:MAX_LOCATION_LENGTH].strip()


def build_event_prompt(location: str, today: date | None = None) -> str:
    """Return the user prompt asking for events near ``location``.

    ``location`` must already be sanitized.
    """
    today = today or date.today()
    end = today + timedelta(days=SEARCH_WINDOW_DAYS)
    return EVENT_PROMPT_TEMPLATE.format(
        system_prompt=SYSTEM_PROMPT,
        schema=json.dumps(EVENT_CARDS_SCHEMA, indent=2),
        location=location,
        start_date=today.isoformat(),
        end_date=end.isoformat(),
        max_events=MAX_EVENTS,
    )


def build_messages(location: str, today: date | None = None) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_event_prompt(location, today)},
    ]
