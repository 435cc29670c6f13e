"""Static events shown when generation fails, so the list is never empty."""
from __future__ import annotations

from typing import List

from .models import DiscoveredEvent

FALLBACK_EVENTS = (
    DiscoveredEvent(
        id="fallback-1",
        title="Community Meeting - Discuss Development Plans",
        location="Phoenix, Arizona",
        address="200 W Washington St, Phoenix, AZ 85003",
        date="Dec 12, 2024 • 7:30 PM",
        time="7:30 PM",
        overview=(
            "Join us for a community meeting to discuss upcoming development plans in downtown "
            "Phoenix. Local officials and residents will gather to review proposed projects and "
            "provide feedback."
        ),
        image_key="event1",
    ),
    DiscoveredEvent(
        id="fallback-2",
        title="Town Hall - Education Reform Debate",
        location="Austin, Texas",
        address="301 W 2nd St, Austin, TX 78701",
        date="Jan 8, 2025 • 6:00 PM",
        time="6:00 PM",
        overview=(
            "An open town hall forum to debate education reform proposals. School board members "
            "and community leaders will present plans and answer questions from concerned parents "
            "and educators."
        ),
        image_key="event2",
    ),
    DiscoveredEvent(
        id="fallback-3",
        title="Policy Forum - Climate Action Strategy",
        location="Seattle, Washington",
        address="600 4th Ave, Seattle, WA 98104",
        date="Feb 2, 2025 • 5:30 PM",
        time="5:30 PM",
        overview=(
            "A policy forum focused on Seattle's climate action strategy for the next decade. "
            "Environmental experts and city planners will discuss sustainability initiatives and "
            "carbon reduction goals."
        ),
        image_key="event3",
    ),
)


def get_fallback_events() -> List[DiscoveredEvent]:
    return list(FALLBACK_EVENTS)
