"""Discover events for a location from the command line."""
from __future__ import annotations

import argparse
import asyncio
import logging

from discovery.cache import format_cache_age
from discovery.orchestrator import DiscoveryOrchestrator, Failed, Succeeded, displayed_events
from discovery.settings import Settings

logger = logging.getLogger(__name__)


def _print_events(state) -> None:
    for event in displayed_events(state):
        print(f"📅 {event.title}")
        print(f"   {event.date}")
        print(f"   {event.address}")
        if event.link:
            print(f"   {event.link}")


def run(location: str, refresh: bool = False) -> int:
    """Fetch events for ``location`` and print them. Returns an exit code."""
    settings = Settings.from_env()
    orchestrator = DiscoveryOrchestrator.from_settings(settings)

    logger.info("Discovering events for %s (refresh=%s)", location, refresh)
    state = asyncio.run(orchestrator.fetch(location, force_refresh=refresh))

    if isinstance(state, Failed):
        print("❌ Failed to load events:", state.error)
        print("Showing sample events instead:")
        _print_events(state)
        return 1

    if not isinstance(state, Succeeded):
        print("No location provided")
        return 1

    if state.cache_hit and state.cache_age_ms is not None:
        print(f"💾 Cached results ({format_cache_age(state.cache_age_ms)})")
    if state.used_fallback:
        print("No events found, showing sample events")

    if not state.events:
        print("No events found near", state.location)
        return 0

    print(f"✅ Found {len(state.events)} event(s) near {state.location}")
    _print_events(state)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Discover civic events near a location")
    parser.add_argument("location", help='City and state, e.g. "Phoenix, Arizona"')
    parser.add_argument("--refresh", action="store_true", help="Ignore cached events")
    args = parser.parse_args(argv)
    return run(args.location, refresh=args.refresh)


if __name__ == "__main__":
    raise SystemExit(main())
