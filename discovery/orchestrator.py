"""Fetch/refresh/cooldown lifecycle for discovered events.

State is a tagged union of frozen dataclasses; the module-level transition
functions are pure, and :class:`DiscoveryOrchestrator` is the only place that
performs I/O and swaps states.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import math
from collections import Counter
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from clients.completion_client import CompletionClient
from clients.image_client import ImageLookupClient
from storage.kv_store import KeyValueStore, make_store

from .cache import EventCache, format_cache_age, normalize_location, now_ms
from .errors import CompletionError, CooldownError, ParseError
from .fallback import get_fallback_events
from .models import DiscoveredEvent
from .parser import parse_events
from .prompts import build_messages, sanitize_location
from .settings import Settings
from .transformer import image_keyword_for, transform_events

logger = logging.getLogger(__name__)

GENERATION_TEMPERATURE = 0.2
GENERATION_MAX_TOKENS = 5000
DEFAULT_ERROR_MESSAGE = "Failed to load events"


@dataclass(frozen=True)
class Idle:
    kind: str = field(default="idle", init=False)


@dataclass(frozen=True)
class Loading:
    location: str
    kind: str = field(default="loading", init=False)


@dataclass(frozen=True)
class Succeeded:
    location: str
    events: List[DiscoveredEvent]
    cache_hit: bool
    fetched_at_ms: int
    cache_age_ms: Optional[int] = None
    used_fallback: bool = False
    kind: str = field(default="succeeded", init=False)


@dataclass(frozen=True)
class Failed:
    location: Optional[str]
    error: str
    events: List[DiscoveredEvent]
    kind: str = field(default="failed", init=False)


DiscoveryState = Union[Idle, Loading, Succeeded, Failed]


def displayed_events(state: DiscoveryState) -> List[DiscoveredEvent]:
    if isinstance(state, (Succeeded, Failed)):
        return list(state.events)
    return []


def start_fetch(state: DiscoveryState, location: str) -> Loading:
    return Loading(location=location)


def fetch_succeeded(
    state: DiscoveryState,
    location: str,
    events: List[DiscoveredEvent],
    cache_hit: bool,
    fetched_at_ms: int,
    cache_age_ms: Optional[int] = None,
    used_fallback: bool = False,
) -> Succeeded:
    return Succeeded(
        location=location,
        events=list(events),
        cache_hit=cache_hit,
        fetched_at_ms=fetched_at_ms,
        cache_age_ms=cache_age_ms if cache_hit else None,
        used_fallback=used_fallback,
    )


def fetch_failed(state: DiscoveryState, location: str, error: str, fallback: List[DiscoveredEvent]) -> Failed:
    return Failed(location=location, error=error, events=list(fallback))


def reject_cooldown(state: DiscoveryState, error: str) -> Failed:
    """Cooldown rejections keep whatever was already on screen."""
    location = getattr(state, "location", None)
    return Failed(location=location, error=error, events=displayed_events(state))


def clear_state(state: DiscoveryState) -> Idle:
    return Idle()


def error_message(exc: BaseException) -> str:
    if isinstance(exc, CompletionError):
        return exc.message
    return str(exc) or DEFAULT_ERROR_MESSAGE


class DiscoveryOrchestrator:
    """Coordinates cache, completion, parsing, images and transformation.

    Blocking I/O runs on ``executor`` (the loop's default when None) so every
    network and storage call is a suspension point for the event loop.
    """

    def __init__(
        self,
        settings: Settings,
        completion_client: CompletionClient,
        image_client: ImageLookupClient,
        cache: EventCache,
        executor: Optional[Executor] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = settings
        self.completion_client = completion_client
        self.image_client = image_client
        self.cache = cache
        self._executor = executor
        self._clock = clock
        self.state: DiscoveryState = Idle()
        self._in_flight: Counter[str] = Counter()
        self._last_fetch_started: Optional[int] = None
        self._fetch_seq = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        executor: Optional[Executor] = None,
        store: Optional[KeyValueStore] = None,
    ) -> "DiscoveryOrchestrator":
        if store is None:
            store = make_store(settings.storage_path)
        return cls(
            settings=settings,
            completion_client=CompletionClient(settings),
            image_client=ImageLookupClient(settings),
            cache=EventCache(store, ttl_ms=settings.cache_ttl_ms),
            executor=executor,
        )

    @property
    def cooldown_ms(self) -> int:
        return int(self.settings.cooldown_seconds * 1000)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    async def _lookup_image(self, keyword: Optional[str]) -> Optional[str]:
        if not keyword:
            return None
        return await self._run(self.image_client.fetch_image, keyword)

    async def _lookup_images(self, keywords: List[Optional[str]]) -> List[Optional[str]]:
        results = await asyncio.gather(*(self._lookup_image(k) for k in keywords), return_exceptions=True)
        urls: List[Optional[str]] = []
        for keyword, result in zip(keywords, results):
            if isinstance(result, BaseException):
                logger.warning("Image lookup for %r failed: %s", keyword, result)
                urls.append(None)
            else:
                urls.append(result)
        return urls

    async def generate_events_for_location(self, location: str) -> List[DiscoveredEvent]:
        """Run the network pipeline for ``location``; raises on failure."""
        safe_location = sanitize_location(location or "")
        if not safe_location:
            raise ValueError("Location is required for event generation")

        logger.info(f"Generating events for: {safe_location}")
        messages = build_messages(safe_location)
        logger.info("=== PROMPT BEING SENT TO LLM ===")
        logger.info(f"Model: {self.settings.model}")
        logger.info(f"User prompt: {messages[-1]['content']}")
        logger.info("=== END PROMPT ===")

        result = await self._run(
            self.completion_client.complete,
            messages,
            temperature=GENERATION_TEMPERATURE,
            max_tokens=GENERATION_MAX_TOKENS,
        )
        logger.info(f"Extracted content: {result.text}")

        records = parse_events(result.text)
        if not records:
            logger.warning("No events returned from API")
            return []

        image_urls = await self._lookup_images([image_keyword_for(r) for r in records])
        events = transform_events(records, image_urls, generated_at=self._clock())
        logger.info(f"Successfully generated {len(events)} events")
        return events

    async def _fetch_pipeline(self, location: str, force_refresh: bool) -> DiscoveryState:
        try:
            if not force_refresh:
                hit = await self._run(self.cache.get, location)
                if hit is not None:
                    logger.info("Using cached events")
                    return fetch_succeeded(
                        self.state, location, hit.events, True, self._clock(), cache_age_ms=hit.age_ms
                    )
            else:
                logger.info("Force refresh - clearing cache")
                await self._run(self.cache.invalidate, location)

            events = await self.generate_events_for_location(location)

            if not events and self.settings.empty_result_policy == "fallback":
                logger.warning("No events generated, using fallback")
                return fetch_succeeded(
                    self.state, location, get_fallback_events(), False, self._clock(), used_fallback=True
                )

            await self._run(self.cache.put, location, events)
            return fetch_succeeded(self.state, location, events, False, self._clock())

        except (CompletionError, ParseError, ValueError, OSError) as exc:
            logger.error(f"Failed to fetch events for {location}: {exc}")
            return fetch_failed(self.state, location, error_message(exc), get_fallback_events())
        except Exception as exc:
            logger.exception(f"Unexpected error fetching events for {location}")
            return fetch_failed(self.state, location, error_message(exc), get_fallback_events())

    async def fetch(self, location: str, force_refresh: bool = False) -> DiscoveryState:
        """Load events for ``location`` from cache or the network.

        Never raises: failures end in a :class:`Failed` state that carries the
        fallback events.
        """
        if not location or not location.strip():
            logger.info("No location provided, skipping fetch")
            return self.state

        location = location.strip()
        key = normalize_location(location)

        if self._in_flight[key] and not force_refresh:
            logger.info("Already loading events for this location")
            return self.state

        started = self._clock()
        if self.cooldown_ms > 0 and self._last_fetch_started is not None:
            elapsed = started - self._last_fetch_started
            if elapsed < self.cooldown_ms:
                exc = CooldownError(math.ceil((self.cooldown_ms - elapsed) / 1000))
                logger.warning(str(exc))
                rejection = reject_cooldown(self.state, str(exc))
                # an in-flight fetch still owns the state
                if not self._in_flight:
                    self.state = rejection
                return rejection

        self._last_fetch_started = started
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._in_flight[key] += 1
        self.state = start_fetch(self.state, location)

        try:
            new_state = await self._fetch_pipeline(location, force_refresh)
        finally:
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]

        if seq == self._fetch_seq:
            self.state = new_state
        else:
            logger.info(f"Discarding result for superseded fetch of {location}")
        return new_state

    async def refresh(self, location: str) -> DiscoveryState:
        logger.info("Refreshing events...")
        return await self.fetch(location, force_refresh=True)

    def clear(self) -> DiscoveryState:
        self.state = clear_state(self.state)
        return self.state

    def is_loading(self, location: Optional[str] = None) -> bool:
        if location is None:
            return bool(self._in_flight)
        return bool(self._in_flight.get(normalize_location(location.strip())))

    def cache_age_display(self) -> Optional[str]:
        state = self.state
        if isinstance(state, Succeeded) and state.cache_hit and state.cache_age_ms is not None:
            return format_cache_age(state.cache_age_ms)
        return None
