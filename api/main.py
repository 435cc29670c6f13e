"""FastAPI application for the Ballot event discovery service."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, field_validator, model_validator

from discovery.cache import format_cache_age
from discovery.models import QA, DiscoveredEvent, SavedEvent
from discovery.orchestrator import DiscoveryOrchestrator, DiscoveryState, Failed, Succeeded, displayed_events
from discovery.reminders import InMemoryNotifier, Notifier
from discovery.settings import Settings
from discovery.url_validator import is_valid_url, sanitize_url
from storage.kv_store import make_store
from storage.saved_events import SavedEventsManager, SavedEventStore

VERSION = "1.0.0"


class QAModel(BaseModel):
    question: str
    answer: str


class EventModel(BaseModel):
    """Discovered event as returned to clients."""
    id: str
    title: str
    location: str
    address: str
    date: str  # display date, e.g. "Oct 23, 2025 • 7:30 PM"
    time: str
    overview: str
    image_url: Optional[str] = None
    image_key: Optional[str] = None
    link: Optional[str] = None
    source_urls: List[str] = []
    tags: Optional[List[str]] = None
    venue: Optional[str] = None
    organizer: Optional[str] = None
    website_link: Optional[str] = None
    impact_statement: Optional[str] = None
    qa_pairs: Optional[List[QAModel]] = None

    @model_validator(mode="after")
    def _one_image_source(self) -> "EventModel":
        if (self.image_url is None) == (self.image_key is None):
            raise ValueError("exactly one of image_url or image_key must be set")
        return self

    @classmethod
    def from_event(cls, event: DiscoveredEvent) -> "EventModel":
        return cls(**event.to_dict())

    def to_event_kwargs(self) -> Dict:
        data = self.model_dump(exclude={"notification_id"})
        data["source_urls"] = tuple(data["source_urls"])
        if data["tags"] is not None:
            data["tags"] = tuple(data["tags"])
        if data["qa_pairs"] is not None:
            data["qa_pairs"] = tuple(QA(qa["question"], qa["answer"]) for qa in data["qa_pairs"])
        return data


class SavedEventModel(EventModel):
    notification_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    version: str


class DiscoverRequest(BaseModel):
    location: str
    force_refresh: bool = False

    @field_validator("location")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("location must not be blank")
        return value.strip()


class RefreshRequest(BaseModel):
    location: str

    @field_validator("location")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("location must not be blank")
        return value.strip()


class DiscoveryResponse(BaseModel):
    status: str
    location: Optional[str] = None
    events: List[EventModel]
    cache_hit: bool = False
    cache_age_ms: Optional[int] = None
    cache_age_display: Optional[str] = None
    used_fallback: bool = False
    error: Optional[str] = None


class LinkRequest(BaseModel):
    url: str


class LinkResponse(BaseModel):
    valid: bool
    sanitized_url: Optional[str] = None


class ReminderModel(BaseModel):
    notification_id: str
    event_id: str
    title: str
    body: str
    remind_at: datetime


def _state_response(state: DiscoveryState) -> DiscoveryResponse:
    response = DiscoveryResponse(
        status=state.kind,
        location=getattr(state, "location", None),
        events=[EventModel.from_event(e) for e in displayed_events(state)],
    )
    if isinstance(state, Succeeded):
        response.cache_hit = state.cache_hit
        response.cache_age_ms = state.cache_age_ms
        response.used_fallback = state.used_fallback
        if state.cache_hit and state.cache_age_ms is not None:
            response.cache_age_display = format_cache_age(state.cache_age_ms)
    elif isinstance(state, Failed):
        response.error = state.error
        response.used_fallback = True
    return response


def _health(status: str) -> HealthResponse:
    return HealthResponse(status=status, timestamp=datetime.now(timezone.utc).isoformat(), version=VERSION)


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[DiscoveryOrchestrator] = None,
    saved_events: Optional[SavedEventsManager] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build the application.

    Settings are read from the environment once, here, unless supplied. The
    cache and saved events share a single store so their writes to the same
    file are serialized.
    """
    settings = settings or Settings.from_env()
    # Thread pool for the blocking HTTP and storage calls
    executor = ThreadPoolExecutor(max_workers=8)

    if orchestrator is None:
        store = make_store(settings.storage_path)
        orchestrator = DiscoveryOrchestrator.from_settings(settings, executor=executor, store=store)
    else:
        store = orchestrator.cache.store
    if saved_events is None:
        saved_events = SavedEventsManager(
            SavedEventStore(store),
            executor=executor,
            notifier=notifier or InMemoryNotifier(),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await saved_events.hydrate()
        yield
        executor.shutdown(wait=False)

    app = FastAPI(
        title="Ballot Discovery API",
        description="Discover local civic and political events for a location",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.saved_events = saved_events

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return _health("healthy")

    @app.get("/live", response_model=HealthResponse)
    async def liveness_check():
        """Liveness check endpoint for container orchestration."""
        return _health("alive")

    @app.get("/ready", response_model=HealthResponse)
    async def readiness_check():
        """Readiness check; not ready until saved events are loaded."""
        if saved_events.is_loading:
            raise HTTPException(status_code=503, detail="Saved events are still loading")
        return _health("ready")

    @app.post("/discover", response_model=DiscoveryResponse)
    async def discover_events(request: DiscoverRequest):
        """
        Discover events for a location.

        Serves cached events when fresh, otherwise runs generation. Failures
        come back as status "failed" with fallback events, never as a 500.
        """
        state = await orchestrator.fetch(request.location, force_refresh=request.force_refresh)
        return _state_response(state)

    @app.post("/refresh", response_model=DiscoveryResponse)
    async def refresh_events(request: RefreshRequest):
        """Regenerate events for a location, bypassing the cache."""
        state = await orchestrator.refresh(request.location)
        return _state_response(state)

    @app.get("/discover/state", response_model=DiscoveryResponse)
    async def discovery_state():
        return _state_response(orchestrator.state)

    @app.delete("/cache")
    async def clear_all_caches():
        await asyncio.get_running_loop().run_in_executor(executor, orchestrator.cache.invalidate_all)
        return {"cleared": "all"}

    @app.delete("/cache/{location}")
    async def clear_cache(location: str):
        await asyncio.get_running_loop().run_in_executor(executor, orchestrator.cache.invalidate, location)
        return {"cleared": location}

    @app.get("/saved-events", response_model=List[SavedEventModel])
    async def list_saved_events():
        return [SavedEventModel(**e.to_dict()) for e in saved_events.events]

    @app.post("/saved-events", response_model=SavedEventModel, status_code=201)
    async def save_event(event: SavedEventModel):
        saved = await saved_events.add(SavedEvent(**event.to_event_kwargs(), notification_id=event.notification_id))
        if saved is None:
            raise HTTPException(status_code=409, detail=f"Event {event.id} is already saved")
        return SavedEventModel(**saved.to_dict())

    @app.delete("/saved-events/{event_id}", status_code=204)
    async def delete_saved_event(event_id: str):
        if not await saved_events.remove(event_id):
            raise HTTPException(status_code=404, detail=f"Event {event_id} is not saved")

    @app.get("/reminders", response_model=List[ReminderModel])
    async def list_reminders():
        """Reminders scheduled for saved events, soonest first."""
        notifier = saved_events.notifier
        if not isinstance(notifier, InMemoryNotifier):
            return []
        return [ReminderModel(**vars(r)) for r in notifier.scheduled]

    @app.post("/links/validate", response_model=LinkResponse)
    async def validate_link(request: LinkRequest):
        """Check a link before a client opens it."""
        if not is_valid_url(request.url):
            return LinkResponse(valid=False)
        return LinkResponse(valid=True, sanitized_url=sanitize_url(request.url))

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Ballot Discovery API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
