"""Event schemas used throughout the discovery pipeline."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Annotated, Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints, field_validator

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class EventTime(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: RequiredText
    end: Optional[str] = None


class EventAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    venue: RequiredText
    street: RequiredText
    city: RequiredText
    state: RequiredText
    postal_code: Optional[str] = None
    country: Optional[str] = None


class GeoPoint(BaseModel):
    lat: float
    lon: float


class QAPair(BaseModel):
    question: str
    answer: str


class RawEventRecord(BaseModel):
    """One event card as returned by the completion model (untrusted)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: RequiredText
    date: RequiredText
    time: EventTime
    address: EventAddress
    geo: Optional[GeoPoint] = Field(default=None, validation_alias=AliasChoices("geo", "location"))
    overview: str = Field(validation_alias=AliasChoices("ai_overview", "overview"))
    link: Optional[str] = None
    source_urls: List[str]
    tags: Optional[List[str]] = None
    organizer: Optional[str] = None
    website_link: Optional[str] = None
    impact_statement: Optional[str] = None
    qa_pairs: Optional[List[QAPair]] = None
    image_keyword: Optional[str] = None

    @field_validator("qa_pairs")
    @classmethod
    def _keep_first_three(cls, value: Optional[List[QAPair]]) -> Optional[List[QAPair]]:
        if value is None:
            return None
        return value[:3]


@dataclass(frozen=True)
class QA:
    question: str
    answer: str


@dataclass(frozen=True)
class DiscoveredEvent:
    """Canonical event shown to the user.

    ``image_url`` holds a resolved remote photo; otherwise ``image_key`` names
    one of the bundled local images.
    """

    id: str
    title: str
    location: str
    address: str
    date: str
    time: str
    overview: str
    image_url: Optional[str] = None
    image_key: Optional[str] = None
    link: Optional[str] = None
    source_urls: tuple[str, ...] = ()
    tags: Optional[tuple[str, ...]] = None
    venue: Optional[str] = None
    organizer: Optional[str] = None
    website_link: Optional[str] = None
    impact_statement: Optional[str] = None
    qa_pairs: Optional[tuple[QA, ...]] = None

    def to_dict(self) -> dict[str, Any]:
        """Flatten to JSON-friendly primitives, omitting absent optionals."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "qa_pairs":
                value = [{"question": qa.question, "answer": qa.answer} for qa in value]
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiscoveredEvent":
        """Rebuild an event from :meth:`to_dict` output.

        Raises ``KeyError``/``TypeError``/``ValueError`` on malformed input.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected dict, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        for required in ("id", "title", "location", "address", "date", "time", "overview"):
            if not isinstance(kwargs.get(required), str):
                raise ValueError(f"missing or invalid field: {required}")
        kwargs["source_urls"] = tuple(kwargs.get("source_urls") or ())
        if kwargs.get("tags") is not None:
            kwargs["tags"] = tuple(kwargs["tags"])
        if kwargs.get("qa_pairs") is not None:
            kwargs["qa_pairs"] = tuple(QA(qa["question"], qa["answer"]) for qa in kwargs["qa_pairs"])
        return cls(**kwargs)


@dataclass(frozen=True)
class SavedEvent(DiscoveredEvent):
    """A discovered event the user chose to keep."""

    notification_id: Optional[str] = None

    @classmethod
    def from_discovered(cls, event: DiscoveredEvent, notification_id: Optional[str] = None) -> "SavedEvent":
        base = {f.name: getattr(event, f.name) for f in fields(DiscoveredEvent)}
        return cls(**base, notification_id=notification_id)

    def with_notification(self, notification_id: Optional[str]) -> "SavedEvent":
        return replace(self, notification_id=notification_id)
