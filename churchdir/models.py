"""Core data models shared by the acquisition and enrichment pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class OperatingHours:
    day: str
    open_time: str
    close_time: str


@dataclass(slots=True)
class ServiceTime:
    day: str
    time: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        payload = {"day": self.day, "time": self.time}
        if self.name:
            payload["name"] = self.name
        return payload


@dataclass(slots=True)
class RawChurchRecord:
    """Provider-agnostic snapshot of a place returned by an acquisition source."""

    name: str
    street: str
    city: str
    state: str
    state_abbr: str
    zip: str
    lat: Optional[float]
    lng: Optional[float]
    source_id: str
    source: str
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    denomination: Optional[str] = None
    hours: Optional[List[OperatingHours]] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    photo_urls: Optional[List[str]] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(slots=True)
class ChurchSearchParams:
    city: Optional[str] = None
    state: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_miles: Optional[float] = None
    limit: Optional[int] = None
    page_token: Optional[str] = None

    def with_page_token(self, page_token: Optional[str]) -> "ChurchSearchParams":
        values = asdict(self)
        values["page_token"] = page_token
        return ChurchSearchParams(**values)


@dataclass(slots=True)
class ChurchSearchResult:
    records: List[RawChurchRecord]
    next_page_token: Optional[str] = None
    total_estimate: Optional[int] = None


@dataclass(slots=True)
class EnrichmentResult:
    """Validated output of one AI enrichment call.

    Empty ``description``/``what_to_expect`` mean the model produced nothing
    usable; the worker decides what to do with such records.
    """

    description: str
    what_to_expect: str
    denomination: Optional[str] = None
    worship_style: Optional[List[str]] = None
    service_times: Optional[List[ServiceTime]] = None
    has_kids_ministry: Optional[bool] = None
    has_youth_group: Optional[bool] = None
    has_small_groups: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return not self.description or not self.what_to_expect
