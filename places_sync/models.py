"""Core data models shared by the places sync pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_PENDING = "pending"
STATUS_MERGED = "merged"
PLACE_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE, STATUS_PENDING, STATUS_MERGED)
MATCHABLE_STATUSES = (STATUS_ACTIVE, STATUS_PENDING)

BUSINESS_OPERATIONAL = "OPERATIONAL"
BUSINESS_CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"
BUSINESS_UNKNOWN = "UNKNOWN"

PHOTO_SOURCE_GOOGLE = "google"
PHOTO_SOURCE_YELP = "yelp"

PROVIDER_GOOGLE = "google"
PROVIDER_YELP = "yelp"
PROVIDER_ID_FIELDS = {PROVIDER_GOOGLE: "google_place_id", PROVIDER_YELP: "yelp_id"}
EXTERNAL_ID_FIELDS = tuple(PROVIDER_ID_FIELDS.values())


@dataclass(slots=True)
class Place:
    """Canonical directory record, one row of the ``places`` table."""

    name: str
    type: str = "other"
    id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    neighborhood: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    google_place_id: Optional[str] = None
    yelp_id: Optional[str] = None
    website_url: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    image_url: Optional[str] = None
    photo_source: Optional[str] = None
    google_photo_ref: Optional[str] = None
    business_status: Optional[str] = None
    status: str = STATUS_ACTIVE
    merged_into: Optional[str] = None
    featured: bool = False
    last_verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Place":
        known = {f.name for f in fields(cls)}
        data = {key: value for key, value in row.items() if key in known}
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        data["tags"] = list(data.get("tags") or [])
        return cls(**data)


PLACE_COLUMNS = tuple(f.name for f in fields(Place))


@dataclass(slots=True)
class Candidate:
    """Comparable snapshot of a place, local or provider-sourced."""

    name: str
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @classmethod
    def from_place(cls, place: Place) -> "Candidate":
        return cls(name=place.name, address=place.address, lat=place.lat, lng=place.lng)


@dataclass(slots=True)
class ProviderMatch:
    """Provider record normalised into the fields the pipeline writes back."""

    provider: str
    external_id: str
    name: str
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    website_url: Optional[str] = None
    image_url: Optional[str] = None
    google_photo_ref: Optional[str] = None
    business_status: Optional[str] = None
    raw_snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def id_field(self) -> str:
        return PROVIDER_ID_FIELDS[self.provider]

    def as_candidate(self) -> Candidate:
        return Candidate(name=self.name, address=self.address, lat=self.lat, lng=self.lng)


@dataclass
class ImportSummary:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MatchSummary:
    matched: int = 0
    enriched: int = 0
    merged: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VerifySummary:
    verified: int = 0
    deactivated: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DeactivateSummary:
    deactivated: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReclassifySummary:
    reclassified: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlaceStats:
    total: int = 0
    active: int = 0
    inactive: int = 0
    pending: int = 0
    merged: int = 0
    without_google_id: int = 0
    without_yelp_id: int = 0
    potential_duplicates: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
