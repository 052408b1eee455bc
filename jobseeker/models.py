"""Data models for listings, settings, drafts and search requests."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

ZONES: tuple[int, ...] = (1, 2, 3)


class AdStatus(IntEnum):
    NEW = 0
    REJECTED = 1
    BOOKMARKED = 2
    THUMBS_UP = 3
    APPLIED = 4

    @classmethod
    def parse(cls, value: Any) -> AdStatus:
        """Lenient decode: ints, enum names or legacy labels; unknown → NEW."""
        if isinstance(value, AdStatus):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return cls.NEW
        if isinstance(value, str):
            key = value.strip().replace(" ", "").replace("_", "").lower()
            for member in cls:
                if member.name.replace("_", "").lower() == key:
                    return member
        return cls.NEW


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class StatusChange:
    previous: AdStatus
    status: AdStatus
    applied_at: datetime | None
    bookmarked_at: datetime | None


def transition_status(
    old_status: AdStatus,
    new_status: AdStatus,
    now: datetime,
    *,
    applied_at: datetime | None = None,
    bookmarked_at: datetime | None = None,
) -> StatusChange:
    """Pure status transition.

    Any status may move to any other. Timestamps record the first time a
    status was reached: entering BOOKMARKED sets ``bookmarked_at`` and entering
    APPLIED sets ``applied_at`` only when unset, and leaving never clears them.
    """
    new_status = AdStatus.parse(new_status)
    if new_status is AdStatus.APPLIED and applied_at is None:
        applied_at = now
    if new_status is AdStatus.BOOKMARKED and bookmarked_at is None:
        bookmarked_at = now
    return StatusChange(
        previous=AdStatus.parse(old_status),
        status=new_status,
        applied_at=applied_at,
        bookmarked_at=bookmarked_at,
    )


@dataclass
class RawHit:
    """One parsed upstream listing, tagged with the query that produced it."""

    external_id: str
    headline: str
    employer_name: str = ""
    employer_workplace: str = ""
    description: str = ""
    detail_url: str = ""
    publication_date: str = ""
    last_application_date: str | None = None
    municipality_code: str = ""
    municipality_name: str = ""
    city: str = ""
    occupation: str = ""
    working_hours: str = ""
    qualifications: str = ""
    additional_information: str = ""
    search_keyword: str | None = None
    search_zone: int | None = None


# Fields refreshed from upstream on every re-ingest.
LISTING_FIELDS: tuple[str, ...] = (
    "headline",
    "employer_name",
    "employer_workplace",
    "description",
    "detail_url",
    "publication_date",
    "last_application_date",
    "municipality_code",
    "municipality_name",
    "city",
    "occupation",
    "working_hours",
    "qualifications",
    "additional_information",
)

_DATETIME_FIELDS = ("created_at", "applied_at", "bookmarked_at")


@dataclass
class JobRecord:
    external_id: str
    headline: str
    employer_name: str = ""
    employer_workplace: str = ""
    description: str = ""
    detail_url: str = ""
    publication_date: str = ""
    last_application_date: str | None = None
    municipality_code: str = ""
    municipality_name: str = ""
    city: str = ""
    occupation: str = ""
    working_hours: str = ""
    qualifications: str = ""
    additional_information: str = ""
    search_keyword: str | None = None
    search_zone: int | None = None
    status: AdStatus = AdStatus.NEW
    rating: int | None = None
    is_read: bool = False
    created_at: datetime | None = None
    applied_at: datetime | None = None
    bookmarked_at: datetime | None = None

    @classmethod
    def from_hit(cls, hit: RawHit) -> JobRecord:
        values = {name: getattr(hit, name) for name in LISTING_FIELDS}
        return cls(
            external_id=hit.external_id,
            search_keyword=hit.search_keyword,
            search_zone=hit.search_zone,
            **values,
        )

    @property
    def activity_at(self) -> datetime | None:
        """Most significant timestamp: applied, then bookmarked, then created."""
        return self.applied_at or self.bookmarked_at or self.created_at

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = int(self.status)
        for name in _DATETIME_FIELDS:
            data[name] = _dt_to_str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRecord:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["status"] = AdStatus.parse(values.get("status", AdStatus.NEW))
        for name in _DATETIME_FIELDS:
            values[name] = _dt_from_str(values.get(name))
        rating = values.get("rating")
        values["rating"] = int(rating) if rating is not None else None
        values["is_read"] = bool(values.get("is_read", False))
        return cls(**values)


@dataclass
class ApplicationDraft:
    job_id: str
    content: str
    updated_at: datetime = field(default_factory=utcnow)
    headline: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "content": self.content,
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApplicationDraft:
        return cls(
            job_id=str(data["job_id"]),
            content=str(data.get("content", "")),
            updated_at=_dt_from_str(data.get("updated_at")) or utcnow(),
        )


@dataclass
class SearchSettings:
    keywords: str = ""
    blacklist_keywords: str = ""
    locations_p1: str = ""
    locations_p2: str = ""
    locations_p3: str = ""
    my_profile: str = ""
    sync_path: str = ""
    app_min_count: int = 6
    app_goal_count: int = 12

    def zone_locations(self, zone: int) -> str:
        if zone not in ZONES:
            raise ValueError(f"Unknown priority zone: {zone!r}")
        return getattr(self, f"locations_p{zone}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], defaults: SearchSettings | None = None
    ) -> SearchSettings:
        """Build settings from a stored document; absent keys come from *defaults*."""
        base = asdict(defaults) if defaults is not None else asdict(cls())
        for f in fields(cls):
            if f.name in data and data[f.name] is not None:
                base[f.name] = data[f.name]
        base["app_min_count"] = int(base["app_min_count"])
        base["app_goal_count"] = int(base["app_goal_count"])
        return cls(**base)


@dataclass(frozen=True)
class SearchRequest:
    """One upstream GET. ``keywords`` is kept for tagging hits, not sent."""

    query: str
    municipalities: tuple[str, ...] = ()
    limit: int = 100
    offset: int = 0
    keywords: tuple[str, ...] = ()
    zone: int | None = None
    batch: int = 0

    def params(self) -> list[tuple[str, str]]:
        out: list[tuple[str, str]] = [("q", self.query), ("limit", str(self.limit))]
        if self.offset:
            out.append(("offset", str(self.offset)))
        for code in self.municipalities:
            out.append(("municipality", code))
        return out

    def label(self) -> str:
        where = ",".join(self.municipalities) or "*"
        return f"q={self.query!r} municipality={where} offset={self.offset}"
