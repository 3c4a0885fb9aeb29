from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional


# Reconciliation outcomes
OUTCOME_INSERTED = "inserted"
OUTCOME_UPDATED = "updated"
OUTCOME_UNCHANGED = "unchanged"

# Guest appearance row status
APPEARANCE_RESOLVED = "resolved"
APPEARANCE_PENDING = "pending_review"

# Per-show run status
SHOW_SUCCESS = "success"
SHOW_PARTIAL = "partial"
SHOW_FAILURE = "failure"

# How a guest name was matched
MATCH_OVERRIDE = "override"
MATCH_EXACT = "exact"
MATCH_FUZZY = "fuzzy"
MATCH_UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Show:
    show_id: str
    display_name: str
    url_template: str
    max_pages: int = 1
    listing_limit: int = 10

    def listing_url(self, year: int | None = None) -> str:
        if "{year}" in self.url_template:
            return self.url_template.format(year=year or date.today().year)
        return self.url_template


@dataclass(frozen=True)
class RawEpisode:
    show_id: str
    air_date: date
    title: str = ""
    guests: tuple[str, ...] = ()
    source_episode_id: Optional[str] = None
    source_url: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class Politician:
    politician_id: int
    name: str
    party_id: Optional[int] = None
    party_name: Optional[str] = None
    area_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class NormalizedGuestAppearance:
    raw_name: str
    name_key: str
    politician_id: Optional[int] = None
    politician_name: Optional[str] = None
    party_id: Optional[int] = None
    party_name: Optional[str] = None
    area_ids: tuple[int, ...] = ()
    score: float = 0.0
    method: str = MATCH_UNRESOLVED

    @property
    def resolved(self) -> bool:
        return self.politician_id is not None

    @property
    def appearance_key(self) -> str:
        if self.politician_id is not None:
            return f"p:{self.politician_id}"
        return f"u:{self.name_key}"

    def to_dict(self) -> dict:
        return {
            "raw_name": self.raw_name,
            "politician_id": self.politician_id,
            "politician_name": self.politician_name,
            "party_id": self.party_id,
            "party_name": self.party_name,
            "area_ids": list(self.area_ids),
            "score": self.score,
            "method": self.method,
        }


@dataclass(frozen=True)
class NormalizedEpisode:
    show_id: str
    air_date: date
    slug: str = ""
    title: str = ""
    source_episode_id: Optional[str] = None
    source_url: Optional[str] = None
    description: str = ""
    appearances: tuple[NormalizedGuestAppearance, ...] = field(default_factory=tuple)

    @property
    def natural_key(self) -> tuple[str, date, str]:
        return (self.show_id, self.air_date, self.slug)

    @property
    def unresolved_names(self) -> list[str]:
        return [a.raw_name for a in self.appearances if not a.resolved]

    def to_dict(self) -> dict:
        return {
            "show_id": self.show_id,
            "air_date": self.air_date.isoformat(),
            "slug": self.slug,
            "title": self.title,
            "source_episode_id": self.source_episode_id,
            "source_url": self.source_url,
            "description": self.description,
            "appearances": [a.to_dict() for a in self.appearances],
        }
