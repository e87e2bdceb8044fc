"""
Shared data models: artists, raw Ticketmaster records, event candidates.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set, Tuple

from matcher.normalize import normalize


class Source(str, Enum):
    TICKETMASTER = "tm"


class Tier(str, Enum):
    LIKED = "liked"
    TOP = "top"
    FOLLOWED = "followed"


@dataclass
class ArtistRef:
    name: str
    id: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    tiers: Set[Tier] = field(default_factory=set)

    @property
    def key(self) -> str:
        """Identity: provider id when known, else the normalized name."""
        if self.id:
            return self.id
        return normalize(self.name)


@dataclass(frozen=True)
class Performer:
    id: str
    name: str


@dataclass(frozen=True)
class Venue:
    name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None

    @classmethod
    def from_json(cls, data: dict) -> "Venue":
        location = data.get("location") or {}
        return cls(
            name=data.get("name"),
            city=(data.get("city") or {}).get("name"),
            state=(data.get("state") or {}).get("name"),
            country=(data.get("country") or {}).get("name"),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
        )


@dataclass(frozen=True)
class RawEventRecord:
    """One Ticketmaster event as returned by /events.json."""
    id: str
    title: str
    url: str
    start: Optional[str] = None
    performers: Tuple[Performer, ...] = ()
    venues: Tuple[Venue, ...] = ()

    @classmethod
    def from_json(cls, data: dict) -> "RawEventRecord":
        embedded = data.get("_embedded") or {}
        start = ((data.get("dates") or {}).get("start") or {}).get("dateTime")
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("name") or "",
            url=data.get("url") or "",
            start=start,
            performers=tuple(
                Performer(id=str(a.get("id") or ""), name=a.get("name") or "")
                for a in embedded.get("attractions") or []
            ),
            venues=tuple(Venue.from_json(v) for v in embedded.get("venues") or []),
        )


@dataclass
class EventCandidate:
    source_id: str
    event_name: str
    artist_name: str
    url: str
    source: Source = Source.TICKETMASTER
    venue_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    start_utc: Optional[str] = None


@dataclass
class RankedEvent(EventCandidate):
    score: int = 0
