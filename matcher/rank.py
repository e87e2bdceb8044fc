"""
Score and order event candidates: artist tier dominates, distance and date nudge.
"""
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from models import EventCandidate, RankedEvent

EARTH_RADIUS_MILES = 3958.7613
NO_DATE_DAYS = 9999

ART_LIKED = 140
ART_TOP = 95
ART_FOLLOWED = 75
ART_PREFERRED = 40
ART_OTHER = 0

# (max miles, points); first bound that fits wins
LOCATION_STEPS = [(15, 6), (50, 5), (120, 4), (200, 3), (400, 1)]
# (max days, points)
DATE_STEPS = [(14, 2), (45, 1), (180, 1)]


@dataclass
class RankContext:
    user_lat: Optional[float] = None
    user_lon: Optional[float] = None
    liked: Set[str] = field(default_factory=set)
    top: Set[str] = field(default_factory=set)
    followed: Set[str] = field(default_factory=set)
    preferred: Set[str] = field(default_factory=set)
    profile: str = "artist-heavy"  # reserved for alternative weightings


def _missing(x: Optional[float]) -> bool:
    return x is None or (isinstance(x, float) and math.isnan(x))


def distance_miles(
    a_lat: Optional[float],
    a_lon: Optional[float],
    b_lat: Optional[float],
    b_lon: Optional[float],
) -> float:
    """Haversine great-circle distance in miles; inf when any coordinate is missing."""
    if any(_missing(v) for v in (a_lat, a_lon, b_lat, b_lon)):
        return math.inf
    d_lat = math.radians(b_lat - a_lat)
    d_lon = math.radians(b_lon - a_lon)
    s1 = math.sin(d_lat / 2)
    s2 = math.sin(d_lon / 2)
    aa = s1 * s1 + math.cos(math.radians(a_lat)) * math.cos(math.radians(b_lat)) * s2 * s2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(aa), math.sqrt(1 - aa))


def parse_start(iso: Optional[str]) -> Optional[datetime]:
    """ISO-8601 → aware UTC datetime; naive values are taken as UTC. None if unparseable."""
    if not iso:
        return None
    try:
        dt = datetime.fromisoformat(iso.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_until(iso: Optional[str], now: Optional[datetime] = None) -> int:
    start = parse_start(iso)
    if start is None:
        return NO_DATE_DAYS
    now = now or datetime.now(timezone.utc)
    days = (start - now).total_seconds() / 86400
    return max(0, math.floor(days + 0.5))


def location_score(miles: float) -> int:
    if not math.isfinite(miles):
        return 0
    for bound, points in LOCATION_STEPS:
        if miles <= bound:
            return points
    return 0


def date_score(days: int) -> int:
    for bound, points in DATE_STEPS:
        if days <= bound:
            return points
    return 0


def artist_score(event: EventCandidate, ctx: RankContext) -> int:
    name = (event.artist_name or "").lower() or (event.event_name or "").lower()
    if name in ctx.liked:
        return ART_LIKED
    if name in ctx.top:
        return ART_TOP
    if name in ctx.followed:
        return ART_FOLLOWED
    if name in ctx.preferred:
        return ART_PREFERRED
    return ART_OTHER


def score_event(event: EventCandidate, ctx: RankContext, now: Optional[datetime] = None) -> int:
    miles = distance_miles(ctx.user_lat, ctx.user_lon, event.lat, event.lon)
    return (
        artist_score(event, ctx)
        + location_score(miles)
        + date_score(days_until(event.start_utc, now))
    )


def rank(
    events: Iterable[EventCandidate],
    ctx: RankContext,
    now: Optional[datetime] = None,
) -> List[RankedEvent]:
    """
    Highest score first; ties go to the earlier start (unparseable dates last),
    then the closer venue, then the smaller event name.
    """
    now = now or datetime.now(timezone.utc)
    scored = []
    for event in events:
        ranked = RankedEvent(**{**asdict(event), "source": event.source})
        ranked.score = score_event(event, ctx, now)
        start = parse_start(event.start_utc)
        sort_key = (
            -ranked.score,
            # undated events sort after dated ones instead of skipping the date comparison
            start.timestamp() if start is not None else math.inf,
            distance_miles(ctx.user_lat, ctx.user_lon, event.lat, event.lon),
            event.event_name or "",
        )
        scored.append((sort_key, ranked))
    scored.sort(key=lambda pair: pair[0])
    return [ranked for _, ranked in scored]
