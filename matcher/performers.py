"""
Performer-based matching: turn raw Ticketmaster records into EventCandidates
only when the record's attraction list really contains the queried artist.
"""
import logging
from enum import Enum
from typing import Iterable, List, Optional

from models import EventCandidate, Performer, RawEventRecord, Source, Venue
from matcher.normalize import normalize
from matcher.title_guard import title_flag

logger = logging.getLogger(__name__)


class MatchMode(str, Enum):
    IDENTITY = "identity"  # attraction id we queried, name verified
    NAME = "name"  # normalized performer name equality
    OPEN = "open"  # generic search: any performer, filtered later by caller


def _phrase_in(query: str, name: str) -> bool:
    return f" {query} " in f" {name} "


def match_performers(
    record: RawEventRecord,
    artist_name: str = "",
    *,
    ensure_id: Optional[str] = None,
    phrase_match: bool = False,
) -> List[Performer]:
    """
    Return the performers of `record` accepted under the mode implied by the arguments:
    ensure_id → identity (id and normalized name must both match), artist_name → name,
    neither → open. With phrase_match, name mode also accepts a performer whose name
    contains a multi-word query as a whole phrase; single-word queries stay exact.
    """
    mode = _mode(artist_name, ensure_id)
    target = normalize(artist_name)
    accepted: List[Performer] = []
    for performer in record.performers:
        name = normalize(performer.name)
        if mode is MatchMode.IDENTITY:
            ok = performer.id == ensure_id and (not target or name == target)
        elif mode is MatchMode.NAME:
            ok = name == target or (
                phrase_match and " " in target and _phrase_in(target, name)
            )
        else:
            ok = bool(name)
        if ok:
            accepted.append(performer)
    return accepted


def _mode(artist_name: str, ensure_id: Optional[str]) -> MatchMode:
    if ensure_id:
        return MatchMode.IDENTITY
    if normalize(artist_name):
        return MatchMode.NAME
    return MatchMode.OPEN


def _coord(raw: Optional[str]) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if value != value else value


def _candidate(record: RawEventRecord, performer: Performer, fallback_name: str) -> EventCandidate:
    venue = record.venues[0] if record.venues else Venue()
    return EventCandidate(
        source=Source.TICKETMASTER,
        source_id=record.id,
        event_name=record.title,
        artist_name=performer.name or fallback_name,
        venue_name=venue.name,
        city=venue.city,
        state=venue.state,
        country=venue.country,
        lat=_coord(venue.latitude),
        lon=_coord(venue.longitude),
        start_utc=record.start,
        url=record.url,
    )


def map_events(
    records: Iterable[RawEventRecord],
    artist_name: str = "",
    *,
    ensure_id: Optional[str] = None,
    phrase_match: bool = False,
) -> List[EventCandidate]:
    """
    Map raw records to candidates: one per accepted performer per record.
    Records with no accepted performer are dropped; so are non-identity matches
    whose title trips the title guard.
    """
    mode = _mode(artist_name, ensure_id)
    out: List[EventCandidate] = []
    for record in records:
        matched = match_performers(
            record, artist_name, ensure_id=ensure_id, phrase_match=phrase_match
        )
        if not matched:
            continue
        if mode is not MatchMode.IDENTITY:
            hit = title_flag(record.title)
            if hit is not None:
                logger.debug(
                    "Title guard dropped %r (marker=%r, reason=%s)",
                    record.title[:80],
                    hit[0],
                    hit[1].value,
                )
                continue
        for performer in matched:
            out.append(_candidate(record, performer, artist_name))
    return out
