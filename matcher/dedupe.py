"""
Collapse event candidates returned by overlapping queries.
"""
from typing import Iterable, List, Tuple, TypeVar

from models import EventCandidate, Source

E = TypeVar("E", bound=EventCandidate)

EventKey = Tuple[str, str, str, str, str]


def event_key(event: EventCandidate) -> EventKey:
    """(source, source_id, url, lowercased event_name, start_utc); missing fields → ""."""
    source = event.source.value if isinstance(event.source, Source) else str(event.source or "")
    return (
        source or Source.TICKETMASTER.value,
        event.source_id or "",
        event.url or "",
        (event.event_name or "").lower(),
        event.start_utc or "",
    )


def dedupe(events: Iterable[E]) -> List[E]:
    """Keep the first event per key, preserving order."""
    seen: set[EventKey] = set()
    out: List[E] = []
    for event in events:
        key = event_key(event)
        if key in seen:
            continue
        seen.add(key)
        out.append(event)
    return out
