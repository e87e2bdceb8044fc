"""
Ticketmaster Discovery API v2: attraction lookup and event search in the
three matching modes (attraction id, strict keyword, generic).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import httpx

import config
from models import EventCandidate, RawEventRecord
from matcher.normalize import same_artist
from matcher.performers import map_events
from sources.base import RETRIES, get_json, make_client

logger = logging.getLogger(__name__)

PROVIDER = "ticketmaster"
API_BASE = "https://app.ticketmaster.com/discovery/v2"
DEFAULT_SIZE = 100


@dataclass(frozen=True)
class SearchWindow:
    """Where and when to look: a geo circle plus a start/end instant window."""
    lat: float
    lon: float
    radius_miles: float
    start: datetime
    end: datetime
    size: int = DEFAULT_SIZE


def clamp_radius(radius_miles: float) -> int:
    return max(1, min(200, int(round(radius_miles))))


def to_tm_time(dt: datetime) -> str:
    """UTC, second precision, trailing Z (Ticketmaster rejects fractional seconds)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TicketmasterClient:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        api_key: Optional[str] = None,
        phrase_match: Optional[bool] = None,
        retries: int = RETRIES,
    ) -> None:
        self._client = client or make_client()
        self._api_key = api_key
        self.phrase_match = config.phrase_match_enabled() if phrase_match is None else phrase_match
        self.retries = retries

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TicketmasterClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _get(self, path: str, params: dict) -> dict:
        key = self._api_key or config.required_env("TICKETMASTER_API_KEY")
        return await get_json(
            self._client,
            f"{API_BASE}{path}",
            provider=PROVIDER,
            params={"apikey": key, **params},
            retries=self.retries,
        )

    async def find_attraction_ids(self, artist_name: str, exact_only: bool = True) -> List[str]:
        """Attraction ids whose normalized name equals the artist's; others appended unless exact_only."""
        data = await self._get(
            "/attractions.json",
            {"classificationName": "Music", "keyword": artist_name, "size": 50, "sort": "name,asc"},
        )
        items = (data.get("_embedded") or {}).get("attractions") or []
        exact = [str(a["id"]) for a in items if a.get("id") and same_artist(a.get("name"), artist_name)]
        if exact_only:
            return exact
        others = [str(a["id"]) for a in items if a.get("id") and not same_artist(a.get("name"), artist_name)]
        return exact + others

    async def _search(self, window: SearchWindow, extra: dict) -> List[RawEventRecord]:
        data = await self._get(
            "/events.json",
            {
                "classificationName": "Music",
                **extra,
                "latlong": f"{window.lat},{window.lon}",
                "radius": clamp_radius(window.radius_miles),
                "unit": "miles",
                "startDateTime": to_tm_time(window.start),
                "endDateTime": to_tm_time(window.end),
                "size": window.size,
                "sort": "date,asc",
            },
        )
        events = (data.get("_embedded") or {}).get("events") or []
        return [RawEventRecord.from_json(e) for e in events if isinstance(e, dict)]

    async def events_by_attraction(
        self, attraction_id: str, expected_artist_name: str, window: SearchWindow
    ) -> List[EventCandidate]:
        records = await self._search(window, {"attractionId": attraction_id})
        out = map_events(records, expected_artist_name, ensure_id=attraction_id)
        logger.debug("Attraction %s (%s): %d/%d events kept", attraction_id, expected_artist_name, len(out), len(records))
        return out

    async def events_by_keyword(self, artist_name: str, window: SearchWindow) -> List[EventCandidate]:
        records = await self._search(window, {"keyword": artist_name})
        out = map_events(records, artist_name, phrase_match=self.phrase_match)
        logger.debug("Keyword %r: %d/%d events kept", artist_name, len(out), len(records))
        return out

    async def events_generic(self, window: SearchWindow) -> List[EventCandidate]:
        records = await self._search(window, {})
        return map_events(records)
