"""
Single search: Spotify signals → artist pool → per-artist Ticketmaster queries → dedupe → rank.
"""
import asyncio
import json
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

import config
from models import ArtistRef, EventCandidate, RankedEvent, Tier
from matcher.dedupe import dedupe
from matcher.pool import ArtistPool, build_artist_pool, parse_ignore
from matcher.rank import RankContext, rank
from sources.base import ConfigError, ProviderError
from sources.limited import run_limited
from sources.spotify import SpotifyClient, SpotifyTokens
from sources.ticketmaster import SearchWindow, TicketmasterClient
from storage import settings

logger = logging.getLogger(__name__)

RESULTS_PER_MESSAGE = 10


class AuthError(Exception):
    """No usable Spotify authorization."""


@dataclass
class SearchRequest:
    lat: float
    lon: float
    radius_miles: float = config.DEFAULT_RADIUS_MILES
    days: int = config.DEFAULT_DAYS
    breadth: str = config.DEFAULT_BREADTH
    cap: Optional[int] = None
    ignore: str = ""


@dataclass
class SearchResult:
    count: int
    events: List[RankedEvent]
    tokens: SpotifyTokens
    artists_queried: int = 0
    failures: List[str] = field(default_factory=list)
    used_fallback: bool = False


def pool_cap(breadth: str, cap: Optional[int] = None) -> int:
    if cap is not None:
        return max(1, min(config.MAX_CAP, int(cap)))
    return config.BREADTH_CAPS.get(breadth, config.BREADTH_CAPS[config.DEFAULT_BREADTH])


def search_window(request: SearchRequest, now: Optional[datetime] = None, size: int = 100) -> SearchWindow:
    """Start of today (UTC) through +days."""
    now = now or datetime.now(timezone.utc)
    start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return SearchWindow(
        lat=request.lat,
        lon=request.lon,
        radius_miles=request.radius_miles,
        start=start,
        end=start + timedelta(days=request.days),
        size=size,
    )


async def gather_signals(
    spotify: SpotifyClient, access_token: str
) -> Tuple[List[ArtistRef], List[ArtistRef], List[ArtistRef]]:
    """(liked, top, followed). A Liked Songs failure reads as no liked artists."""

    async def liked_or_empty() -> List[ArtistRef]:
        try:
            return await spotify.saved_track_artists(access_token)
        except ProviderError as e:
            logger.warning("Liked Songs fetch failed, continuing without: %s", e)
            return []

    top, followed, liked = await asyncio.gather(
        spotify.top_artists(access_token),
        spotify.followed_artists(access_token),
        liked_or_empty(),
    )
    return liked, top, followed


async def query_artist(tm: TicketmasterClient, artist: str, window: SearchWindow) -> List[EventCandidate]:
    """Exact attraction ids first (identity-verified); strict performer-name keyword search otherwise."""
    ids = await tm.find_attraction_ids(artist, exact_only=True)
    if ids:
        via_ids = await run_limited(
            ids,
            lambda attraction_id: tm.events_by_attraction(attraction_id, artist, window),
            limit=config.ATTRACTION_QUERY_LIMIT,
            gap=config.ATTRACTION_QUERY_GAP,
        )
        if via_ids.results:
            return via_ids.results
    return await tm.events_by_keyword(artist, window)


async def fallback_events(
    tm: TicketmasterClient, window: SearchWindow, pool: ArtistPool, ignore: Set[str]
) -> List[EventCandidate]:
    """Generic geo/date search kept to liked artists, else to anything in the pool."""
    generic_window = SearchWindow(
        lat=window.lat,
        lon=window.lon,
        radius_miles=window.radius_miles,
        start=window.start,
        end=window.end,
        size=config.GENERIC_SEARCH_SIZE,
    )
    try:
        generic = await tm.events_generic(generic_window)
    except ProviderError as e:
        logger.warning("Generic fallback search failed: %s", e)
        return []

    def keep(names: Set[str]) -> List[EventCandidate]:
        return [
            e for e in generic
            if (e.artist_name or "").lower() not in ignore and (e.artist_name or "").lower() in names
        ]

    filtered = keep(pool.liked)
    if not filtered:
        filtered = keep(pool.preferred)
    logger.info("Fallback: %d generic events, %d kept", len(generic), len(filtered))
    return filtered


async def find_events(
    request: SearchRequest,
    tokens: SpotifyTokens,
    spotify: SpotifyClient,
    tm: TicketmasterClient,
    *,
    now: Optional[datetime] = None,
) -> SearchResult:
    """
    Run one full search. Returned tokens may be refreshed; the caller persists them.
    Per-artist failures are reported in SearchResult.failures, not raised.
    """
    tokens = await spotify.ensure_access_token(tokens)
    liked, top, followed = await gather_signals(spotify, tokens.access_token)

    ignore = parse_ignore(request.ignore, config.env_ignore_list())
    pool = build_artist_pool(liked, top, followed, ignore=ignore, cap=pool_cap(request.breadth, request.cap))
    window = search_window(request, now)

    outcome = await run_limited(
        pool.names,
        lambda artist: query_artist(tm, artist, window),
        limit=config.ARTIST_QUERY_LIMIT,
        gap=config.ARTIST_QUERY_GAP,
    )
    found: List[EventCandidate] = outcome.results
    logger.info(
        "Queried %d artists: %d events, %d failures",
        len(pool.names),
        len(found),
        len(outcome.failures),
    )

    used_fallback = False
    if not found:
        used_fallback = True
        found = await fallback_events(tm, window, pool, ignore)

    unique = dedupe(found)
    ranked = rank(
        unique,
        RankContext(
            user_lat=request.lat,
            user_lon=request.lon,
            liked=pool.liked,
            top=pool.top,
            followed=pool.followed,
            preferred=pool.preferred,
            profile="artist-heavy",
        ),
        now=now,
    )
    return SearchResult(
        count=len(ranked),
        events=ranked[: config.RESULT_LIMIT],
        tokens=tokens,
        artists_queried=len(pool.names),
        failures=[f"{f.item}: {f.reason}" for f in outcome.failures],
        used_fallback=used_fallback,
    )


async def list_artists(spotify: SpotifyClient, tokens: SpotifyTokens) -> Tuple[SpotifyTokens, List[ArtistRef]]:
    """Top ∪ Followed, merged by Spotify id, each tagged with where it came from."""
    tokens = await spotify.ensure_access_token(tokens)
    top, followed = await asyncio.gather(
        spotify.top_artists(tokens.access_token),
        spotify.followed_artists(tokens.access_token),
    )
    by_key: Dict[str, ArtistRef] = {}
    for tier, refs in ((Tier.TOP, top), (Tier.FOLLOWED, followed)):
        for ref in refs:
            existing = by_key.get(ref.key)
            if existing is None:
                by_key[ref.key] = ArtistRef(name=ref.name, id=ref.id, genres=list(ref.genres), tiers={tier})
            else:
                existing.tiers.add(tier)
    return tokens, list(by_key.values())


# ---------------------------------------------------------------------------
# Bot / scheduler entry point
# ---------------------------------------------------------------------------

async def load_tokens() -> SpotifyTokens:
    raw = await settings.get_json_setting(settings.TOKENS_KEY)
    if not raw:
        raise AuthError("Spotify is not connected. Use /connect first.")
    try:
        return SpotifyTokens.from_json(raw)
    except (KeyError, TypeError, ValueError) as e:
        raise AuthError("Stored Spotify tokens are unreadable. Use /connect again.") from e


async def load_request() -> SearchRequest:
    lat = await settings.get_float_setting("lat")
    lon = await settings.get_float_setting("lon")
    if lat is None or lon is None:
        raise ValueError("Location not set. Share a location or use /set_location <lat> <lon>.")
    return SearchRequest(
        lat=lat,
        lon=lon,
        radius_miles=await settings.get_float_setting("radius_miles") or config.DEFAULT_RADIUS_MILES,
        days=await settings.get_int_setting("days") or config.DEFAULT_DAYS,
        breadth=await settings.get_setting_or_default("breadth") or config.DEFAULT_BREADTH,
        cap=await settings.get_int_setting("cap"),
        ignore=await settings.get_setting_or_default("ignore_artists"),
    )


async def run(
    send_message: Callable[[str], Awaitable[None]],
    *,
    dry_run: bool = False,
    limit: int = RESULTS_PER_MESSAGE,
    spotify: Optional[SpotifyClient] = None,
    ticketmaster: Optional[TicketmasterClient] = None,
) -> dict:
    """
    Execute one search with stored settings and send the top `limit` events.
    Returns dict: status, count, artists_queried, sent, used_fallback, errors_json.
    Failures come back as status "failure" with a single error message.
    """
    started_at = datetime.now(timezone.utc)
    errors: List[str] = []
    result: Optional[SearchResult] = None
    try:
        tokens = await load_tokens()
        request = await load_request()
        async with AsyncExitStack() as stack:
            if spotify is None:
                spotify = await stack.enter_async_context(SpotifyClient())
            if ticketmaster is None:
                ticketmaster = await stack.enter_async_context(TicketmasterClient())
            result = await find_events(request, tokens, spotify, ticketmaster)
        if result.tokens is not tokens:
            await settings.set_json_setting(settings.TOKENS_KEY, result.tokens.to_json())
    except (AuthError, ValueError, ProviderError, ConfigError) as e:
        logger.warning("Search failed: %s", e)
        errors.append(str(e))
    except Exception as e:
        logger.exception("Search failed unexpectedly")
        errors.append(f"Search failed ({type(e).__name__}).")

    async def deliver(text: str, what: str) -> bool:
        try:
            await send_message(text)
        except Exception as e:
            logger.warning("Failed to send %s: %s", what, e)
            errors.append(f"send: {e}")
            return False
        return True

    sent = 0
    if result is not None:
        errors.extend(result.failures)
        if not dry_run:
            if not result.events:
                await deliver("No upcoming concerts found for your artists.", "empty-result message")
            else:
                await deliver(
                    f"Found {result.count} concerts across {result.artists_queried} artists. "
                    f"Top {min(limit, len(result.events))}:",
                    "digest summary",
                )
                for event in result.events[:limit]:
                    if await deliver(format_event(event), "event message"):
                        sent += 1

    if result is None:
        status = "failure"
    elif errors:
        status = "partial_failure"
    else:
        status = "success"
    summary = {
        "count": result.count if result else 0,
        "artists_queried": result.artists_queried if result else 0,
        "used_fallback": result.used_fallback if result else False,
        "sent": sent,
        "errors": errors[:20],
    }
    await settings.set_setting("last_run_at", started_at.isoformat())
    await settings.set_setting("last_run_status", status)
    await settings.set_setting("last_run_summary_json", json.dumps(summary))
    logger.info("Run finished: status=%s count=%s sent=%d", status, summary["count"], sent)

    return {
        "status": status,
        "count": summary["count"],
        "artists_queried": summary["artists_queried"],
        "sent": sent,
        "used_fallback": summary["used_fallback"],
        "errors_json": json.dumps(errors),
        "error": errors[0] if result is None and errors else None,
    }


def format_event(event: RankedEvent) -> str:
    # Escape Markdown special chars in user content to avoid parse errors
    def esc(s: Optional[str]) -> str:
        return (s or "").replace("_", "\\_").replace("*", "\\*").replace("[", "\\[")

    place = ", ".join(p for p in (event.venue_name, event.city, event.state) if p)
    when = (event.start_utc or "TBA").replace("T", " ").replace("Z", " UTC")
    return (
        f"🎵 *{esc(event.artist_name)}* ({event.score})\n"
        f"*Event:* {esc(event.event_name)}\n"
        f"*Where:* {esc(place) or 'TBA'}\n"
        f"*When:* {esc(when)}\n"
        f"Link: {event.url}"
    )
