"""
Spotify Web API: OAuth tokens plus the three taste signals (Liked Songs,
Top Artists over three windows, Followed Artists).

Listings are folds over async page generators: the fold functions are pure
and the generators only know how to find the next page.
"""
import asyncio
import base64
import logging
import time
from dataclasses import asdict, dataclass
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlencode, quote

import httpx

import config
from models import ArtistRef
from sources.base import RETRIES, ProviderError, fetch_with_retries, get_json, make_client, parse_json
from sources.limited import run_limited

logger = logging.getLogger(__name__)

PROVIDER = "spotify"
API_BASE = "https://api.spotify.com/v1"
AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
PAGE_GAP = 0.12  # seconds between pages
EXPIRY_MARGIN = 30  # seconds shaved off expires_in
TOP_WINDOWS = ("long_term", "medium_term", "short_term")
SAVED_TRACKS_URL = f"{API_BASE}/me/tracks?limit=50"
FOLLOWED_URL = f"{API_BASE}/me/following?type=artist&limit=50"


@dataclass
class SpotifyTokens:
    access_token: str
    refresh_token: str
    expires_at: float  # epoch seconds
    scope: Optional[str] = None
    token_type: Optional[str] = None

    def to_json(self) -> dict:
        return asdict(self)

    @classmethod
    def from_json(cls, data: dict) -> "SpotifyTokens":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=float(data.get("expires_at") or 0),
            scope=data.get("scope"),
            token_type=data.get("token_type"),
        )

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


# ---------------------------------------------------------------------------
# Pure folds
# ---------------------------------------------------------------------------

def fold_artists(acc: Dict[str, ArtistRef], items: Iterable[dict], *, limit: Optional[int] = None) -> Dict[str, ArtistRef]:
    """Add artists not yet seen (by id) to a copy of acc, preserving first-seen order."""
    out = dict(acc)
    for a in items:
        if limit is not None and len(out) >= limit:
            break
        if not a or not a.get("id") or not a.get("name") or a["id"] in out:
            continue
        out[a["id"]] = ArtistRef(id=a["id"], name=a["name"], genres=list(a.get("genres") or []))
    return out


def saved_track_artists_of(page: dict) -> List[dict]:
    out: List[dict] = []
    for item in page.get("items") or []:
        out.extend(((item or {}).get("track") or {}).get("artists") or [])
    return out


def followed_artists_of(page: dict) -> List[dict]:
    return (page.get("artists") or {}).get("items") or []


def next_saved_tracks_url(page: dict) -> Optional[str]:
    return page.get("next") or None


def next_followed_url(page: dict) -> Optional[str]:
    block = page.get("artists") or {}
    if block.get("next"):
        return block["next"]
    after = (block.get("cursors") or {}).get("after")
    if after:
        return f"{FOLLOWED_URL}&after={quote(str(after), safe='')}"
    return None


def build_authorize_url(state: str, *, client_id: Optional[str] = None, redirect_uri: Optional[str] = None) -> str:
    query = urlencode(
        {
            "client_id": client_id or config.required_env("SPOTIFY_CLIENT_ID"),
            "response_type": "code",
            "redirect_uri": redirect_uri or config.required_env("SPOTIFY_REDIRECT_URI"),
            "scope": config.spotify_scopes(),
            "state": state,
        }
    )
    return f"{AUTHORIZE_URL}?{query}"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SpotifyClient:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        page_gap: float = PAGE_GAP,
        retries: int = RETRIES,
    ) -> None:
        self._client = client or make_client()
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self.page_gap = page_gap
        self.retries = retries

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri or config.required_env("SPOTIFY_REDIRECT_URI")

    def _basic_auth(self) -> str:
        cid = self._client_id or config.required_env("SPOTIFY_CLIENT_ID")
        secret = self._client_secret or config.required_env("SPOTIFY_CLIENT_SECRET")
        raw = base64.b64encode(f"{cid}:{secret}".encode()).decode()
        return f"Basic {raw}"

    # -- OAuth ---------------------------------------------------------------

    def authorize_url(self, state: str) -> str:
        return build_authorize_url(state, client_id=self._client_id, redirect_uri=self._redirect_uri)

    async def _token_request(self, form: Dict[str, str]) -> dict:
        resp = await fetch_with_retries(
            self._client,
            TOKEN_URL,
            provider=PROVIDER,
            method="POST",
            data=form,
            headers={
                "Authorization": self._basic_auth(),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            retries=self.retries,
        )
        body = parse_json(resp, PROVIDER)
        if not body.get("access_token"):
            raise ProviderError(PROVIDER, "token response without access_token", status=resp.status_code)
        return body

    @staticmethod
    def _expires_at(body: dict, now: Optional[float]) -> float:
        expires_in = float(body.get("expires_in") or 3600)
        return (now if now is not None else time.time()) + expires_in - EXPIRY_MARGIN

    async def exchange_code(self, code: str, now: Optional[float] = None) -> SpotifyTokens:
        body = await self._token_request(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": self.redirect_uri}
        )
        return SpotifyTokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or "",
            expires_at=self._expires_at(body, now),
            scope=body.get("scope"),
            token_type=body.get("token_type"),
        )

    async def refresh(self, tokens: SpotifyTokens, now: Optional[float] = None) -> SpotifyTokens:
        body = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": tokens.refresh_token}
        )
        return SpotifyTokens(
            access_token=body["access_token"],
            # Spotify may or may not rotate the refresh token
            refresh_token=body.get("refresh_token") or tokens.refresh_token,
            expires_at=self._expires_at(body, now),
            scope=body.get("scope") or tokens.scope,
            token_type=body.get("token_type") or tokens.token_type,
        )

    async def ensure_access_token(self, tokens: SpotifyTokens, now: Optional[float] = None) -> SpotifyTokens:
        """Return tokens unchanged while valid, refreshed otherwise."""
        if not tokens or not tokens.access_token:
            raise ProviderError(PROVIDER, "no tokens available")
        if not tokens.expired(now):
            return tokens
        logger.info("Spotify access token expired; refreshing")
        return await self.refresh(tokens, now)

    # -- Paging --------------------------------------------------------------

    async def _pages(
        self,
        url: Optional[str],
        access_token: str,
        next_url: Callable[[dict], Optional[str]],
    ) -> AsyncIterator[dict]:
        headers = {"Authorization": f"Bearer {access_token}"}
        while url:
            page = await get_json(self._client, url, provider=PROVIDER, headers=headers, retries=self.retries)
            yield page
            url = next_url(page)
            if url and self.page_gap > 0:
                await asyncio.sleep(self.page_gap)

    # -- Taste signals -------------------------------------------------------

    async def saved_track_artists(self, access_token: str, max_artists: int = 10000) -> List[ArtistRef]:
        """Unique artists across all Liked Songs, in library order."""
        acc: Dict[str, ArtistRef] = {}
        async for page in self._pages(SAVED_TRACKS_URL, access_token, next_saved_tracks_url):
            acc = fold_artists(acc, saved_track_artists_of(page), limit=max_artists)
            if len(acc) >= max_artists:
                break
        logger.info("Spotify liked-song artists: %d", len(acc))
        return list(acc.values())

    async def top_artists(self, access_token: str) -> List[ArtistRef]:
        """Union of the three time windows, long-term first."""
        headers = {"Authorization": f"Bearer {access_token}"}

        async def fetch_window(window: str):
            page = await get_json(
                self._client,
                f"{API_BASE}/me/top/artists",
                provider=PROVIDER,
                params={"time_range": window, "limit": 50},
                headers=headers,
                retries=self.retries,
            )
            return [(window, page.get("items") or [])]

        outcome = await run_limited(list(TOP_WINDOWS), fetch_window, limit=2, gap=self.page_gap)
        if outcome.failures:
            raise outcome.failures[0].error
        acc: Dict[str, ArtistRef] = {}
        for _, items in sorted(outcome.results, key=lambda r: TOP_WINDOWS.index(r[0])):
            acc = fold_artists(acc, items)
        logger.info("Spotify top artists: %d", len(acc))
        return list(acc.values())

    async def followed_artists(self, access_token: str) -> List[ArtistRef]:
        acc: Dict[str, ArtistRef] = {}
        async for page in self._pages(FOLLOWED_URL, access_token, next_followed_url):
            acc = fold_artists(acc, followed_artists_of(page))
        logger.info("Spotify followed artists: %d", len(acc))
        return list(acc.values())
