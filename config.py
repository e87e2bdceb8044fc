"""Environment-driven configuration and search defaults."""

import os

from sources.base import ConfigError

# ---------------------------------------------------------------------------
# Search defaults
# ---------------------------------------------------------------------------
DEFAULT_RADIUS_MILES = 120
DEFAULT_DAYS = 180
DEFAULT_BREADTH = "wide"
BREADTH_CAPS = {"tight": 320, "balanced": 520, "wide": 820}
MAX_CAP = 1500
RESULT_LIMIT = 220
GENERIC_SEARCH_SIZE = 200

# Concurrency against Ticketmaster (roughly limit / gap requests per second)
ARTIST_QUERY_LIMIT = 2
ARTIST_QUERY_GAP = 0.26
ATTRACTION_QUERY_LIMIT = 2
ATTRACTION_QUERY_GAP = 0.2

# ---------------------------------------------------------------------------
# Spotify
# ---------------------------------------------------------------------------
SPOTIFY_DEFAULT_SCOPES = "user-library-read user-top-read user-follow-read"


def required_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ConfigError(f"Missing env {name}")
    return value


def spotify_scopes() -> str:
    return os.environ.get("SPOTIFY_SCOPES") or SPOTIFY_DEFAULT_SCOPES


def env_ignore_list() -> str:
    """Comma-separated artist names never to query (IGNORE_ARTISTS)."""
    return os.environ.get("IGNORE_ARTISTS", "")


def phrase_match_enabled() -> bool:
    """Opt-in phrase containment for multi-word names (PHRASE_MATCH=1). Off by default."""
    return os.environ.get("PHRASE_MATCH", "").strip().lower() in ("1", "true", "yes")


def database_path() -> str:
    return os.environ.get("DATABASE_PATH", "data/bot.db")
