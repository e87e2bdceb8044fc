"""
Key-value settings in SQLite: search preferences, schedule, Spotify tokens, last run.
"""
import json
import logging
from typing import Any, Optional

import aiosqlite

from storage.db import get_db_path

logger = logging.getLogger(__name__)

TOKENS_KEY = "spotify_tokens"
OAUTH_STATE_KEY = "oauth_state"

DEFAULTS = {
    "radius_miles": "120",
    "days": "180",
    "breadth": "wide",
    "check_time_local": "09:00",
    "timezone": "UTC",
    "ignore_artists": "",
}


async def get_setting(key: str) -> Optional[str]:
    """Return value for key, or None if not set."""
    async with aiosqlite.connect(get_db_path()) as conn:
        conn.row_factory = aiosqlite.Row
        cursor = await conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row["value"] if row else None


async def get_setting_or_default(key: str) -> str:
    """Return value for key, or default from DEFAULTS, or empty string."""
    value = await get_setting(key)
    if value is not None:
        return value
    return DEFAULTS.get(key, "")


async def set_setting(key: str, value: str) -> None:
    """Set key to value."""
    async with aiosqlite.connect(get_db_path()) as conn:
        await conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, value),
        )
        await conn.commit()


async def delete_setting(key: str) -> None:
    async with aiosqlite.connect(get_db_path()) as conn:
        await conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        await conn.commit()


async def get_json_setting(key: str) -> Optional[Any]:
    """Decode a JSON-valued setting; a corrupt value reads as unset."""
    raw = await get_setting(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Setting %s is not valid JSON; ignoring", key)
        return None


async def set_json_setting(key: str, value: Any) -> None:
    await set_setting(key, json.dumps(value))


async def get_float_setting(key: str) -> Optional[float]:
    raw = await get_setting_or_default(key)
    try:
        return float(raw) if raw != "" else None
    except ValueError:
        return None


async def get_int_setting(key: str) -> Optional[int]:
    raw = await get_setting_or_default(key)
    try:
        return int(raw) if raw != "" else None
    except ValueError:
        return None
