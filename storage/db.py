"""
SQLite location and schema. Everything the bot keeps is a row in `settings`.
"""
import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

_db_path: str = "data/bot.db"

# Spotify tokens, search preferences, schedule and last-run summary.
# Ranked results are recomputed per run and never stored.
SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def init_db(db_path: str) -> None:
    """Point storage at db_path and create the schema (sync, for startup)."""
    global _db_path
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _db_path = str(path)
    with sqlite3.connect(_db_path) as conn:
        conn.executescript(SCHEMA)
    logger.info("Settings database at %s", _db_path)


def get_db_path() -> str:
    return _db_path
