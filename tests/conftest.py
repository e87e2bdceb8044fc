"""Shared pytest fixtures for the Setlist Radar test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from models import EventCandidate
from storage.db import init_db

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path) -> str:
    """Fresh SQLite settings database for one test."""
    path = str(tmp_path / "bot.db")
    init_db(path)
    return path


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_tm_event() -> Callable[..., dict[str, Any]]:
    """Build a Ticketmaster /events.json event object."""

    def _make(
        event_id: str = "E1",
        name: str = "Phoebe Bridgers",
        attractions: list[tuple[str, str]] | None = None,
        start: str | None = "2026-02-01T03:00:00Z",
        venue: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if attractions is None:
            attractions = [("K1", "Phoebe Bridgers")]
        if venue is None:
            venue = {
                "name": "Hollywood Bowl",
                "city": {"name": "Los Angeles"},
                "state": {"name": "California"},
                "country": {"name": "United States Of America"},
                "location": {"latitude": "34.1122", "longitude": "-118.3391"},
            }
        data: dict[str, Any] = {
            "id": event_id,
            "name": name,
            "url": f"https://www.ticketmaster.com/event/{event_id}",
            "_embedded": {
                "attractions": [{"id": i, "name": n} for i, n in attractions],
                "venues": [venue] if venue else [],
            },
        }
        if start is not None:
            data["dates"] = {"start": {"dateTime": start}}
        return data

    return _make


@pytest.fixture
def make_candidate() -> Callable[..., EventCandidate]:
    def _make(**overrides: Any) -> EventCandidate:
        fields: dict[str, Any] = {
            "source_id": "E1",
            "event_name": "Phoebe Bridgers",
            "artist_name": "Phoebe Bridgers",
            "url": "https://www.ticketmaster.com/event/E1",
            "venue_name": "Hollywood Bowl",
            "lat": 34.1122,
            "lon": -118.3391,
            "start_utc": "2026-02-01T03:00:00Z",
        }
        fields.update(overrides)
        return EventCandidate(**fields)

    return _make
