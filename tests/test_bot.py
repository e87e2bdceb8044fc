"""Tests for Telegram handlers, onboarding and owner-only access."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from bot import handlers, onboarding
from bot.middleware import REJECT_MESSAGE, is_authorized, owner_only
from sources.base import ProviderError
from sources.spotify import SpotifyTokens
from storage import settings


def _update(text: str = "", user_id: int = 1, chat_id: int = 100) -> MagicMock:
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_chat.id = chat_id
    update.message.text = text
    update.message.reply_text = AsyncMock()
    return update


def _context(*args: str) -> MagicMock:
    context = MagicMock()
    context.args = list(args)
    return context


def _replies(update: MagicMock) -> list[str]:
    return [c.args[0] for c in update.message.reply_text.await_args_list]


@pytest.fixture
def spotify_env(monkeypatch) -> None:
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "cid")
    monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "secret")
    monkeypatch.setenv("SPOTIFY_REDIRECT_URI", "http://localhost/callback")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class TestOwnerOnly:
    @pytest.mark.asyncio
    async def test_anyone_until_claimed(self, db, monkeypatch) -> None:
        monkeypatch.delenv("AUTHORIZED_USER_ID", raising=False)
        assert await is_authorized(_update(user_id=5))
        await settings.set_setting("authorized_user_id", "7")
        assert not await is_authorized(_update(user_id=5))
        assert await is_authorized(_update(user_id=7))

    @pytest.mark.asyncio
    async def test_env_wins(self, db, monkeypatch) -> None:
        monkeypatch.setenv("AUTHORIZED_USER_ID", "9")
        await settings.set_setting("authorized_user_id", "7")
        assert await is_authorized(_update(user_id=9))
        assert not await is_authorized(_update(user_id=7))

    @pytest.mark.asyncio
    async def test_wrapper_rejects(self, db, monkeypatch) -> None:
        monkeypatch.setenv("AUTHORIZED_USER_ID", "9")
        inner = AsyncMock()
        update = _update(user_id=1)
        await owner_only(inner)(update, _context())
        inner.assert_not_awaited()
        assert _replies(update) == [REJECT_MESSAGE]


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


class TestOnboardingParsing:
    @pytest.mark.parametrize(
        "text, expected",
        [("34.05 -118.24", (34.05, -118.24)), ("34.05,-118.24", (34.05, -118.24)), ("91 0", None), ("LA", None)],
    )
    def test_parse_coords(self, text, expected) -> None:
        assert onboarding.parse_coords(text) == expected

    def test_parse_auth_reply(self) -> None:
        assert onboarding.parse_auth_reply(" AQDcode ") == ("AQDcode", None)
        assert onboarding.parse_auth_reply("http://localhost/callback?code=AQD&state=xyz") == ("AQD", "xyz")
        assert onboarding.parse_auth_reply("http://localhost/callback?error=access_denied") == ("", None)


class TestStoreCode:
    @pytest.mark.asyncio
    async def test_connect_link_stores_state(self, db, spotify_env) -> None:
        url = await onboarding.connect_link()
        state = parse_qs(urlparse(url).query)["state"][0]
        assert await settings.get_setting(settings.OAUTH_STATE_KEY) == state

    @pytest.mark.asyncio
    async def test_stores_tokens(self, db) -> None:
        await settings.set_setting(settings.OAUTH_STATE_KEY, "xyz")
        spotify = MagicMock()
        spotify.exchange_code = AsyncMock(return_value=SpotifyTokens("A", "R", expires_at=123.0))

        connected, reply = await onboarding.store_code("http://localhost/callback?code=AQD&state=xyz", spotify)

        assert connected
        assert reply == "Spotify connected."
        spotify.exchange_code.assert_awaited_once_with("AQD")
        assert (await settings.get_json_setting(settings.TOKENS_KEY))["access_token"] == "A"
        assert await settings.get_setting(settings.OAUTH_STATE_KEY) is None
        assert not await onboarding.needs_onboarding()

    @pytest.mark.asyncio
    async def test_state_mismatch(self, db) -> None:
        await settings.set_setting(settings.OAUTH_STATE_KEY, "xyz")
        spotify = MagicMock()
        spotify.exchange_code = AsyncMock()
        connected, reply = await onboarding.store_code("http://localhost/callback?code=AQD&state=evil", spotify)
        assert not connected
        assert "Invalid OAuth state" in reply
        spotify.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_code(self, db) -> None:
        spotify = MagicMock()
        spotify.exchange_code = AsyncMock(side_effect=ProviderError("spotify", "invalid_grant", status=400))
        connected, _ = await onboarding.store_code("AQD", spotify)
        assert not connected
        assert await onboarding.needs_onboarding()


class TestWizard:
    @pytest.mark.asyncio
    async def test_not_onboarding(self, db) -> None:
        assert not await onboarding.handle_onboarding_message(_update("hello"), _context())

    @pytest.mark.asyncio
    async def test_location_then_time(self, db) -> None:
        await onboarding.set_step(onboarding.STEP_LOCATION)

        bad = _update("somewhere")
        assert await onboarding.handle_onboarding_message(bad, _context())
        assert await onboarding.get_step() == onboarding.STEP_LOCATION

        good = _update("34.05 -118.24")
        assert await onboarding.handle_onboarding_message(good, _context())
        assert await settings.get_setting("lat") == "34.05"
        assert _replies(good) == [onboarding.PROMPT_TIME]

        done = _update("20:30")
        assert await onboarding.handle_onboarding_message(done, _context())
        assert await settings.get_setting("check_time_local") == "20:30"
        assert await onboarding.get_step() == ""

    @pytest.mark.asyncio
    async def test_shared_location_advances_wizard(self, db) -> None:
        await onboarding.set_step(onboarding.STEP_LOCATION)
        update = _update()
        update.message.location.latitude = 40.7
        update.message.location.longitude = -74.0
        await onboarding.handle_shared_location(update)
        assert await settings.get_setting("lon") == "-74.0"
        assert await onboarding.get_step() == onboarding.STEP_TIME


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_claims_owner_and_begins_setup(self, db, spotify_env, monkeypatch) -> None:
        monkeypatch.delenv("AUTHORIZED_USER_ID", raising=False)
        update = _update(user_id=42, chat_id=4242)
        await handlers.cmd_start(update, _context())
        assert await settings.get_setting("authorized_user_id") == "42"
        assert await settings.get_setting("notification_chat_id") == "4242"
        assert await onboarding.get_step() == onboarding.STEP_CODE
        assert "accounts.spotify.com/authorize" in _replies(update)[0]

    @pytest.mark.asyncio
    async def test_ignore_and_unignore(self, db) -> None:
        await handlers.cmd_ignore(_update(), _context("Nickelback,", "Creed"))
        await handlers.cmd_ignore(_update(), _context("creed"))
        assert await settings.get_setting("ignore_artists") == "Nickelback,Creed"

        update = _update()
        await handlers.cmd_unignore(update, _context("NICKELBACK"))
        assert await settings.get_setting("ignore_artists") == "Creed"
        assert _replies(update) == ["Ignoring: Creed"]

    @pytest.mark.asyncio
    async def test_set_breadth(self, db) -> None:
        update = _update()
        await handlers.cmd_set_breadth(update, _context("Tight"))
        assert await settings.get_setting("breadth") == "tight"
        assert "320" in _replies(update)[0]

        bad = _update()
        await handlers.cmd_set_breadth(bad, _context("enormous"))
        assert await settings.get_setting("breadth") == "tight"
        assert _replies(bad)[0].startswith("Usage")

    @pytest.mark.asyncio
    async def test_set_radius_clamped(self, db) -> None:
        await handlers.cmd_set_radius(_update(), _context("900"))
        assert await settings.get_setting("radius_miles") == "200.0"

    @pytest.mark.asyncio
    async def test_set_timezone_validates(self, db) -> None:
        bad = _update()
        await handlers.cmd_set_timezone(bad, _context("Nowhere/Land"))
        assert await settings.get_setting("timezone") is None
        await handlers.cmd_set_timezone(_update(), _context("America/Chicago"))
        assert await settings.get_setting("timezone") == "America/Chicago"

    @pytest.mark.asyncio
    async def test_status(self, db) -> None:
        update = _update()
        await handlers.cmd_status(update, _context())
        assert _replies(update) == ["No run yet. Use /events to search now."]

        await settings.set_setting("last_run_at", "2026-01-01T09:00:00+00:00")
        await settings.set_setting("last_run_status", "partial_failure")
        await settings.set_setting(
            "last_run_summary_json",
            '{"count": 3, "artists_queried": 12, "sent": 3, "used_fallback": false, "errors": ["Mitski: timeout"]}',
        )
        update = _update()
        await handlers.cmd_status(update, _context())
        text = _replies(update)[0]
        assert "partial_failure" in text
        assert "Artists queried: 12, Concerts: 3, Sent: 3" in text
        assert "Mitski: timeout" in text

    @pytest.mark.asyncio
    async def test_events_reports_failure(self, db, monkeypatch) -> None:
        monkeypatch.setattr(
            handlers, "pipeline_run", AsyncMock(return_value={"status": "failure", "error": "Spotify is not connected."})
        )
        update = _update()
        await handlers.cmd_events(update, _context())
        assert _replies(update)[-1] == "Spotify is not connected."

    def test_every_command_registered(self) -> None:
        application = MagicMock()
        handlers.register_handlers(application)
        assert application.add_handler.call_count == len(handlers.COMMANDS) + 2
