"""Tests for the SQLite key-value settings store."""

from __future__ import annotations

import pytest

from storage import settings


class TestSettings:
    @pytest.mark.asyncio
    async def test_set_get_delete(self, db) -> None:
        assert await settings.get_setting("lat") is None
        await settings.set_setting("lat", "34.05")
        await settings.set_setting("lat", "40.71")
        assert await settings.get_setting("lat") == "40.71"
        await settings.delete_setting("lat")
        assert await settings.get_setting("lat") is None

    @pytest.mark.asyncio
    async def test_defaults(self, db) -> None:
        assert await settings.get_setting_or_default("radius_miles") == "120"
        assert await settings.get_setting_or_default("breadth") == "wide"
        assert await settings.get_setting_or_default("unknown") == ""

    @pytest.mark.asyncio
    async def test_json_values(self, db) -> None:
        await settings.set_json_setting(settings.TOKENS_KEY, {"access_token": "a"})
        assert await settings.get_json_setting(settings.TOKENS_KEY) == {"access_token": "a"}
        await settings.set_setting(settings.TOKENS_KEY, "{not json")
        assert await settings.get_json_setting(settings.TOKENS_KEY) is None

    @pytest.mark.asyncio
    async def test_numeric_values(self, db) -> None:
        assert await settings.get_float_setting("radius_miles") == 120.0
        assert await settings.get_int_setting("days") == 180
        assert await settings.get_int_setting("cap") is None
        await settings.set_setting("days", "soon")
        assert await settings.get_int_setting("days") is None
