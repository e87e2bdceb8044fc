"""Tests for daily digest scheduling helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from scheduler import jobs


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("07:45", (7, 45)), ("18", (18, 0)), ("", (9, 0)), ("noon", (9, 0)), ("ab:cd", (9, 0))],
    )
    def test_parse_check_time(self, raw, expected) -> None:
        assert jobs.parse_check_time(raw) == expected

    def test_load_timezone(self) -> None:
        assert jobs.load_timezone("America/Los_Angeles").key == "America/Los_Angeles"
        assert jobs.load_timezone("Mars/Olympus_Mons").key == "UTC"
        assert jobs.load_timezone("").key == "UTC"

    def test_is_overdue(self) -> None:
        now = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
        assert jobs.is_overdue("2026-01-01T05:00:00+00:00", now)
        assert not jobs.is_overdue("2026-01-01T07:00:00Z", now)
        assert not jobs.is_overdue("2026-01-01T11:00:00", now)


class TestDoRun:
    @pytest.mark.asyncio
    async def test_failure_is_reported(self, monkeypatch) -> None:
        monkeypatch.setattr(
            jobs, "pipeline_run", AsyncMock(return_value={"status": "failure", "error": "Location not set."})
        )
        send = AsyncMock()
        await jobs._do_run(send)
        send.assert_awaited_once_with("Daily search failed: Location not set.")

    @pytest.mark.asyncio
    async def test_success_sends_nothing_extra(self, monkeypatch) -> None:
        monkeypatch.setattr(jobs, "pipeline_run", AsyncMock(return_value={"status": "success"}))
        send = AsyncMock()
        await jobs._do_run(send)
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_chat_means_no_scheduler(self, db) -> None:
        application = AsyncMock()
        await jobs.schedule_daily_run(application)
        application.bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_run_error_is_reported(self, monkeypatch) -> None:
        monkeypatch.setattr(jobs, "pipeline_run", AsyncMock(side_effect=RuntimeError("db locked")))
        send = AsyncMock()
        await jobs._do_run(send)
        send.assert_awaited_once_with("Daily search failed: Search failed (RuntimeError).")

    @pytest.mark.asyncio
    async def test_report_failure_does_not_raise(self, monkeypatch) -> None:
        monkeypatch.setattr(jobs, "pipeline_run", AsyncMock(side_effect=RuntimeError("db locked")))
        send = AsyncMock(side_effect=RuntimeError("telegram down"))
        await jobs._do_run(send)
        send.assert_awaited_once()
