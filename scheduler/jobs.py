"""
Daily digest at the configured local time.
Optional catch-up: run immediately on startup if the last run is older than 6 hours.
"""
import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from storage import settings
from pipeline import run as pipeline_run

logger = logging.getLogger(__name__)

CATCH_UP_HOURS = 6
UTC = ZoneInfo("UTC")


async def _do_run(send_message) -> None:
    """Execute one search and send the digest."""
    try:
        result = await pipeline_run(send_message)
    except Exception as e:
        logger.exception("Scheduled run failed: %s", e)
        result = {"status": "failure", "error": f"Search failed ({type(e).__name__})."}
    status = result.get("status", "?")
    logger.info("Scheduled run finished: status=%s", status)
    if status == "failure":
        try:
            await send_message(f"Daily search failed: {result.get('error') or 'unknown error'}")
        except Exception as e:
            logger.warning("Could not report failed run: %s", e)


def _get_send_message(bot, chat_id: int):
    async def send(text: str) -> None:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode="Markdown", disable_web_page_preview=True)
    return send


def parse_check_time(time_str: str) -> tuple[int, int]:
    """'HH:MM' or 'HH' → (hour, minute); anything unparseable → 09:00."""
    parts = (time_str or "").strip().split(":")
    hour, minute = 9, 0
    if len(parts) >= 2:
        try:
            hour, minute = int(parts[0]), int(parts[1])
        except ValueError:
            pass
    elif len(parts) == 1 and parts[0].isdigit():
        hour = int(parts[0])
    return hour, minute


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", name)
        return UTC


def is_overdue(last_at: str, now: datetime) -> bool:
    last_dt = datetime.fromisoformat(last_at.replace("Z", "+00:00"))
    if last_dt.tzinfo is None:
        last_dt = last_dt.replace(tzinfo=UTC)
    return (now - last_dt).total_seconds() > CATCH_UP_HOURS * 3600


async def schedule_daily_run(application) -> None:
    """
    Schedule the daily digest at the user-configured time.
    Requires application.bot and notification_chat_id in settings.
    """
    chat_id_raw = await settings.get_setting("notification_chat_id")
    if not chat_id_raw:
        logger.warning("No notification_chat_id set; scheduler not started")
        return
    try:
        chat_id = int(chat_id_raw)
    except ValueError:
        logger.warning("Invalid notification_chat_id; scheduler not started")
        return

    hour, minute = parse_check_time(await settings.get_setting_or_default("check_time_local"))
    tz = load_timezone(await settings.get_setting_or_default("timezone"))

    scheduler = AsyncIOScheduler(timezone=tz)
    send_message = _get_send_message(application.bot, chat_id)

    async def job():
        await _do_run(send_message)

    scheduler.add_job(job, CronTrigger(hour=hour, minute=minute, timezone=tz))
    scheduler.start()
    logger.info("Scheduler started: daily at %02d:%02d %s", hour, minute, tz.key)

    last_at = await settings.get_setting("last_run_at")
    if last_at:
        try:
            overdue = is_overdue(last_at, datetime.now(UTC))
        except ValueError as e:
            logger.debug("Catch-up check skipped: %s", e)
            return
        if overdue:
            logger.info("Catch-up: running now (last run was > %sh ago)", CATCH_UP_HOURS)
            asyncio.create_task(_do_run(send_message))
