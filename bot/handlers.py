"""
Telegram command handlers: /start, /help, /connect, /events, /artists, /set_*, etc.
"""
import json
import logging
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from telegram import Update
from telegram.ext import ContextTypes, CommandHandler, MessageHandler, filters

import config
from models import Tier
from pipeline import AuthError, list_artists, load_tokens, run as pipeline_run
from sources.base import ConfigError, ProviderError
from sources.spotify import SpotifyClient
from storage import settings
from bot.middleware import AUTH_KEY, get_authorized_user_id, owner_only
from bot.onboarding import (
    connect_link,
    handle_onboarding_message,
    handle_shared_location,
    needs_onboarding,
    parse_coords,
    save_location,
    start_onboarding,
    store_code,
)

logger = logging.getLogger(__name__)

TIME_REGEX = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
ARTISTS_SHOWN = 40
TIER_LABELS = {Tier.LIKED: "Liked", Tier.TOP: "Top", Tier.FOLLOWED: "Followed"}


def _send_to_chat(context: ContextTypes.DEFAULT_TYPE, chat_id: int):
    bot = context.application.bot

    async def send(text: str) -> None:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode="Markdown", disable_web_page_preview=True)

    return send


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    # First /start claims the bot when no owner is configured
    if await get_authorized_user_id() is None and update.effective_user:
        await settings.set_setting(AUTH_KEY, str(update.effective_user.id))
    if update.effective_chat:
        await settings.set_setting("notification_chat_id", str(update.effective_chat.id))

    if await needs_onboarding():
        await start_onboarding(update)
        return
    await update.message.reply_text(await _settings_text() + "\n\nUse /events, /artists, /status or /help.")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "Commands:\n"
        "/start — Show settings or start setup\n"
        "/help — This message\n"
        "/connect — Link (or re-link) your Spotify account\n"
        "/code <code or redirect URL> — Finish Spotify linking\n"
        "/events — Search upcoming concerts for your artists now\n"
        "/artists — Your Top and Followed artists\n"
        "/settings — Show current settings\n"
        "/set_location <lat> <lon> — Search center (or just share a location)\n"
        "/set_radius <miles> — Search radius (1-200)\n"
        "/set_days <n> — How far ahead to look\n"
        "/set_breadth tight|balanced|wide — How many artists to query\n"
        "/set_time <HH:MM> — Daily digest time\n"
        "/set_timezone <Area/City> — Timezone for the digest\n"
        "/ignore <a, b> — Never query these artists\n"
        "/unignore <a, b> — Query them again\n"
        "/status — Last run time and counts\n\n"
        "Matching: an event counts only when Ticketmaster lists your artist as a performer. "
        "Tributes and 'music of' programs are skipped unless the official artist id matches."
    )


async def _settings_text() -> str:
    lat = await settings.get_setting("lat")
    lon = await settings.get_setting("lon")
    radius = await settings.get_setting_or_default("radius_miles")
    days = await settings.get_setting_or_default("days")
    breadth = await settings.get_setting_or_default("breadth")
    t = await settings.get_setting_or_default("check_time_local")
    tz = await settings.get_setting_or_default("timezone")
    ignore = await settings.get_setting_or_default("ignore_artists")
    connected = not await needs_onboarding()
    return (
        f"Spotify: {'connected' if connected else 'not connected'}\n"
        f"Location: {f'{lat}, {lon}' if lat and lon else '(not set)'}\n"
        f"Radius: {radius} mi, looking {days} days ahead\n"
        f"Breadth: {breadth}\n"
        f"Daily digest: {t} ({tz})\n"
        f"Ignored: {ignore or 'none'}"
    )


async def cmd_settings(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(await _settings_text())


async def cmd_connect(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        url = await connect_link()
    except ConfigError as e:
        await update.message.reply_text(f"Bot is not configured for Spotify: {e}")
        return
    await update.message.reply_text(
        "Open this link, approve access, then send /code followed by the URL you were redirected to:\n" + url
    )


async def cmd_code(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not context.args:
        await update.message.reply_text("Usage: /code <code or redirect URL>")
        return
    _, reply = await store_code(" ".join(context.args))
    await update.message.reply_text(reply)


async def cmd_set_location(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    coords = parse_coords(" ".join(context.args or []))
    if coords is None:
        await update.message.reply_text("Usage: /set_location <lat> <lon> (e.g. 34.05 -118.24)")
        return
    await save_location(*coords)
    await update.message.reply_text(f"Location set to {coords[0]}, {coords[1]}.")


async def on_location(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await handle_shared_location(update)


async def cmd_set_radius(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        radius = float(context.args[0])
    except (IndexError, TypeError, ValueError):
        await update.message.reply_text("Usage: /set_radius <miles>")
        return
    radius = max(1.0, min(200.0, radius))
    await settings.set_setting("radius_miles", str(radius))
    await update.message.reply_text(f"Radius set to {radius:g} miles.")


async def cmd_set_days(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        days = int(context.args[0])
    except (IndexError, TypeError, ValueError):
        await update.message.reply_text("Usage: /set_days <n>")
        return
    days = max(1, min(365, days))
    await settings.set_setting("days", str(days))
    await update.message.reply_text(f"Looking {days} days ahead.")


async def cmd_set_breadth(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    breadth = (context.args[0].strip().lower() if context.args else "")
    if breadth not in config.BREADTH_CAPS:
        await update.message.reply_text("Usage: /set_breadth tight|balanced|wide")
        return
    await settings.set_setting("breadth", breadth)
    await update.message.reply_text(
        f"Breadth set to {breadth} (up to {config.BREADTH_CAPS[breadth]} artists)."
    )


async def cmd_set_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    raw = context.args[0].strip() if context.args else ""
    if not TIME_REGEX.match(raw):
        await update.message.reply_text("Usage: /set_time <HH:MM> (e.g. 09:00)")
        return
    await settings.set_setting("check_time_local", raw)
    await update.message.reply_text(f"Daily digest set to {raw}. Takes effect after restart.")


async def cmd_set_timezone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    raw = context.args[0].strip() if context.args else ""
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        await update.message.reply_text("Usage: /set_timezone <Area/City> (e.g. America/Los_Angeles)")
        return
    await settings.set_setting("timezone", raw)
    await update.message.reply_text(f"Timezone set to {raw}. Takes effect after restart.")


def _names_arg(context: ContextTypes.DEFAULT_TYPE) -> list[str]:
    return [n.strip() for n in " ".join(context.args or []).split(",") if n.strip()]


async def cmd_ignore(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    names = _names_arg(context)
    if not names:
        await update.message.reply_text("Usage: /ignore <artist>, <artist>")
        return
    current = [n.strip() for n in (await settings.get_setting_or_default("ignore_artists")).split(",") if n.strip()]
    lowered = {n.lower() for n in current}
    current.extend(n for n in names if n.lower() not in lowered)
    await settings.set_setting("ignore_artists", ",".join(current))
    await update.message.reply_text(f"Ignoring: {', '.join(current)}")


async def cmd_unignore(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    drop = {n.lower() for n in _names_arg(context)}
    current = [n.strip() for n in (await settings.get_setting_or_default("ignore_artists")).split(",") if n.strip()]
    kept = [n for n in current if n.lower() not in drop]
    await settings.set_setting("ignore_artists", ",".join(kept))
    await update.message.reply_text(f"Ignoring: {', '.join(kept) or 'none'}")


async def cmd_events(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat_id = update.effective_chat.id if update.effective_chat else None
    if chat_id is None:
        return
    await update.message.reply_text("Searching… this can take a minute for large libraries.")
    result = await pipeline_run(_send_to_chat(context, chat_id))
    if result["status"] == "failure":
        await update.message.reply_text(result.get("error") or "Search failed.")


async def cmd_artists(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        tokens = await load_tokens()
        async with SpotifyClient() as spotify:
            refreshed, artists = await list_artists(spotify, tokens)
    except (AuthError, ProviderError, ConfigError) as e:
        logger.warning("Artist listing failed: %s", e)
        await update.message.reply_text(str(e) if isinstance(e, AuthError) else "Could not load your Spotify artists.")
        return
    if refreshed is not tokens:
        await settings.set_json_setting(settings.TOKENS_KEY, refreshed.to_json())
    lines = [
        f"• {a.name} ({', '.join(TIER_LABELS[t] for t in (Tier.TOP, Tier.FOLLOWED) if t in a.tiers)})"
        for a in artists[:ARTISTS_SHOWN]
    ]
    more = f"\n…and {len(artists) - ARTISTS_SHOWN} more" if len(artists) > ARTISTS_SHOWN else ""
    await update.message.reply_text(f"{len(artists)} artists:\n" + "\n".join(lines) + more)


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    last_at = await settings.get_setting("last_run_at")
    last_status = await settings.get_setting("last_run_status")
    summary_raw = await settings.get_setting("last_run_summary_json")
    if not last_at:
        await update.message.reply_text("No run yet. Use /events to search now.")
        return
    try:
        summary = json.loads(summary_raw) if summary_raw else {}
    except json.JSONDecodeError:
        summary = {}
    errors = summary.get("errors", [])
    err_text = "; ".join(errors[:3]) if errors else "none"
    await update.message.reply_text(
        f"Last run: {last_at}\n"
        f"Outcome: {last_status}\n"
        f"Artists queried: {summary.get('artists_queried', '?')}, "
        f"Concerts: {summary.get('count', '?')}, Sent: {summary.get('sent', '?')}"
        f"{' (fallback search)' if summary.get('used_fallback') else ''}\n"
        f"Errors: {err_text}"
    )


async def on_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route messages: onboarding step or unknown."""
    if await handle_onboarding_message(update, context):
        return
    if update.message:
        await update.message.reply_text("Send /help for commands.")


COMMANDS = {
    "start": cmd_start,
    "help": cmd_help,
    "settings": cmd_settings,
    "connect": cmd_connect,
    "code": cmd_code,
    "events": cmd_events,
    "artists": cmd_artists,
    "set_location": cmd_set_location,
    "set_radius": cmd_set_radius,
    "set_days": cmd_set_days,
    "set_breadth": cmd_set_breadth,
    "set_time": cmd_set_time,
    "set_timezone": cmd_set_timezone,
    "ignore": cmd_ignore,
    "unignore": cmd_unignore,
    "status": cmd_status,
}


def register_handlers(application) -> None:
    for name, handler in COMMANDS.items():
        application.add_handler(CommandHandler(name, owner_only(handler)))
    application.add_handler(MessageHandler(filters.LOCATION, owner_only(on_location)))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, owner_only(on_message)))
