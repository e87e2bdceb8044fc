"""
First-run wizard: connect Spotify → share location → daily digest time.
"""
import logging
import re
import secrets
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

from telegram import Update
from telegram.ext import ContextTypes

from sources.base import ConfigError, ProviderError
from sources.spotify import SpotifyClient, build_authorize_url
from storage import settings

logger = logging.getLogger(__name__)

STEP_KEY = "onboarding_step"
STEP_CODE = "code"
STEP_LOCATION = "location"
STEP_TIME = "time"

PROMPT_LOCATION = (
    "Now share your location (📎 → Location), or send it as two numbers: <lat> <lon>."
)
PROMPT_TIME = "Daily digest time? Send HH:MM (e.g. 09:00). Timezone can be changed later."
TIME_REGEX = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
COORDS_REGEX = re.compile(r"^\s*(-?\d+(?:\.\d+)?)[\s,]+(-?\d+(?:\.\d+)?)\s*$")


async def get_step() -> str:
    return await settings.get_setting(STEP_KEY) or ""


async def set_step(step: str) -> None:
    await settings.set_setting(STEP_KEY, step)


async def needs_onboarding() -> bool:
    """True until Spotify tokens are stored."""
    return await settings.get_setting(settings.TOKENS_KEY) is None


def parse_coords(text: str) -> Optional[Tuple[float, float]]:
    m = COORDS_REGEX.match(text or "")
    if not m:
        return None
    lat, lon = float(m.group(1)), float(m.group(2))
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def parse_auth_reply(text: str) -> Tuple[str, Optional[str]]:
    """Accept a bare code or the full redirect URL; return (code, state or None)."""
    text = text.strip()
    if text.startswith("http://") or text.startswith("https://"):
        query = parse_qs(urlparse(text).query)
        return (query.get("code") or [""])[0], (query.get("state") or [None])[0]
    return text, None


async def connect_link() -> str:
    """New OAuth state, stored for the callback check; returns the authorize URL."""
    state = secrets.token_urlsafe(16)
    await settings.set_setting(settings.OAUTH_STATE_KEY, state)
    return build_authorize_url(state)


async def store_code(text: str, spotify: Optional[SpotifyClient] = None) -> Tuple[bool, str]:
    """Exchange an authorization code for tokens. Returns (connected, user-facing message)."""
    code, state = parse_auth_reply(text)
    if not code:
        return False, "That doesn't look like a Spotify code or redirect URL."
    expected = await settings.get_setting(settings.OAUTH_STATE_KEY)
    if state is not None and state != expected:
        return False, "Invalid OAuth state. Use /connect to get a fresh link."
    client = spotify or SpotifyClient()
    try:
        tokens = await client.exchange_code(code)
    except (ProviderError, ConfigError) as e:
        logger.warning("Spotify code exchange failed: %s", e)
        return False, "Spotify rejected that code. Use /connect to try again."
    finally:
        if spotify is None:
            await client.aclose()
    await settings.set_json_setting(settings.TOKENS_KEY, tokens.to_json())
    await settings.delete_setting(settings.OAUTH_STATE_KEY)
    return True, "Spotify connected."


async def handle_onboarding_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    """
    If user is in onboarding, handle their message and return True.
    Otherwise return False so the main handler can process it.
    """
    step = await get_step()
    if not step:
        return False

    text = (update.message and update.message.text) or ""
    if not text.strip():
        await update.message.reply_text("Please send a non-empty message.")
        return True

    if step == STEP_CODE:
        return await _handle_code_step(update, text.strip())
    if step == STEP_LOCATION:
        return await _handle_location_step(update, text.strip())
    if step == STEP_TIME:
        return await _handle_time_step(update, text.strip())
    return False


async def _handle_code_step(update: Update, text: str) -> bool:
    connected, reply = await store_code(text)
    await update.message.reply_text(reply)
    if connected:
        await set_step(STEP_LOCATION)
        await update.message.reply_text(PROMPT_LOCATION)
    return True


async def _handle_location_step(update: Update, text: str) -> bool:
    coords = parse_coords(text)
    if coords is None:
        await update.message.reply_text("Please send latitude and longitude, e.g. 34.05 -118.24")
        return True
    await save_location(*coords)
    await set_step(STEP_TIME)
    await update.message.reply_text(PROMPT_TIME)
    return True


async def save_location(lat: float, lon: float) -> None:
    await settings.set_setting("lat", str(lat))
    await settings.set_setting("lon", str(lon))


async def handle_shared_location(update: Update) -> None:
    """Telegram location message: store it, advancing the wizard when it was waiting for one."""
    loc = update.message.location
    await save_location(loc.latitude, loc.longitude)
    if await get_step() == STEP_LOCATION:
        await set_step(STEP_TIME)
        await update.message.reply_text(PROMPT_TIME)
    else:
        await update.message.reply_text(f"Location set to {loc.latitude:.4f}, {loc.longitude:.4f}.")


async def _handle_time_step(update: Update, text: str) -> bool:
    m = TIME_REGEX.match(text.strip())
    if not m:
        await update.message.reply_text("Please send time as HH:MM (e.g. 09:00).")
        return True
    await settings.set_setting("check_time_local", text.strip())
    await set_step("")
    await update.message.reply_text(
        "Setup complete. I'll send a digest daily at " + text.strip() + ". "
        "Use /events to search now and /settings to see your config."
    )
    return True


async def start_onboarding(update: Update) -> None:
    """Send the Spotify authorize link and wait for the code."""
    try:
        url = await connect_link()
    except ConfigError as e:
        await update.message.reply_text(f"Bot is not configured for Spotify: {e}")
        return
    await set_step(STEP_CODE)
    await update.message.reply_text(
        "Open this link, approve access, then paste the URL you were redirected to "
        "(or just the code):\n" + url
    )
