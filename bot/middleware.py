"""
Single-user access: the bot serves one Spotify account, so only one Telegram user.
"""
import os
from functools import wraps
from typing import Awaitable, Callable, Optional

from telegram import Update
from telegram.ext import ContextTypes

from storage import settings

REJECT_MESSAGE = "This bot is private."
AUTH_KEY = "authorized_user_id"

Handler = Callable[[Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]


async def get_authorized_user_id() -> Optional[int]:
    """AUTHORIZED_USER_ID from env, else the stored first /start user, else None."""
    for raw in (os.environ.get("AUTHORIZED_USER_ID"), await settings.get_setting(AUTH_KEY)):
        if raw:
            try:
                return int(raw)
            except ValueError:
                continue
    return None


async def is_authorized(update: Update) -> bool:
    """True for the owner, or for anyone while no owner is set yet."""
    user_id = update.effective_user.id if update.effective_user else None
    if user_id is None:
        return False
    auth_id = await get_authorized_user_id()
    return auth_id is None or user_id == auth_id


def owner_only(handler: Handler) -> Handler:
    """Wrap a handler so non-owners get REJECT_MESSAGE instead."""

    @wraps(handler)
    async def wrapped(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not await is_authorized(update):
            if update.message:
                await update.message.reply_text(REJECT_MESSAGE)
            return
        await handler(update, context)

    return wrapped
