"""
Setlist Radar, a single-user Telegram bot: Spotify taste → ranked Ticketmaster concerts.
"""
import os
import sys
import logging

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
)
# httpx logs every request URL at INFO, including the Ticketmaster apikey
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

PROVIDER_ENV = ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REDIRECT_URI", "TICKETMASTER_API_KEY")


def missing_provider_env() -> list[str]:
    return [name for name in PROVIDER_ENV if not os.environ.get(name)]


def build_application(token: str):
    """Telegram application with every command registered and the daily job started on init."""
    from telegram.ext import Application
    from bot.handlers import register_handlers
    from scheduler.jobs import schedule_daily_run

    async def post_init(app):
        logger.info("Bot initialized")
        await schedule_daily_run(app)

    application = (
        Application.builder()
        .token(token)
        .post_init(post_init)
        .build()
    )
    register_handlers(application)
    return application


def main() -> None:
    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    if not token:
        logger.error("TELEGRAM_BOT_TOKEN is not set")
        sys.exit(1)
    for name in missing_provider_env():
        logger.warning("%s is not set; searches will fail until it is", name)

    import config
    from storage.db import init_db
    init_db(config.database_path())

    from telegram import Update
    application = build_application(token)
    logger.info("Starting polling")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
