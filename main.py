"""
Entry point for the playlist download service.
"""

import asyncio
import signal

from aiohttp import web
from dotenv import load_dotenv

load_dotenv()

from config import (  # noqa: E402
    DOWNLOADS_DIR,
    HOST,
    LOG_FORMAT,
    LOG_LEVEL,
    PORT,
    REAPER_INTERVAL_SECONDS,
    SESSION_TTL_SECONDS,
)
from errors import setup_logging  # noqa: E402
from handlers import create_app  # noqa: E402
from sessions import SessionReaper, SessionStore  # noqa: E402
from utils import has_transcoder  # noqa: E402

shutdown_event = asyncio.Event()


def _request_shutdown() -> None:
    shutdown_event.set()


async def main() -> None:
    logger = setup_logging(level=LOG_LEVEL, format_string=LOG_FORMAT)
    logger.info("Starting download service")

    store = SessionStore(root=DOWNLOADS_DIR, ttl_seconds=SESSION_TTL_SECONDS)
    reaper = SessionReaper(store, interval_seconds=REAPER_INTERVAL_SECONDS)
    app = create_app(store=store, reaper=reaper)

    if not has_transcoder():
        logger.warning("Transcoding tool not found; merged and converted outputs will fail")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable", exc_info=True)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=HOST, port=PORT)
    await site.start()
    logger.info("Backend running on %s:%s (downloads in %s)", HOST, PORT, DOWNLOADS_DIR)

    try:
        await shutdown_event.wait()
    finally:
        await runner.cleanup()
        logger.info("Download service stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
