"""
Run the background workers (SLA sweep, committee expiry, notification dispatch).
Usage: python3 run.py   (from the project root)
"""
import asyncio
import logging
import signal

from config import settings
from database import engine, init_db
from services.jobs import wire_notifications
from services.scheduler import get_registered_jobs, run_all

logger = logging.getLogger("run")


async def main():
    await init_db()
    wire_notifications()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C cancels asyncio.run instead
            pass

    logger.info("%s workers starting: %s", settings.app_name, ", ".join(get_registered_jobs()))
    try:
        await run_all(stop)
    finally:
        await engine.dispose()
        logger.info("%s workers stopped", settings.app_name)


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main())
