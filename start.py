#!/usr/bin/env python3
"""
Moderation Bot - Single Command Startup
Run with: python start.py
Runs both the Flask admin API AND the Discord bot concurrently
"""

import sys
import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


def run_flask_app():
    """Run Flask in a separate thread"""
    try:
        from backend import run_backend
        run_backend()
    except Exception as e:
        logger.error(f"[Flask] Error starting Flask app: {e}", exc_info=True)


async def run_discord_bot():
    """Run Discord bot asynchronously"""
    logger.info("[Discord] Starting Discord bot...")
    import bot
    await bot.run_bot()


async def main():
    """Main function to run both bot and Flask concurrently"""
    from config import config

    try:
        config.validate()
    except ValueError as e:
        logger.error(f"❌ {e}")
        return

    flask_thread = threading.Thread(target=run_flask_app, daemon=True)
    flask_thread.start()
    logger.info("[Flask] Web server thread started")

    # Wait a moment for Flask to initialize
    await asyncio.sleep(2)

    await run_discord_bot()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("[Shutdown] Graceful shutdown complete")
        sys.exit(0)
