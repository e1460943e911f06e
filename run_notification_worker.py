"""
Notification Background Worker Runner
Run this as a separate process when Redis/ARQ is not available:
python run_notification_worker.py
"""

import asyncio
import logging
import sys

from kennelnotify.workers.notification_worker import run_notification_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting Notification Background Worker...")
    try:
        asyncio.run(run_notification_worker())
    except KeyboardInterrupt:
        logger.info("👋 Notification worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Notification worker crashed: {e}")
        sys.exit(1)
