"""
Notification Background Worker
Polls for due notifications and delivers them
"""

import asyncio
import logging

from .. import config
from ..database import SessionLocal
from ..domain.notifications.schemas import DeliveryPassResult
from ..services.notification_worker import run_delivery_pass

logger = logging.getLogger(__name__)


async def process_due_notifications() -> DeliveryPassResult:
    """
    Run one delivery pass with a fresh session
    """
    logger.info("🔄 Processing due notifications...")

    db = SessionLocal()
    try:
        return await run_delivery_pass(db)
    finally:
        db.close()


async def run_notification_worker():
    """
    Main worker loop - runs every NOTIFICATION_POLL_INTERVAL_SECONDS
    """
    logger.info("🚀 Starting notification worker...")

    while True:
        try:
            await process_due_notifications()
            await asyncio.sleep(config.NOTIFICATION_POLL_INTERVAL_SECONDS)

        except Exception as e:
            logger.error(f"❌ Error in notification worker loop: {e}")
            await asyncio.sleep(config.NOTIFICATION_POLL_INTERVAL_SECONDS)


if __name__ == "__main__":
    asyncio.run(run_notification_worker())
