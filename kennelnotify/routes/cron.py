"""
API endpoints for the external scheduler that drives notification delivery
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import verify_cron_key
from ..database import get_db
from ..domain.notifications.router import get_channel
from ..domain.notifications.schemas import DeliveryPassResult
from ..services.notification_worker import run_delivery_pass
from ..services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cron"], dependencies=[Depends(verify_cron_key)])


async def _run_pass(db: Session, channel: WhatsAppService) -> DeliveryPassResult:
    logger.info("⏰ Delivery pass triggered over HTTP")
    return await run_delivery_pass(db, channel)


@router.get("/cron/notifications", response_model=DeliveryPassResult)
async def cron_notifications(db: Session = Depends(get_db), channel: WhatsAppService = Depends(get_channel)):
    """Run one delivery pass (called by the hosting platform's cron)"""
    return await _run_pass(db, channel)


@router.post("/cron/notifications", response_model=DeliveryPassResult)
async def cron_notifications_post(db: Session = Depends(get_db), channel: WhatsAppService = Depends(get_channel)):
    return await _run_pass(db, channel)


@router.post("/notifications/process", response_model=DeliveryPassResult)
async def process_notifications(db: Session = Depends(get_db), channel: WhatsAppService = Depends(get_channel)):
    """Manually run a delivery pass"""
    return await _run_pass(db, channel)
