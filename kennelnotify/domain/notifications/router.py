"""Notification router - FastAPI endpoints for templates, booking notifications and manual sends"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_tenant_id
from ...database import get_db
from ...models_notifications import TriggerType
from ...services.whatsapp_service import WhatsAppService
from .schemas import (
    DeliveryOutcome,
    PreviewRequest,
    PreviewResponse,
    ScheduleAllResult,
    ScheduledNotificationResponse,
    ScheduleResult,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from .service import NotificationService, notification_to_response, template_to_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


def get_channel(db: Session = Depends(get_db)) -> WhatsAppService:
    """Dependency injection for the outbound messaging channel"""
    return WhatsAppService(db)


def get_notification_service(
    db: Session = Depends(get_db), channel: WhatsAppService = Depends(get_channel)
) -> NotificationService:
    """Dependency injection for NotificationService"""
    return NotificationService(db, channel)


# ============================================================================
# TEMPLATES
# ============================================================================


@router.get("/notification-templates", response_model=list[TemplateResponse])
async def list_templates(
    trigger: Optional[TriggerType] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """List the tenant's notification templates, optionally for one trigger"""
    return [template_to_response(t) for t in service.get_templates(tenant_id, trigger)]


@router.post("/notification-templates", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    return template_to_response(service.create_template(data, tenant_id))


@router.post("/notification-templates/defaults", response_model=list[TemplateResponse])
async def seed_default_templates(
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Create the stock confirmation and reminder templates where missing"""
    return [template_to_response(t) for t in service.seed_default_templates(tenant_id)]


@router.post("/notification-templates/preview", response_model=PreviewResponse)
async def preview_template(data: PreviewRequest):
    """Render a template body with sample values; unknown placeholders show as [...]"""
    return PreviewResponse(rendered=NotificationService.preview(data.body, data.variables))


@router.get("/notification-templates/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    return template_to_response(service.get_template(template_id, tenant_id))


@router.patch("/notification-templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    return template_to_response(service.update_template(template_id, data, tenant_id))


@router.delete("/notification-templates/{template_id}")
async def delete_template(
    template_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Delete a template and every notification scheduled from it"""
    service.delete_template(template_id, tenant_id)
    return {"success": True}


# ============================================================================
# BOOKING NOTIFICATIONS
# ============================================================================


@router.get("/bookings/{booking_id}/notifications", response_model=list[ScheduledNotificationResponse])
async def get_booking_notifications(
    booking_id: int,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Notification history for a booking, newest first"""
    return [notification_to_response(n) for n in service.get_booking_notifications(booking_id, tenant_id)]


@router.post("/bookings/{booking_id}/notifications", response_model=ScheduleAllResult)
async def schedule_booking_notifications(
    booking_id: int,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Schedule confirmation, check-in and check-out messages for a booking"""
    return service.schedule_booking(booking_id, tenant_id)


@router.post("/bookings/{booking_id}/notifications/{trigger}", response_model=ScheduleResult)
async def schedule_trigger_notifications(
    booking_id: int,
    trigger: TriggerType,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    return service.schedule_trigger(booking_id, trigger, tenant_id)


# ============================================================================
# MANUAL SEND
# ============================================================================


@router.post("/notifications/{notification_id}/send", response_model=DeliveryOutcome)
async def send_notification(
    notification_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Send a notification immediately, ignoring its due time"""
    return await service.send_notification(notification_id, tenant_id)


__all__ = ["router", "get_channel", "get_notification_service"]
