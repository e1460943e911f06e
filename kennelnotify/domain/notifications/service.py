"""Notification service - Business logic for templates, scheduling and manual sends"""

import logging
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models_notifications import NotificationTemplate, ScheduledNotification, TriggerType
from ...plan_limits import can_activate_template
from ...services.notification_scheduler import NotificationScheduler
from ...services.notification_worker import ALREADY_SENT, Channel, send_now
from ...services.template_renderer import render_preview
from ...shared import errors
from .repository import NotificationRepository, TemplateRepository
from .schemas import (
    DeliveryOutcome,
    ScheduleAllResult,
    ScheduledNotificationResponse,
    ScheduleResult,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES = [
    {
        "name": "Default Booking Confirmation",
        "description": "Default template for booking confirmations",
        "subject": "Booking Confirmation",
        "body": (
            "Hello {firstName},\n\nYour booking for {petName} has been confirmed!\n\n"
            "Check-in: {checkInDate}\nCheck-out: {checkOutDate}\n\n"
            "Booking ID: {bookingId}\n\nThank you for choosing our service!"
        ),
        "trigger": TriggerType.BOOKING_CONFIRMATION.value,
        "delay_hours": 0,
    },
    {
        "name": "Default Check-in Reminder 24h",
        "description": "Reminder sent 24 hours before check-in",
        "subject": "Check-in Reminder",
        "body": (
            "Hello {firstName},\n\nThis is a reminder that you have a booking for {petName} tomorrow.\n\n"
            "Check-in: {checkInDate} at {checkInTime}\n\nWe look forward to seeing you!\n\n"
            "Booking ID: {bookingId}"
        ),
        "trigger": TriggerType.CHECK_IN_REMINDER.value,
        "delay_hours": 24,
    },
    {
        "name": "Default Check-out Reminder",
        "description": "Reminder sent 24 hours before check-out",
        "subject": "Check-out Reminder",
        "body": (
            "Hello {firstName},\n\nThis is a reminder that the stay of {petName} ends tomorrow.\n\n"
            "Check-out: {checkOutDate}\n\nThank you for choosing our service!\n\n"
            "Booking ID: {bookingId}"
        ),
        "trigger": TriggerType.CHECK_OUT_REMINDER.value,
        "delay_hours": 24,
    },
]

# Manual-send errors that map to an HTTP error rather than a 200 outcome
SEND_ERROR_STATUS = {
    errors.NOTIFICATION_NOT_FOUND: 404,
    errors.FEATURE_DISABLED: 403,
    errors.MISSING_CREDENTIALS: 400,
}


def template_to_response(template: NotificationTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        trigger=template.trigger,
        subject=template.subject,
        body=template.body,
        delayHours=template.delay_hours,
        active=template.active,
        createdAt=template.created_at,
        updatedAt=template.updated_at,
    )


def notification_to_response(notification: ScheduledNotification) -> ScheduledNotificationResponse:
    template = notification.template
    return ScheduledNotificationResponse(
        id=notification.id,
        bookingId=notification.booking_id,
        templateId=notification.template_id,
        templateName=template.name if template else None,
        trigger=template.trigger if template else None,
        recipient=notification.recipient,
        scheduledFor=notification.scheduled_for,
        state=notification.state.value,
        sent=notification.sent,
        sentAt=notification.sent_at,
        attempts=notification.attempts,
        lastAttemptAt=notification.last_attempt_at,
        lastError=notification.last_error,
        failedAt=notification.failed_at,
        variables=notification.variables or {},
    )


class NotificationService:
    """Service layer for notification business logic"""

    def __init__(self, db: Session, channel: Optional[Channel] = None):
        self.db = db
        self.channel = channel
        self.templates = TemplateRepository()
        self.notifications = NotificationRepository()
        self.scheduler = NotificationScheduler(db)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_templates(self, tenant_id: str, trigger: Optional[TriggerType] = None) -> list[NotificationTemplate]:
        return self.templates.get_templates(self.db, tenant_id, trigger=trigger.value if trigger else None)

    def get_template(self, template_id: str, tenant_id: str) -> NotificationTemplate:
        template = self.templates.get_template_by_id(self.db, template_id, tenant_id)
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")
        return template

    def _ensure_name_available(self, tenant_id: str, name: str, exclude_id: Optional[str] = None) -> None:
        existing = self.templates.get_template_by_name(self.db, tenant_id, name)
        if existing and existing.id != exclude_id:
            raise HTTPException(status_code=409, detail="Template with this name exists")

    def _ensure_can_activate(self, tenant_id: str) -> None:
        active_count = self.templates.count_active_templates(self.db, tenant_id)
        allowed, error_message = can_activate_template(self.db, tenant_id, active_count)
        if not allowed:
            logger.warning(f"⚠️ Tenant {tenant_id} reached active template limit: {error_message}")
            raise HTTPException(status_code=403, detail=error_message)

    def create_template(self, data: TemplateCreate, tenant_id: str) -> NotificationTemplate:
        logger.info(f"📥 Creating notification template '{data.name}' for tenant {tenant_id}")

        self._ensure_name_available(tenant_id, data.name)
        if data.active:
            self._ensure_can_activate(tenant_id)

        try:
            template = self.templates.create_template(
                self.db,
                tenant_id,
                name=data.name,
                description=data.description,
                trigger=data.trigger.value,
                subject=data.subject,
                body=data.body,
                delay_hours=data.delayHours,
                active=data.active,
            )
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Template with this name exists")

        logger.info(f"✅ Template created: {template.id}")
        return template

    def update_template(self, template_id: str, data: TemplateUpdate, tenant_id: str) -> NotificationTemplate:
        template = self.get_template(template_id, tenant_id)

        fields = data.model_dump(exclude_unset=True)
        updates: dict[str, Any] = {}
        if "name" in fields and fields["name"] is not None:
            updates["name"] = fields["name"].strip()
            self._ensure_name_available(tenant_id, updates["name"], exclude_id=template.id)
        if "description" in fields:
            updates["description"] = fields["description"]
        if "subject" in fields:
            updates["subject"] = fields["subject"]
        if fields.get("trigger") is not None:
            updates["trigger"] = fields["trigger"].value
        if fields.get("body") is not None:
            updates["body"] = fields["body"]
        if fields.get("delayHours") is not None:
            updates["delay_hours"] = fields["delayHours"]
        if fields.get("active") is not None:
            if fields["active"] and not template.active:
                self._ensure_can_activate(tenant_id)
            updates["active"] = fields["active"]

        try:
            template = self.templates.update_template(self.db, template, **updates)
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Template with this name exists")

        logger.info(f"✅ Template {template.id} updated")
        return template

    def delete_template(self, template_id: str, tenant_id: str) -> None:
        """Delete a template; notifications scheduled from it go with it"""
        template = self.get_template(template_id, tenant_id)
        pending = len(template.scheduled_notifications)
        self.templates.delete_template(self.db, template)
        logger.info(f"🗑️ Template {template_id} deleted along with {pending} scheduled notifications")

    def seed_default_templates(self, tenant_id: str) -> list[NotificationTemplate]:
        """Create the stock templates for any trigger the tenant has no template for"""
        created = []
        for default in DEFAULT_TEMPLATES:
            if self.templates.get_templates(self.db, tenant_id, trigger=default["trigger"]):
                logger.info(f"⏭️ Tenant {tenant_id} already has a {default['trigger']} template")
                continue
            if self.templates.get_template_by_name(self.db, tenant_id, default["name"]):
                continue
            created.append(self.templates.create_template(self.db, tenant_id, active=True, **default))

        logger.info(f"✅ Seeded {len(created)} default templates for tenant {tenant_id}")
        return created

    @staticmethod
    def preview(body: str, variables: Optional[dict[str, Any]] = None) -> str:
        return render_preview(body, variables)

    # ------------------------------------------------------------------
    # Booking notifications
    # ------------------------------------------------------------------

    def _require_booking(self, booking_id: int, tenant_id: str) -> None:
        if not self.notifications.get_booking(self.db, booking_id, tenant_id):
            raise HTTPException(status_code=404, detail="Booking not found")

    def get_booking_notifications(self, booking_id: int, tenant_id: str) -> list[ScheduledNotification]:
        self._require_booking(booking_id, tenant_id)
        return self.notifications.get_booking_notifications(self.db, booking_id, tenant_id)

    def schedule_booking(self, booking_id: int, tenant_id: str) -> ScheduleAllResult:
        self._require_booking(booking_id, tenant_id)
        summary = self.scheduler.schedule_booking_notifications(booking_id, tenant_id)
        for result in summary.results:
            self._raise_for_schedule_error(result)
        return summary

    def schedule_trigger(self, booking_id: int, trigger: TriggerType, tenant_id: str) -> ScheduleResult:
        result = self.scheduler.schedule_for_trigger(booking_id, trigger, tenant_id)
        self._raise_for_schedule_error(result)
        return result

    @staticmethod
    def _raise_for_schedule_error(result: ScheduleResult) -> None:
        if result.error == errors.BOOKING_NOT_FOUND:
            raise HTTPException(status_code=404, detail="Booking not found")
        if result.error in (errors.OWNER_NOT_FOUND, errors.MISSING_RECIPIENT):
            raise HTTPException(status_code=422, detail="Booking owner has no reachable phone number")
        if result.error:
            raise HTTPException(status_code=500, detail="Failed to schedule notifications")

    async def send_notification(self, notification_id: str, tenant_id: str) -> DeliveryOutcome:
        outcome = await send_now(self.db, notification_id, tenant_id, self.channel)

        status_code = SEND_ERROR_STATUS.get(outcome.error)
        if status_code:
            raise HTTPException(status_code=status_code, detail=outcome.error)
        if outcome.error == ALREADY_SENT:
            raise HTTPException(status_code=409, detail="Notification already sent")
        return outcome
