"""
Notification Scheduler
Turns a booking event into scheduled WhatsApp notifications, one per active
template of the triggering type.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..domain.notifications.repository import NotificationRepository, TemplateRepository
from ..domain.notifications.schemas import ScheduleAllResult, ScheduleResult, VariableSnapshot
from ..models import Booking
from ..models_notifications import TriggerType
from ..plan_limits import is_messaging_enabled
from ..shared import errors
from ..shared.dates import format_local_date, format_local_time, utcnow
from ..shared.validators import normalize_phone

logger = logging.getLogger(__name__)

# Zero-delay confirmations go out on the next worker tick rather than "now"
CONFIRMATION_GRACE = timedelta(minutes=1)

# sent_at recorded for check-in reminders whose window already passed
BACKFILL_OFFSET = timedelta(hours=1)

# Triggers scheduled when a booking is created or confirmed
BOOKING_TRIGGERS = (
    TriggerType.BOOKING_CONFIRMATION,
    TriggerType.CHECK_IN_REMINDER,
    TriggerType.CHECK_OUT_REMINDER,
)


def build_variable_snapshot(booking: Booking) -> VariableSnapshot:
    """Capture the values a message may reference, formatted in local time"""
    owner = booking.owner
    full_name = (owner.name or "").strip() if owner else ""
    return VariableSnapshot(
        firstName=full_name.split(" ")[0] if full_name else "",
        fullName=full_name,
        petName=booking.dog.name if booking.dog else "",
        checkInDate=format_local_date(booking.start_date),
        checkOutDate=format_local_date(booking.end_date),
        checkInTime=format_local_time(booking.start_date),
        roomName=booking.room.name if booking.room else "",
        bookingId=str(booking.id),
    )


def plan_delivery(
    trigger: str, delay_hours: int, booking: Booking, now: datetime
) -> Optional[tuple[datetime, Optional[datetime]]]:
    """
    Decide when a template should go out for a booking.

    Returns ``(scheduled_for, presend_sent_at)`` or None when the message is
    skipped. ``presend_sent_at`` is set only for check-in reminders whose send
    time has passed while the stay has not started yet: the record is kept for
    history but already marked sent.
    """
    delay = timedelta(hours=delay_hours or 0)

    if trigger == TriggerType.BOOKING_CONFIRMATION.value:
        if not delay:
            return now + CONFIRMATION_GRACE, None
        return now + delay, None

    if trigger == TriggerType.CHECK_IN_REMINDER.value:
        scheduled_for = booking.start_date - delay
        if scheduled_for >= now:
            return scheduled_for, None
        if booking.start_date > now:
            return scheduled_for, now - BACKFILL_OFFSET
        return None

    if trigger == TriggerType.CHECK_OUT_REMINDER.value:
        scheduled_for = booking.end_date - delay
        if scheduled_for <= now:
            return None
        return scheduled_for, None

    return now + delay, None


class NotificationScheduler:
    """Writes ScheduledNotification rows for booking events"""

    def __init__(self, db: Session):
        self.db = db
        self.templates = TemplateRepository()
        self.notifications = NotificationRepository()

    def schedule_for_trigger(
        self,
        booking_id: int,
        trigger: Union[TriggerType, str],
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        """
        Schedule every active template of ``trigger`` for one booking.

        Never raises: lookup problems come back as ``result.error`` and a
        failing insert is logged without affecting the other templates.
        """
        now = now or utcnow()
        trigger_value = trigger.value if isinstance(trigger, TriggerType) else str(trigger)
        result = ScheduleResult(bookingId=booking_id, trigger=trigger_value)

        try:
            if not is_messaging_enabled(self.db, tenant_id, now):
                logger.info(f"⏭️ Messaging disabled for tenant {tenant_id}, not scheduling {trigger_value}")
                return result

            booking = self.notifications.get_booking(self.db, booking_id, tenant_id)
            if not booking:
                logger.warning(f"⚠️ Booking {booking_id} not found for tenant {tenant_id}")
                result.error = errors.BOOKING_NOT_FOUND
                return result

            owner = booking.owner
            if not owner:
                logger.warning(f"⚠️ Booking {booking_id} has no owner, cannot schedule {trigger_value}")
                result.error = errors.OWNER_NOT_FOUND
                return result
            if not owner.phone:
                logger.warning(f"⚠️ Owner {owner.id} has no phone number, cannot schedule {trigger_value}")
                result.error = errors.MISSING_RECIPIENT
                return result

            templates = self.templates.get_active_templates_for_trigger(self.db, tenant_id, trigger_value)
            if not templates:
                logger.info(f"📭 No active {trigger_value} templates for tenant {tenant_id}")
                return result

            variables = build_variable_snapshot(booking).model_dump()
            recipient = normalize_phone(owner.phone)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to load scheduling data for booking {booking_id}: {e}")
            result.error = errors.SCHEDULING_ERROR
            return result

        for template in templates:
            plan = plan_delivery(trigger_value, template.delay_hours, booking, now)
            if plan is None:
                logger.info(f"⏭️ Skipping template '{template.name}' for booking {booking_id}: send time has passed")
                result.skipped += 1
                continue

            scheduled_for, presend_sent_at = plan
            try:
                notification = self.notifications.create_notification(
                    self.db,
                    tenant_id=tenant_id,
                    template_id=template.id,
                    booking_id=booking.id,
                    scheduled_for=scheduled_for,
                    variables=variables,
                    recipient=recipient,
                    sent=presend_sent_at is not None,
                    sent_at=presend_sent_at,
                    attempts=0,
                )
                result.created.append(notification.id)
                logger.info(
                    f"📅 Scheduled '{template.name}' for booking {booking_id} at {scheduled_for.isoformat()}"
                    + (" (already past, marked sent)" if presend_sent_at else "")
                )
            except Exception as e:
                self.db.rollback()
                result.failed += 1
                logger.error(f"❌ Failed to schedule template '{template.name}' for booking {booking_id}: {e}")

        return result

    def schedule_booking_notifications(
        self, booking_id: int, tenant_id: str, now: Optional[datetime] = None
    ) -> ScheduleAllResult:
        """Schedule confirmation, check-in and check-out messages for a booking"""
        now = now or utcnow()
        results = [self.schedule_for_trigger(booking_id, trigger, tenant_id, now) for trigger in BOOKING_TRIGGERS]
        summary = ScheduleAllResult(bookingId=booking_id, results=results)
        logger.info(f"✅ Scheduled {summary.created_count} notifications for booking {booking_id}")
        return summary
