"""
Notification Delivery
Moves due ScheduledNotification rows through pending -> sent / cancelled /
failed, one record at a time.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..domain.notifications.repository import NotificationRepository
from ..domain.notifications.schemas import DeliveryOutcome, DeliveryPassResult
from ..models_notifications import CANCELLED_ERROR, ScheduledNotification
from ..shared import errors
from ..shared.dates import utcnow
from .whatsapp_service import SendResult, WhatsAppService

logger = logging.getLogger(__name__)

ALREADY_SENT = "already_sent"
CLAIMED_ELSEWHERE = "claimed_elsewhere"


class Channel(Protocol):
    def check_ready(self, tenant_id: str) -> Optional[str]: ...

    async def send(
        self, recipient: str, template_name: str, variables: Optional[Mapping[str, Any]], tenant_id: str
    ) -> SendResult: ...


def _mark_cancelled(db: Session, notification: ScheduledNotification, now: datetime) -> None:
    notification.sent = True
    notification.sent_at = now
    notification.last_attempt_at = now
    notification.last_error = CANCELLED_ERROR
    db.commit()


async def deliver_notification(
    db: Session,
    notification: ScheduledNotification,
    channel: Channel,
    now: datetime,
    max_attempts: Optional[int] = None,
) -> DeliveryOutcome:
    """
    Run one notification through a single delivery attempt.

    Shared by the periodic pass and manual sends. ``max_attempts`` caps the
    claim; None lets a manual send retry a record that already failed.
    """
    notification_id = notification.id
    tenant_id = notification.tenant_id

    if notification.sent:
        return DeliveryOutcome(id=notification_id, status="skipped", error=ALREADY_SENT)

    booking = notification.booking
    if booking is None or booking.is_cancelled:
        _mark_cancelled(db, notification, now)
        logger.info(f"🚫 Booking cancelled, notification {notification_id} closed without sending")
        return DeliveryOutcome(id=notification_id, status="cancelled")

    # Configuration problems leave the record untouched so it is retried once fixed
    config_error = channel.check_ready(tenant_id)
    if config_error:
        logger.warning(f"⚠️ Tenant {tenant_id} not ready to send ({config_error}), leaving {notification_id} pending")
        return DeliveryOutcome(id=notification_id, status="skipped", error=config_error)

    if not NotificationRepository.claim_notification(db, notification_id, now, max_attempts):
        logger.info(f"⏭️ Notification {notification_id} already claimed by another worker")
        return DeliveryOutcome(id=notification_id, status="skipped", error=CLAIMED_ELSEWHERE)
    db.refresh(notification)

    template_name = notification.template.name if notification.template else ""
    try:
        result = await channel.send(notification.recipient, template_name, notification.variables, tenant_id)
    except Exception as e:
        logger.exception(f"❌ Channel raised while sending notification {notification_id}")
        result = SendResult(success=False, error=str(e) or errors.TRANSPORT_ERROR)

    if result.success:
        notification.sent = True
        notification.sent_at = now
        db.commit()
        logger.info(f"✅ Notification {notification_id} sent (message {result.message_id})")
        return DeliveryOutcome(id=notification_id, status="sent", messageId=result.message_id)

    notification.last_error = result.error
    if notification.attempts >= config.NOTIFICATION_MAX_ATTEMPTS:
        notification.failed_at = now
        logger.error(
            f"❌ Notification {notification_id} failed permanently after {notification.attempts} attempts: {result.error}"
        )
    else:
        logger.warning(
            f"⚠️ Notification {notification_id} attempt {notification.attempts} failed: {result.error}"
        )
    db.commit()
    return DeliveryOutcome(id=notification_id, status="failed", error=result.error)


async def run_delivery_pass(
    db: Session,
    channel: Optional[Channel] = None,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    delay_seconds: Optional[float] = None,
) -> DeliveryPassResult:
    """
    Deliver up to ``batch_size`` due notifications, oldest first.

    Records are handled strictly one after another with a fixed pause in
    between. A failure on one record is recorded on that record only; nothing
    propagates out of the pass.
    A tenant whose channel is not ready is reported once and then passed over,
    so its backlog never takes batch slots from other tenants.
    """
    now = now or utcnow()
    channel = channel or WhatsAppService(db)
    batch_size = batch_size or config.NOTIFICATION_BATCH_SIZE
    delay_seconds = config.NOTIFICATION_SEND_DELAY_SECONDS if delay_seconds is None else delay_seconds

    results = []
    attempted = 0
    seen_ids: set[str] = set()
    blocked_tenants: set[str] = set()

    # Tenants that cannot send are excluded from later fetches so their
    # backlog never fills the batch ahead of other tenants
    while attempted < batch_size:
        try:
            due = NotificationRepository.get_due_notifications(
                db,
                now,
                batch_size - attempted,
                config.NOTIFICATION_MAX_ATTEMPTS,
                exclude_ids=seen_ids,
                exclude_tenant_ids=blocked_tenants,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to load due notifications: {e}")
            break

        if not due:
            break

        logger.info(f"📨 Processing {len(due)} due notifications")

        for notification in due:
            notification_id = notification.id
            tenant_id = notification.tenant_id
            seen_ids.add(notification_id)
            if tenant_id in blocked_tenants:
                continue

            if attempted and delay_seconds:
                await asyncio.sleep(delay_seconds)

            try:
                outcome = await deliver_notification(
                    db, notification, channel, now, max_attempts=config.NOTIFICATION_MAX_ATTEMPTS
                )
            except Exception as e:
                db.rollback()
                logger.error(f"❌ Error processing notification {notification_id}: {e}")
                outcome = DeliveryOutcome(id=notification_id, status="error", error=str(e))
            results.append(outcome)

            if outcome.status == "skipped" and outcome.error in errors.CONFIGURATION_ERRORS:
                blocked_tenants.add(tenant_id)
            else:
                attempted += 1

    if not results:
        logger.info("✅ No due notifications")
        return DeliveryPassResult(processed=0)
    summary = DeliveryPassResult(processed=len(results), results=results)
    sent = sum(1 for r in results if r.status == "sent")
    logger.info(f"📊 Delivery pass complete: {sent}/{summary.processed} sent")
    return summary


async def send_now(
    db: Session,
    notification_id: str,
    tenant_id: str,
    channel: Optional[Channel] = None,
    now: Optional[datetime] = None,
) -> DeliveryOutcome:
    """Deliver one notification immediately, regardless of its due time"""
    now = now or utcnow()
    channel = channel or WhatsAppService(db)

    notification = NotificationRepository.get_notification(db, notification_id, tenant_id)
    if not notification:
        return DeliveryOutcome(id=notification_id, status="error", error=errors.NOTIFICATION_NOT_FOUND)

    logger.info(f"📤 Manual send requested for notification {notification_id}")
    try:
        return await deliver_notification(db, notification, channel, now, max_attempts=None)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error sending notification {notification_id}: {e}")
        return DeliveryOutcome(id=notification_id, status="error", error=str(e))
