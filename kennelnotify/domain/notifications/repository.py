"""Notification repository - Database operations for templates and scheduled notifications"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Dog
from ...models_notifications import NotificationTemplate, ScheduledNotification


class TemplateRepository:
    """Repository for notification template database operations"""

    @staticmethod
    def get_templates(
        db: Session, tenant_id: str, trigger: Optional[str] = None, active_only: bool = False
    ) -> list[NotificationTemplate]:
        """Get a tenant's templates in store order"""
        query = db.query(NotificationTemplate).filter(NotificationTemplate.tenant_id == tenant_id)
        if trigger:
            query = query.filter(NotificationTemplate.trigger == trigger)
        if active_only:
            query = query.filter(NotificationTemplate.active.is_(True))
        return query.order_by(NotificationTemplate.created_at.asc(), NotificationTemplate.name.asc()).all()

    @staticmethod
    def get_active_templates_for_trigger(db: Session, tenant_id: str, trigger: str) -> list[NotificationTemplate]:
        return TemplateRepository.get_templates(db, tenant_id, trigger=trigger, active_only=True)

    @staticmethod
    def get_template_by_id(db: Session, template_id: str, tenant_id: str) -> Optional[NotificationTemplate]:
        return (
            db.query(NotificationTemplate)
            .filter(NotificationTemplate.id == template_id, NotificationTemplate.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_template_by_name(
        db: Session, tenant_id: str, name: str, active_only: bool = False
    ) -> Optional[NotificationTemplate]:
        query = db.query(NotificationTemplate).filter(
            NotificationTemplate.tenant_id == tenant_id, NotificationTemplate.name == name
        )
        if active_only:
            query = query.filter(NotificationTemplate.active.is_(True))
        return query.first()

    @staticmethod
    def count_active_templates(db: Session, tenant_id: str) -> int:
        return (
            db.query(NotificationTemplate)
            .filter(NotificationTemplate.tenant_id == tenant_id, NotificationTemplate.active.is_(True))
            .count()
        )

    @staticmethod
    def create_template(db: Session, tenant_id: str, **template_data) -> NotificationTemplate:
        template = NotificationTemplate(tenant_id=tenant_id, **template_data)
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def update_template(db: Session, template: NotificationTemplate, **updates) -> NotificationTemplate:
        for key, value in updates.items():
            setattr(template, key, value)
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def delete_template(db: Session, template: NotificationTemplate) -> None:
        """Delete a template together with every notification scheduled from it"""
        db.delete(template)
        db.commit()


class NotificationRepository:
    """Repository for scheduled notification database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: int, tenant_id: str) -> Optional[Booking]:
        """Load a booking with its dog, owner and room"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.dog).joinedload(Dog.owner), joinedload(Booking.room))
            .filter(Booking.id == booking_id, Booking.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_notification(db: Session, notification_id: str, tenant_id: str) -> Optional[ScheduledNotification]:
        return (
            db.query(ScheduledNotification)
            .filter(ScheduledNotification.id == notification_id, ScheduledNotification.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_booking_notifications(db: Session, booking_id: int, tenant_id: str) -> list[ScheduledNotification]:
        """Notification history for a booking, newest due time first"""
        return (
            db.query(ScheduledNotification)
            .options(joinedload(ScheduledNotification.template))
            .filter(ScheduledNotification.booking_id == booking_id, ScheduledNotification.tenant_id == tenant_id)
            .order_by(ScheduledNotification.scheduled_for.desc())
            .all()
        )

    @staticmethod
    def get_due_notifications(
        db: Session,
        now: datetime,
        limit: int,
        max_attempts: int,
        exclude_ids: Optional[Iterable[str]] = None,
        exclude_tenant_ids: Optional[Iterable[str]] = None,
    ) -> list[ScheduledNotification]:
        """Unsent notifications that are due and still have attempts left, oldest first"""
        query = db.query(ScheduledNotification).filter(
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.scheduled_for <= now,
            ScheduledNotification.attempts < max_attempts,
        )
        if exclude_ids:
            query = query.filter(ScheduledNotification.id.notin_(list(exclude_ids)))
        if exclude_tenant_ids:
            query = query.filter(ScheduledNotification.tenant_id.notin_(list(exclude_tenant_ids)))
        return query.order_by(ScheduledNotification.scheduled_for.asc()).limit(limit).all()

    @staticmethod
    def create_notification(db: Session, **notification_data) -> ScheduledNotification:
        notification = ScheduledNotification(**notification_data)
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def claim_notification(
        db: Session, notification_id: str, now: datetime, max_attempts: Optional[int] = None
    ) -> bool:
        """
        Atomically take ownership of one delivery attempt.

        Increments attempts in a single conditional UPDATE; only the caller
        whose statement matched the row may send it. ``max_attempts=None``
        lifts the cap (manual sends).
        """
        query = db.query(ScheduledNotification).filter(
            ScheduledNotification.id == notification_id,
            ScheduledNotification.sent.is_(False),
        )
        if max_attempts is not None:
            query = query.filter(ScheduledNotification.attempts < max_attempts)

        updated = query.update(
            {
                ScheduledNotification.attempts: ScheduledNotification.attempts + 1,
                ScheduledNotification.last_attempt_at: now,
            },
            synchronize_session=False,
        )
        db.commit()
        return updated == 1
