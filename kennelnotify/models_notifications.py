"""
Notification Models
Message templates and the per-booking scheduled notification records
"""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .config import NOTIFICATION_MAX_ATTEMPTS
from .database import Base
from .models import generate_uuid


class TriggerType(str, Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    CHECK_IN_REMINDER = "CHECK_IN_REMINDER"
    CHECK_OUT_REMINDER = "CHECK_OUT_REMINDER"
    PAYMENT_REMINDER = "PAYMENT_REMINDER"
    CUSTOM = "CUSTOM"


class NotificationState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


# last_error value written when a booking was cancelled before delivery
CANCELLED_ERROR = "cancelled"


class NotificationTemplate(Base):
    """A tenant's message template for one trigger"""

    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_notification_templates_tenant_name"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    trigger = Column(String(40), nullable=False, index=True)
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    delay_hours = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="notification_templates")
    scheduled_notifications = relationship(
        "ScheduledNotification", back_populates="template", cascade="all, delete-orphan"
    )


class ScheduledNotification(Base):
    """One pending or completed delivery of a template for a booking"""

    __tablename__ = "scheduled_notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(
        String(36), ForeignKey("notification_templates.id", ondelete="CASCADE"), nullable=False
    )
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    scheduled_for = Column(DateTime, nullable=False, index=True)
    variables = Column(JSON, nullable=False, default=dict)
    recipient = Column(String(30), nullable=False)

    # Delivery state
    sent = Column(Boolean, nullable=False, default=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    template = relationship("NotificationTemplate", back_populates="scheduled_notifications")
    booking = relationship("Booking", back_populates="notifications")

    @property
    def state(self) -> NotificationState:
        if self.sent:
            if self.last_error == CANCELLED_ERROR:
                return NotificationState.CANCELLED
            return NotificationState.SENT
        if self.failed_at is not None or (self.attempts or 0) >= NOTIFICATION_MAX_ATTEMPTS:
            return NotificationState.FAILED
        return NotificationState.PENDING
