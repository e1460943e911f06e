import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DB_SLOW_QUERY_THRESHOLD"] = "0"
os.environ["NOTIFICATION_SEND_DELAY_SECONDS"] = "0"
for _var in ("CRON_API_KEY", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
    os.environ[_var] = ""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kennelnotify import models_notifications  # noqa: F401
from kennelnotify.database import Base
from kennelnotify.models import Booking, BookingStatus, Dog, Owner, Room, Setting, Tenant
from kennelnotify.models_notifications import NotificationTemplate, ScheduledNotification, TriggerType
from kennelnotify.services.whatsapp_service import SendResult

# Fixed clock for tests: 1 July 2025 09:00 UTC (12:00 in Jerusalem)
NOW = datetime(2025, 7, 1, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def add_setting(db, tenant_id, key, value):
    db.add(Setting(tenant_id=tenant_id, key=key, value=value))
    db.commit()


@pytest.fixture
def tenant(db):
    """A tenant on the pro plan, so messaging is on regardless of the clock"""
    tenant = Tenant(id="tenant-1", name="Happy Paws", created_at=NOW - timedelta(days=400))
    db.add(tenant)
    db.commit()
    add_setting(db, tenant.id, "plan", "pro")
    return tenant


@pytest.fixture
def other_tenant(db):
    tenant = Tenant(id="tenant-2", name="Bark Inn", created_at=NOW - timedelta(days=400))
    db.add(tenant)
    db.commit()
    add_setting(db, tenant.id, "plan", "pro")
    return tenant


@pytest.fixture
def owner(db, tenant):
    owner = Owner(tenant_id=tenant.id, name="Dana Levi", phone="050-123-4567")
    db.add(owner)
    db.commit()
    return owner


@pytest.fixture
def dog(db, tenant, owner):
    dog = Dog(tenant_id=tenant.id, owner_id=owner.id, name="Rexy", breed="Beagle")
    db.add(dog)
    db.commit()
    return dog


@pytest.fixture
def room(db, tenant):
    room = Room(tenant_id=tenant.id, name="Garden Suite")
    db.add(room)
    db.commit()
    return room


@pytest.fixture
def make_booking(db, tenant, dog, room):
    def _make(start=None, end=None, status=BookingStatus.CONFIRMED.value):
        booking = Booking(
            tenant_id=tenant.id,
            dog_id=dog.id,
            room_id=room.id,
            start_date=start or NOW + timedelta(days=3, hours=-1),
            end_date=end or NOW + timedelta(days=6),
            status=status,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def booking(make_booking):
    # Starts 4 July 2025 08:00 UTC, ends 7 July 2025 09:00 UTC
    return make_booking()


@pytest.fixture
def make_template(db, tenant):
    def _make(name, trigger, body="Hi {firstName}, {petName} is booked", delay_hours=0, active=True, tenant_id=None):
        template = NotificationTemplate(
            tenant_id=tenant_id or tenant.id,
            name=name,
            trigger=trigger.value if isinstance(trigger, TriggerType) else trigger,
            body=body,
            delay_hours=delay_hours,
            active=active,
        )
        db.add(template)
        db.commit()
        return template

    return _make


@pytest.fixture
def booking_templates(make_template):
    return {
        "confirmation": make_template("Confirmation", TriggerType.BOOKING_CONFIRMATION),
        "check_in": make_template("Check-in 24h", TriggerType.CHECK_IN_REMINDER, delay_hours=24),
        "check_out": make_template("Check-out 24h", TriggerType.CHECK_OUT_REMINDER, delay_hours=24),
    }


@pytest.fixture
def make_notification(db, tenant):
    def _make(booking, template, scheduled_for=None, **fields):
        notification = ScheduledNotification(
            tenant_id=tenant.id,
            template_id=template.id,
            booking_id=booking.id,
            scheduled_for=scheduled_for or NOW - timedelta(minutes=5),
            variables={"firstName": "Dana", "petName": "Rexy"},
            recipient="+972501234567",
            **fields,
        )
        db.add(notification)
        db.commit()
        return notification

    return _make


class FakeChannel:
    """Stands in for WhatsAppService and records every send"""

    def __init__(self, results=None, ready_error=None, raises=None):
        self.results = list(results or [])
        self.ready_error = ready_error
        self.raises = raises
        self.calls = []

    def check_ready(self, tenant_id):
        return self.ready_error

    async def send(self, recipient, template_name, variables, tenant_id):
        self.calls.append(
            {"recipient": recipient, "template_name": template_name, "variables": variables, "tenant_id": tenant_id}
        )
        if self.raises:
            raise self.raises
        if self.results:
            return self.results.pop(0)
        return SendResult(success=True, message_id=f"SM{len(self.calls)}")


@pytest.fixture
def channel():
    return FakeChannel()
