from datetime import timedelta

import pytest
from conftest import NOW
from fastapi.testclient import TestClient

from kennelnotify import config
from kennelnotify.database import get_db
from kennelnotify.domain.notifications.router import get_channel
from kennelnotify.main import app
from kennelnotify.models_notifications import ScheduledNotification, TriggerType
from kennelnotify.services.whatsapp_service import SendResult
from kennelnotify.shared.dates import utcnow


@pytest.fixture
def client(db, channel):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_channel] = lambda: channel
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def upcoming_booking(make_booking):
    """Booking relative to the real clock, since routes do not take a fixed now"""
    now = utcnow()
    return make_booking(start=now + timedelta(days=3), end=now + timedelta(days=6))


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-ID": tenant.id}


def template_payload(**overrides):
    payload = {
        "name": "Welcome",
        "trigger": "BOOKING_CONFIRMATION",
        "body": "Hi {firstName}, {petName} is booked",
        "delayHours": 0,
    }
    payload.update(overrides)
    return payload


# ============================================================================
# TEMPLATES
# ============================================================================


def test_tenant_header_is_required(client):
    response = client.get("/notification-templates")
    assert response.status_code == 400


def test_unknown_tenant_is_rejected(client):
    response = client.get("/notification-templates", headers={"X-Tenant-ID": "ghost"})
    assert response.status_code == 404


def test_create_and_list_templates(client, headers):
    response = client.post("/notification-templates", json=template_payload(), headers=headers)
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Welcome"
    assert created["active"] is True
    assert created["delayHours"] == 0

    response = client.get("/notification-templates", headers=headers)
    assert [t["id"] for t in response.json()] == [created["id"]]


def test_template_name_is_unique_per_tenant(client, headers, other_tenant):
    assert client.post("/notification-templates", json=template_payload(), headers=headers).status_code == 201

    duplicate = client.post("/notification-templates", json=template_payload(), headers=headers)
    assert duplicate.status_code == 409

    other = client.post("/notification-templates", json=template_payload(), headers={"X-Tenant-ID": other_tenant.id})
    assert other.status_code == 201


def test_negative_delay_is_rejected(client, headers):
    response = client.post("/notification-templates", json=template_payload(delayHours=-1), headers=headers)
    assert response.status_code == 422


def test_update_template(client, headers):
    template_id = client.post("/notification-templates", json=template_payload(), headers=headers).json()["id"]

    response = client.patch(
        f"/notification-templates/{template_id}", json={"active": False, "delayHours": 3}, headers=headers
    )

    assert response.status_code == 200
    assert response.json()["active"] is False
    assert response.json()["delayHours"] == 3


def test_templates_are_tenant_scoped(client, headers, other_tenant):
    template_id = client.post("/notification-templates", json=template_payload(), headers=headers).json()["id"]

    response = client.get(f"/notification-templates/{template_id}", headers={"X-Tenant-ID": other_tenant.id})
    assert response.status_code == 404


def test_delete_template_removes_its_notifications(client, db, headers, booking, booking_templates, make_notification):
    template = booking_templates["confirmation"]
    make_notification(booking, template)

    response = client.delete(f"/notification-templates/{template.id}", headers=headers)

    assert response.status_code == 200
    assert db.query(ScheduledNotification).count() == 0


def test_seed_default_templates(client, headers):
    response = client.post("/notification-templates/defaults", headers=headers)
    assert response.status_code == 200
    assert sorted(t["trigger"] for t in response.json()) == [
        "BOOKING_CONFIRMATION",
        "CHECK_IN_REMINDER",
        "CHECK_OUT_REMINDER",
    ]

    again = client.post("/notification-templates/defaults", headers=headers)
    assert again.json() == []


def test_preview(client):
    response = client.post(
        "/notification-templates/preview",
        json={"body": "Hi {firstName}, {mystery}", "variables": {"firstName": "Dana"}},
    )
    assert response.status_code == 200
    assert response.json() == {"rendered": "Hi Dana, [...]"}


# ============================================================================
# BOOKING NOTIFICATIONS
# ============================================================================


def test_schedule_booking_notifications(client, db, headers, upcoming_booking, booking_templates):
    response = client.post(f"/bookings/{upcoming_booking.id}/notifications", headers=headers)

    assert response.status_code == 200
    assert len(response.json()["results"]) == 3
    count = db.query(ScheduledNotification).filter(ScheduledNotification.booking_id == upcoming_booking.id).count()
    assert count == 3


def test_schedule_single_trigger(client, headers, upcoming_booking, booking_templates):
    response = client.post(f"/bookings/{upcoming_booking.id}/notifications/CHECK_OUT_REMINDER", headers=headers)

    assert response.status_code == 200
    assert response.json()["trigger"] == "CHECK_OUT_REMINDER"
    assert len(response.json()["created"]) == 1


def test_schedule_unknown_booking(client, headers, booking_templates):
    response = client.post("/bookings/9999/notifications", headers=headers)
    assert response.status_code == 404


def test_booking_notification_history(client, headers, booking, booking_templates, make_notification):
    make_notification(booking, booking_templates["confirmation"], scheduled_for=NOW - timedelta(hours=2))
    make_notification(
        booking,
        booking_templates["check_in"],
        scheduled_for=NOW,
        sent=True,
        sent_at=NOW,
        last_error="cancelled",
    )

    response = client.get(f"/bookings/{booking.id}/notifications", headers=headers)

    assert response.status_code == 200
    history = response.json()
    assert [n["state"] for n in history] == ["cancelled", "pending"]
    assert history[0]["templateName"] == "Check-in 24h"
    assert history[1]["trigger"] == TriggerType.BOOKING_CONFIRMATION.value


# ============================================================================
# SENDING
# ============================================================================


def test_send_notification_now(client, db, headers, booking, booking_templates, make_notification, channel):
    notification = make_notification(booking, booking_templates["confirmation"], scheduled_for=NOW + timedelta(days=1))

    response = client.post(f"/notifications/{notification.id}/send", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "sent"
    assert len(channel.calls) == 1
    db.refresh(notification)
    assert notification.sent is True


def test_send_unknown_notification(client, headers):
    response = client.post("/notifications/nope/send", headers=headers)
    assert response.status_code == 404


def test_send_already_sent_notification(client, headers, booking, booking_templates, make_notification):
    notification = make_notification(booking, booking_templates["confirmation"], sent=True, sent_at=NOW)

    response = client.post(f"/notifications/{notification.id}/send", headers=headers)
    assert response.status_code == 409


def test_send_failure_is_returned_in_body(client, headers, booking, booking_templates, make_notification, channel):
    channel.results = [SendResult(success=False, error="Invalid 'To' Phone Number")]
    notification = make_notification(booking, booking_templates["confirmation"])

    response = client.post(f"/notifications/{notification.id}/send", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["error"] == "Invalid 'To' Phone Number"


# ============================================================================
# CRON
# ============================================================================


def test_cron_runs_a_delivery_pass(client, booking, booking_templates, make_notification, channel, monkeypatch):
    monkeypatch.setattr(config, "NOTIFICATION_SEND_DELAY_SECONDS", 0)
    make_notification(booking, booking_templates["confirmation"], scheduled_for=NOW)

    response = client.get("/cron/notifications")

    assert response.status_code == 200
    assert response.json()["processed"] == 1
    assert response.json()["results"][0]["status"] == "sent"


def test_cron_requires_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(config, "CRON_API_KEY", "cron-secret")

    assert client.get("/cron/notifications").status_code == 401
    assert client.get("/cron/notifications", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/cron/notifications", headers={"Authorization": "Bearer cron-secret"}).status_code == 200


def test_manual_process_endpoint(client):
    response = client.post("/notifications/process")
    assert response.status_code == 200
    assert response.json() == {"processed": 0, "results": []}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
