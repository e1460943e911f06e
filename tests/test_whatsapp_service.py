import base64
from urllib.parse import parse_qs

import httpx
import pytest
from conftest import add_setting

from kennelnotify import config
from kennelnotify.models_notifications import TriggerType
from kennelnotify.services.whatsapp_service import WhatsAppService, decrypt_credential, encrypt_credential
from kennelnotify.shared import errors

VARIABLES = {"firstName": "Dana", "petName": "Rexy"}


class Recorder:
    """httpx.MockTransport handler that keeps every request"""

    def __init__(self, status_code=201, payload=None, raises=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {"sid": "SM123"}
        self.raises = raises
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raises:
            raise self.raises
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def form(self):
        return {k: v[0] for k, v in parse_qs(self.requests[-1].content.decode()).items()}


@pytest.fixture
def credentials(db, tenant):
    add_setting(db, tenant.id, "TWILIO_ACCOUNT_SID", "AC-tenant")
    add_setting(db, tenant.id, "TWILIO_AUTH_TOKEN", encrypt_credential("tenant-token"))
    add_setting(db, tenant.id, "TWILIO_PHONE_NUMBER", "+14155238886")


def make_service(db, recorder):
    return WhatsAppService(db, transport=httpx.MockTransport(recorder), base_url="https://twilio.test/2010-04-01")


def test_credentials_round_trip_through_encryption():
    token = encrypt_credential("secret-token")
    assert token != "secret-token"
    assert decrypt_credential(token) == "secret-token"


@pytest.mark.asyncio
async def test_send_renders_template_and_posts_to_twilio(db, tenant, credentials, make_template):
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION, body="Hi {firstName}, {{petName}} is booked!")
    recorder = Recorder()

    result = await make_service(db, recorder).send("050-123-4567", "Welcome", VARIABLES, tenant.id)

    assert result.success is True
    assert result.message_id == "SM123"
    request = recorder.requests[0]
    assert str(request.url) == "https://twilio.test/2010-04-01/Accounts/AC-tenant/Messages.json"
    expected_auth = base64.b64encode(b"AC-tenant:tenant-token").decode()
    assert request.headers["authorization"] == f"Basic {expected_auth}"
    assert recorder.form == {
        "From": "whatsapp:+14155238886",
        "To": "whatsapp:+972501234567",
        "Body": "Hi Dana, Rexy is booked!",
    }


@pytest.mark.asyncio
async def test_api_error_is_reported(db, tenant, credentials, make_template):
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)
    recorder = Recorder(status_code=400, payload={"code": 21211, "message": "Invalid 'To' Phone Number"})

    result = await make_service(db, recorder).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.success is False
    assert result.error == "Invalid 'To' Phone Number"


@pytest.mark.asyncio
async def test_transport_error_is_reported(db, tenant, credentials, make_template):
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)
    recorder = Recorder(raises=httpx.ConnectError("connection refused"))

    result = await make_service(db, recorder).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.success is False
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_disabled_messaging_short_circuits(db, tenant, credentials, make_template):
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)
    add_setting(db, tenant.id, "whatsappEnabled", "false")
    recorder = Recorder()

    result = await make_service(db, recorder).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.success is False
    assert result.error == errors.FEATURE_DISABLED
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_missing_credentials(db, tenant, make_template, monkeypatch):
    monkeypatch.setattr(config, "TWILIO_ACCOUNT_SID", None)
    monkeypatch.setattr(config, "TWILIO_AUTH_TOKEN", None)
    monkeypatch.setattr(config, "TWILIO_PHONE_NUMBER", None)
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)
    recorder = Recorder()

    result = await make_service(db, recorder).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.error == errors.MISSING_CREDENTIALS
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_environment_credentials_are_the_fallback(db, tenant, make_template, monkeypatch):
    monkeypatch.setattr(config, "TWILIO_ACCOUNT_SID", "AC-env")
    monkeypatch.setattr(config, "TWILIO_AUTH_TOKEN", "env-token")
    monkeypatch.setattr(config, "TWILIO_PHONE_NUMBER", "whatsapp:+14155238886")
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)
    recorder = Recorder()

    result = await make_service(db, recorder).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.success is True
    assert "/Accounts/AC-env/" in str(recorder.requests[0].url)
    assert recorder.form["From"] == "whatsapp:+14155238886"


@pytest.mark.asyncio
async def test_undecryptable_token_counts_as_missing(db, tenant, make_template):
    add_setting(db, tenant.id, "TWILIO_ACCOUNT_SID", "AC-tenant")
    add_setting(db, tenant.id, "TWILIO_AUTH_TOKEN", "not-encrypted")
    add_setting(db, tenant.id, "TWILIO_PHONE_NUMBER", "+14155238886")
    make_template("Welcome", TriggerType.BOOKING_CONFIRMATION)

    result = await make_service(db, Recorder()).send("+972501234567", "Welcome", VARIABLES, tenant.id)

    assert result.error == errors.MISSING_CREDENTIALS


@pytest.mark.asyncio
async def test_unknown_or_inactive_template(db, tenant, credentials, make_template):
    make_template("Dormant", TriggerType.BOOKING_CONFIRMATION, active=False)
    recorder = Recorder()
    service = make_service(db, recorder)

    missing = await service.send("+972501234567", "Nope", VARIABLES, tenant.id)
    dormant = await service.send("+972501234567", "Dormant", VARIABLES, tenant.id)

    assert missing.error == errors.TEMPLATE_NOT_FOUND
    assert dormant.error == errors.TEMPLATE_NOT_FOUND
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_trigger_name_selects_first_active_template(db, tenant, credentials, make_template):
    make_template("Check-out", TriggerType.CHECK_OUT_REMINDER, body="Bye {petName}")
    recorder = Recorder()

    result = await make_service(db, recorder).send("+972501234567", "CHECK_OUT_REMINDER", VARIABLES, tenant.id)

    assert result.success is True
    assert recorder.form["Body"] == "Bye Rexy"


def test_check_ready(db, tenant, credentials):
    service = WhatsAppService(db)
    assert service.check_ready(tenant.id) is None

    add_setting(db, tenant.id, "whatsappEnabled", "false")
    assert service.check_ready(tenant.id) == errors.FEATURE_DISABLED
