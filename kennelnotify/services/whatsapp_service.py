"""
WhatsApp Channel Service
Sends rendered notification templates through the Twilio WhatsApp API
"""

import base64
import hashlib
import logging
import re
from typing import Any, Mapping, Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import config, tenant_settings
from ..domain.notifications.repository import TemplateRepository
from ..models_notifications import NotificationTemplate, TriggerType
from ..plan_limits import is_messaging_enabled
from ..shared import errors
from ..shared.validators import normalize_phone
from .template_renderer import render_template

logger = logging.getLogger(__name__)

# Encryption for tenant credentials stored in settings
cipher_suite = Fernet(base64.urlsafe_b64encode(hashlib.sha256(config.SECRET_KEY.encode()).digest()))

WHATSAPP_PREFIX = "whatsapp:"


def encrypt_credential(credential: str) -> str:
    """Encrypt a credential before storing it"""
    return cipher_suite.encrypt(credential.encode()).decode()


def decrypt_credential(encrypted_credential: str) -> str:
    """Decrypt a stored credential"""
    return cipher_suite.decrypt(encrypted_credential.encode()).decode()


class SendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ChannelCredentials(BaseModel):
    account_sid: str
    auth_token: str
    from_number: str


def whatsapp_address(phone: str) -> str:
    """Numbers already in international form are kept; local ones are normalized"""
    phone = phone.strip()
    if phone.startswith(WHATSAPP_PREFIX):
        phone = phone[len(WHATSAPP_PREFIX):].strip()
    if phone.startswith("+"):
        digits = re.sub(r"\D", "", phone)
        return f"{WHATSAPP_PREFIX}+{digits}"
    return f"{WHATSAPP_PREFIX}{normalize_phone(phone)}"


class WhatsAppService:
    """
    Channel adapter for WhatsApp messages.

    ``send`` never raises; every outcome is reported through SendResult so the
    delivery worker can persist it. Pass ``transport`` to route HTTP calls
    somewhere other than the network.
    """

    def __init__(
        self,
        db: Session,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.transport = transport
        self.base_url = (base_url or config.TWILIO_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.TWILIO_TIMEOUT_SECONDS
        self.templates = TemplateRepository()

    def get_credentials(self, tenant_id: str) -> Optional[ChannelCredentials]:
        """Tenant settings first, environment defaults second"""
        values = tenant_settings.get_settings(
            self.db,
            tenant_id,
            [
                tenant_settings.TWILIO_ACCOUNT_SID,
                tenant_settings.TWILIO_AUTH_TOKEN,
                tenant_settings.TWILIO_PHONE_NUMBER,
            ],
        )

        auth_token = config.TWILIO_AUTH_TOKEN
        stored_token = values[tenant_settings.TWILIO_AUTH_TOKEN]
        if stored_token:
            try:
                auth_token = decrypt_credential(stored_token)
            except InvalidToken:
                logger.error(f"❌ Failed to decrypt Twilio auth token for tenant {tenant_id}")
                return None

        account_sid = values[tenant_settings.TWILIO_ACCOUNT_SID] or config.TWILIO_ACCOUNT_SID
        from_number = values[tenant_settings.TWILIO_PHONE_NUMBER] or config.TWILIO_PHONE_NUMBER

        if not (account_sid and auth_token and from_number):
            return None
        return ChannelCredentials(account_sid=account_sid, auth_token=auth_token, from_number=from_number)

    def check_ready(self, tenant_id: str) -> Optional[str]:
        """Return a configuration error code, or None when the tenant can send"""
        if not is_messaging_enabled(self.db, tenant_id):
            return errors.FEATURE_DISABLED
        if not self.get_credentials(tenant_id):
            return errors.MISSING_CREDENTIALS
        return None

    def find_template(self, tenant_id: str, template_name: str) -> Optional[NotificationTemplate]:
        """Active template by name; a trigger name picks that trigger's first active template"""
        template = self.templates.get_template_by_name(self.db, tenant_id, template_name, active_only=True)
        if template:
            return template

        if template_name in {trigger.value for trigger in TriggerType}:
            candidates = self.templates.get_active_templates_for_trigger(self.db, tenant_id, template_name)
            if candidates:
                return candidates[0]
        return None

    async def send(
        self,
        recipient: str,
        template_name: str,
        variables: Optional[Mapping[str, Any]],
        tenant_id: str,
    ) -> SendResult:
        """
        Render ``template_name`` with ``variables`` and send it to ``recipient``.

        Checks run in order: messaging flag, credentials, template. Only when
        all pass is the transport called.
        """
        if not is_messaging_enabled(self.db, tenant_id):
            logger.debug(f"WhatsApp disabled for tenant {tenant_id}")
            return SendResult(success=False, error=errors.FEATURE_DISABLED)

        credentials = self.get_credentials(tenant_id)
        if not credentials:
            logger.warning(f"⚠️ Missing Twilio credentials for tenant {tenant_id}")
            return SendResult(success=False, error=errors.MISSING_CREDENTIALS)

        template = self.find_template(tenant_id, template_name)
        if not template:
            logger.warning(f"⚠️ Template '{template_name}' not found for tenant {tenant_id}")
            return SendResult(success=False, error=errors.TEMPLATE_NOT_FOUND)

        body = render_template(template.body, variables)
        return await self.send_text(credentials, recipient, body)

    async def send_text(self, credentials: ChannelCredentials, recipient: str, body: str) -> SendResult:
        """POST one message to the Twilio Messages API"""
        data = {
            "From": whatsapp_address(credentials.from_number),
            "To": whatsapp_address(recipient),
            "Body": body,
        }

        try:
            logger.info(f"🚀 Sending WhatsApp message to {data['To']}")
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/Accounts/{credentials.account_sid}/Messages.json",
                    auth=(credentials.account_sid, credentials.auth_token),
                    data=data,
                    timeout=self.timeout,
                )

            logger.info(f"📡 Twilio API response status: {response.status_code}")

            if response.status_code in [200, 201]:
                message_sid = response.json().get("sid")
                logger.info(f"✅ WhatsApp message sent: {message_sid}")
                return SendResult(success=True, message_id=message_sid)

            try:
                error_message = response.json().get("message")
            except ValueError:
                error_message = None
            error_message = error_message or f"Twilio API error (HTTP {response.status_code})"
            logger.error(f"❌ Twilio API error: {error_message}")
            return SendResult(success=False, error=error_message)

        except httpx.HTTPError as e:
            logger.error(f"❌ HTTP error sending WhatsApp message: {str(e)}")
            return SendResult(success=False, error=str(e) or errors.TRANSPORT_ERROR)
