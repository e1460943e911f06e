"""Notification domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...models_notifications import TriggerType
from ...shared.validators import validate_template_body

# ============================================================================
# TEMPLATES
# ============================================================================


class TemplateCreate(BaseModel):
    """Schema for creating a notification template"""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    trigger: TriggerType
    subject: Optional[str] = None
    body: str
    delayHours: int = Field(0, ge=0)
    active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Template name cannot be empty")
        return v

    @field_validator("body")
    @classmethod
    def validate_body(cls, v):
        return validate_template_body(v)


class TemplateUpdate(BaseModel):
    """Schema for updating a notification template"""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    trigger: Optional[TriggerType] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    delayHours: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None

    @field_validator("body")
    @classmethod
    def validate_body(cls, v):
        if v is None:
            return v
        return validate_template_body(v)


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    trigger: str
    subject: Optional[str] = None
    body: str
    delayHours: int
    active: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class PreviewRequest(BaseModel):
    body: str
    variables: Optional[dict[str, Any]] = None


class PreviewResponse(BaseModel):
    rendered: str


# ============================================================================
# SCHEDULED NOTIFICATIONS
# ============================================================================


class VariableSnapshot(BaseModel):
    """Values frozen into a notification when it is scheduled"""

    firstName: str = ""
    fullName: str = ""
    petName: str = ""
    checkInDate: str = ""
    checkOutDate: str = ""
    checkInTime: str = ""
    roomName: str = ""
    bookingId: str = ""


class ScheduledNotificationResponse(BaseModel):
    id: str
    bookingId: int
    templateId: str
    templateName: Optional[str] = None
    trigger: Optional[str] = None
    recipient: str
    scheduledFor: datetime
    state: str
    sent: bool
    sentAt: Optional[datetime] = None
    attempts: int
    lastAttemptAt: Optional[datetime] = None
    lastError: Optional[str] = None
    failedAt: Optional[datetime] = None
    variables: dict[str, Any] = {}


class ScheduleResult(BaseModel):
    """Outcome of scheduling one trigger for one booking"""

    bookingId: int
    trigger: str
    created: list[str] = []
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None


class ScheduleAllResult(BaseModel):
    bookingId: int
    results: list[ScheduleResult]

    @property
    def created_count(self) -> int:
        return sum(len(r.created) for r in self.results)


class DeliveryOutcome(BaseModel):
    """Outcome of one delivery attempt for one notification"""

    id: str
    status: str  # sent | failed | cancelled | skipped | error
    messageId: Optional[str] = None
    error: Optional[str] = None


class DeliveryPassResult(BaseModel):
    processed: int
    results: list[DeliveryOutcome] = []
