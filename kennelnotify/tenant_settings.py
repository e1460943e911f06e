"""Per-tenant key/value settings"""

from typing import Optional

from sqlalchemy.orm import Session

from .models import Setting

# Well-known keys
WHATSAPP_ENABLED = "whatsappEnabled"
PLAN = "plan"
TWILIO_ACCOUNT_SID = "TWILIO_ACCOUNT_SID"
TWILIO_AUTH_TOKEN = "TWILIO_AUTH_TOKEN"
TWILIO_PHONE_NUMBER = "TWILIO_PHONE_NUMBER"


def get_setting(db: Session, tenant_id: str, key: str) -> Optional[str]:
    row = db.query(Setting).filter(Setting.tenant_id == tenant_id, Setting.key == key).first()
    return row.value if row else None


def get_settings(db: Session, tenant_id: str, keys: list[str]) -> dict[str, Optional[str]]:
    """Fetch several settings in one query; missing keys map to None"""
    rows = db.query(Setting).filter(Setting.tenant_id == tenant_id, Setting.key.in_(keys)).all()
    found = {row.key: row.value for row in rows}
    return {key: found.get(key) for key in keys}


def set_setting(db: Session, tenant_id: str, key: str, value: Optional[str]) -> Setting:
    row = db.query(Setting).filter(Setting.tenant_id == tenant_id, Setting.key == key).first()
    if row:
        row.value = value
    else:
        row = Setting(tenant_id=tenant_id, key=key, value=value)
        db.add(row)
    db.commit()
    db.refresh(row)
    return row
