import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from . import config
from .database import get_db
from .models import Tenant

logger = logging.getLogger(__name__)


def get_tenant_id(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the tenant a request acts for; every query is scoped to it"""
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="Missing X-Tenant-ID header")

    tenant = db.query(Tenant).filter(Tenant.id == x_tenant_id).first()
    if not tenant:
        logger.warning(f"⚠️ Unknown tenant {x_tenant_id}")
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant.id


def verify_cron_key(authorization: Optional[str] = Header(None)) -> None:
    """
    Guard for the external cron trigger.

    Accepts ``Authorization: Bearer <CRON_API_KEY>``; when no key is configured
    the endpoint is open.
    """
    expected = config.CRON_API_KEY
    if not expected:
        return

    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):]

    if not secrets.compare_digest(token.encode(), expected.encode()):
        logger.warning("⚠️ Rejected cron request with invalid API key")
        raise HTTPException(status_code=401, detail="Unauthorized")
