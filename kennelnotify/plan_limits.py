"""
Plan tiers and feature gating for tenants.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import tenant_settings
from .config import DEFAULT_PLAN, TRIAL_PERIOD_DAYS
from .models import Tenant
from .shared.dates import utcnow

logger = logging.getLogger(__name__)

# Feature availability per tier; trial unlocks everything
PLAN_FEATURES = {
    "trial": {"whatsapp": True, "customDomain": True, "reportsAdvanced": True, "api": True},
    "pro": {"whatsapp": True, "customDomain": True, "reportsAdvanced": True, "api": True},
    "standard": {"whatsapp": False, "customDomain": False, "reportsAdvanced": False, "api": False},
}

# Active template cap per tier (None means unlimited)
PLAN_TEMPLATE_LIMITS = {"trial": None, "pro": None, "standard": 5}


def get_effective_plan(db: Session, tenant_id: str, now: Optional[datetime] = None) -> str:
    """
    Resolve the tier a tenant is on right now.

    Tenants are on trial for TRIAL_PERIOD_DAYS after creation; afterwards the
    "plan" setting decides, defaulting to DEFAULT_PLAN.
    """
    now = now or utcnow()
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()

    created_at = tenant.created_at if tenant and tenant.created_at else now
    if now < created_at + timedelta(days=TRIAL_PERIOD_DAYS):
        return "trial"

    selected = (tenant_settings.get_setting(db, tenant_id, tenant_settings.PLAN) or DEFAULT_PLAN).lower()
    if selected not in PLAN_FEATURES:
        logger.warning(f"⚠️ Unknown plan '{selected}' for tenant {tenant_id}, using {DEFAULT_PLAN}")
        return DEFAULT_PLAN
    return selected


def is_feature_enabled(db: Session, tenant_id: str, feature: str, now: Optional[datetime] = None) -> bool:
    plan = get_effective_plan(db, tenant_id, now)
    return PLAN_FEATURES.get(plan, {}).get(feature, False)


def is_messaging_enabled(db: Session, tenant_id: str, now: Optional[datetime] = None) -> bool:
    """
    The single messaging flag consulted by both the scheduler and the channel.

    The tenant can switch WhatsApp off with whatsappEnabled="false" (an unset
    value means on); the plan must also include the whatsapp feature.
    """
    toggle = tenant_settings.get_setting(db, tenant_id, tenant_settings.WHATSAPP_ENABLED)
    if toggle is not None and toggle.strip().lower() == "false":
        return False
    return is_feature_enabled(db, tenant_id, "whatsapp", now)


def can_activate_template(db: Session, tenant_id: str, active_count: int) -> tuple[bool, Optional[str]]:
    """Check whether one more active template fits the tenant's plan"""
    plan = get_effective_plan(db, tenant_id)
    limit = PLAN_TEMPLATE_LIMITS.get(plan)
    if limit is None:
        return True, None
    if active_count >= limit:
        return (
            False,
            f"Active template limit reached for {plan.title()} plan ({limit}). Upgrade to Pro to add more.",
        )
    return True, None
