"""
Pricing service: effective net price of a plan for a tenant.
"""
import logging
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from tasador.models import Plan, TenantPlanOverride
from tasador.utils.money import to_decimal

logger = logging.getLogger(__name__)


def resolve_net_price(session: Session, plan_id: Optional[str], tenant_id: Optional[str]) -> Optional[Decimal]:
    """
    Resolve the net price (before IVA) a tenant pays for a plan.

    A negotiated override for (tenant, plan) wins over the list price.
    Missing data never raises.

    Args:
        session: Database session
        plan_id: Plan id
        tenant_id: Tenant id (None skips the override lookup)

    Returns:
        Decimal price, or None when the plan does not exist or has no price
    """
    if not plan_id:
        return None

    if tenant_id:
        override = session.query(TenantPlanOverride).filter_by(
            tenant_id=tenant_id,
            plan_id=plan_id
        ).first()
        if override:
            override_price = to_decimal(override.net_price_override)
            if override_price is not None:
                return override_price

    plan = session.get(Plan, plan_id)
    if not plan:
        logger.debug(f"Plan {plan_id} not found while resolving price")
        return None

    return to_decimal(plan.net_price)
