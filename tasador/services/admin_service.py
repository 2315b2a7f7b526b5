"""
Admin Service - plan catalog, negotiated prices and tenant suspension.

Every mutation writes an AdminAuditLog entry in the same transaction.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from tasador.models import Plan, Tenant, TenantPlanOverride, AdminAuditLog, AuditAction
from tasador.exceptions import BusinessLogicError, NotFoundError
from tasador.utils.money import parse_amount

logger = logging.getLogger(__name__)

PLAN_FIELDS = ('name', 'net_price', 'max_advisors', 'duration_days', 'extra_advisor_price', 'active', 'is_trial')


def _parse_price(value, field: str) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    try:
        price = parse_amount(value)
    except ValueError:
        raise BusinessLogicError(f"'{field}' inválido.")
    if price < 0:
        raise BusinessLogicError(f"'{field}' inválido.")
    return price.quantize(Decimal('0.01'))


def _parse_positive_int(value, field: str, allow_none: bool) -> Optional[int]:
    if value is None or value == '':
        if allow_none:
            return None
        raise BusinessLogicError(f"'{field}' inválido.")
    if isinstance(value, bool):
        raise BusinessLogicError(f"'{field}' inválido.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f"'{field}' inválido.")
    if number <= 0 or number != float(value):
        raise BusinessLogicError(f"'{field}' inválido.")
    return number


def validate_plan_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate plan fields from a JSON body.

    Accepts English or Spanish keys (``net_price`` / ``precio``...).

    Args:
        data: Request body
        partial: Only validate the keys present (PATCH)

    Returns:
        dict of model attribute -> clean value

    Raises:
        BusinessLogicError: on invalid input
    """
    if not isinstance(data, dict):
        raise BusinessLogicError("Body inválido.")

    aliases = {
        'name': ('name', 'nombre'),
        'net_price': ('net_price', 'precio'),
        'max_advisors': ('max_advisors', 'max_asesores'),
        'duration_days': ('duration_days', 'duracion_dias'),
        'extra_advisor_price': ('extra_advisor_price', 'precio_extra_por_asesor'),
        'active': ('active', 'activo'),
        'is_trial': ('is_trial', 'es_trial'),
    }
    raw = {}
    for field, keys in aliases.items():
        for key in keys:
            if key in data:
                raw[field] = data[key]
                break

    clean = {}

    if 'name' in raw or not partial:
        name = raw.get('name')
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            raise BusinessLogicError("Falta 'nombre'.")
        clean['name'] = name

    if 'max_advisors' in raw or not partial:
        clean['max_advisors'] = _parse_positive_int(raw.get('max_advisors'), 'max_asesores', allow_none=False)

    if 'duration_days' in raw:
        clean['duration_days'] = _parse_positive_int(raw['duration_days'], 'duracion_dias', allow_none=True)

    if 'net_price' in raw:
        clean['net_price'] = _parse_price(raw['net_price'], 'precio')

    if 'extra_advisor_price' in raw:
        clean['extra_advisor_price'] = _parse_price(raw['extra_advisor_price'], 'precio_extra_por_asesor')

    for flag in ('active', 'is_trial'):
        if flag in raw:
            if not isinstance(raw[flag], bool):
                raise BusinessLogicError(f"'{flag}' debe ser booleano.")
            clean[flag] = raw[flag]

    return clean


def _plan_snapshot(plan: Plan) -> Dict[str, Any]:
    return {
        field: (str(getattr(plan, field)) if isinstance(getattr(plan, field), Decimal) else getattr(plan, field))
        for field in PLAN_FIELDS
    }


def list_plans(db_session: Session, q: Optional[str] = None, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
    """
    Paginated plan catalog ordered by price (unpriced plans last).

    Returns:
        dict: items, page, pageSize, total
    """
    page = page if page and page > 0 else 1
    page_size = page_size if page_size and page_size > 0 else 10

    query = db_session.query(Plan)
    if q and q.strip():
        query = query.filter(Plan.name.ilike(f"%{q.strip()}%"))

    total = query.count()
    plans = query.order_by(
        Plan.net_price.is_(None),
        Plan.net_price.asc(),
        Plan.name.asc()
    ).offset((page - 1) * page_size).limit(page_size).all()

    return {
        'items': [plan.to_dict() for plan in plans],
        'page': page,
        'pageSize': page_size,
        'total': total,
    }


def create_plan(db_session: Session, data: Dict[str, Any], admin_user_id: str, ip_address: str = None) -> Plan:
    """Create a plan and audit it."""
    clean = validate_plan_data(data)
    plan = Plan(**clean)

    try:
        db_session.add(plan)
        db_session.flush()
        db_session.add(AdminAuditLog.log_action(
            actor_user_id=admin_user_id,
            action=AuditAction.CREATE_PLAN,
            details={'plan_id': plan.id, 'after': _plan_snapshot(plan)},
            ip_address=ip_address
        ))
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    logger.info(f"[ADMIN] Plan {plan.id} created by {admin_user_id}")
    return plan


def update_plan(db_session: Session, plan_id: str, data: Dict[str, Any], admin_user_id: str, ip_address: str = None) -> Plan:
    """Update plan fields present in ``data`` and audit before/after values."""
    plan = db_session.get(Plan, plan_id)
    if not plan:
        raise NotFoundError("Plan no encontrado.")

    clean = validate_plan_data(data, partial=True)
    if not clean:
        raise BusinessLogicError("No hay cambios para aplicar.")

    before = _plan_snapshot(plan)
    for field, value in clean.items():
        setattr(plan, field, value)

    try:
        db_session.add(AdminAuditLog.log_action(
            actor_user_id=admin_user_id,
            action=AuditAction.UPDATE_PLAN,
            details={'plan_id': plan.id, 'before': before, 'after': _plan_snapshot(plan)},
            ip_address=ip_address
        ))
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    logger.info(f"[ADMIN] Plan {plan.id} updated by {admin_user_id}: {sorted(clean)}")
    return plan


def set_price_override(
    db_session: Session,
    tenant_id: str,
    plan_id: Optional[str],
    net_price,
    admin_user_id: str,
    ip_address: str = None
) -> Optional[TenantPlanOverride]:
    """
    Set or clear the negotiated net price of a plan for a tenant.

    A ``None`` price removes the override.

    Returns:
        The override, or None when it was cleared
    """
    if not db_session.get(Tenant, tenant_id):
        raise NotFoundError("Empresa no encontrada.")
    if not plan_id:
        raise BusinessLogicError("Falta 'plan_id'.")
    if not db_session.get(Plan, plan_id):
        raise NotFoundError("Plan no encontrado.")

    price = _parse_price(net_price, 'precio')

    override = db_session.query(TenantPlanOverride).filter_by(
        tenant_id=tenant_id,
        plan_id=plan_id
    ).first()
    previous = str(override.net_price_override) if override and override.net_price_override is not None else None

    if price is None:
        if override:
            db_session.delete(override)
        override = None
    elif override:
        override.net_price_override = price
    else:
        override = TenantPlanOverride(tenant_id=tenant_id, plan_id=plan_id, net_price_override=price)
        db_session.add(override)

    try:
        db_session.add(AdminAuditLog.log_action(
            actor_user_id=admin_user_id,
            action=AuditAction.SET_PRICE_OVERRIDE,
            target_tenant_id=tenant_id,
            details={
                'plan_id': plan_id,
                'before': previous,
                'after': str(price) if price is not None else None
            },
            ip_address=ip_address
        ))
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    logger.info(f"[ADMIN] Override for tenant {tenant_id} plan {plan_id} set to {price}")
    return override


def suspend_tenant(db_session: Session, tenant_id: str, reason: Optional[str], admin_user_id: str, ip_address: str = None) -> Tenant:
    """Suspend a tenant's access."""
    tenant = db_session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Empresa no encontrada.")
    if tenant.suspended:
        raise BusinessLogicError("La empresa ya está suspendida.")

    tenant.suspended = True
    tenant.suspended_at = datetime.now(timezone.utc)
    tenant.suspension_reason = (reason or '').strip() or None

    try:
        db_session.add(AdminAuditLog.log_action(
            actor_user_id=admin_user_id,
            action=AuditAction.SUSPEND_TENANT,
            target_tenant_id=tenant_id,
            details={'reason': tenant.suspension_reason},
            ip_address=ip_address
        ))
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    logger.info(f"[ADMIN] Tenant {tenant_id} suspended by {admin_user_id}")
    return tenant


def unsuspend_tenant(db_session: Session, tenant_id: str, admin_user_id: str, ip_address: str = None) -> Tenant:
    """Lift a tenant suspension."""
    tenant = db_session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Empresa no encontrada.")
    if not tenant.suspended:
        raise BusinessLogicError("La empresa no está suspendida.")

    previous_reason = tenant.suspension_reason
    tenant.suspended = False
    tenant.suspended_at = None
    tenant.suspension_reason = None

    try:
        db_session.add(AdminAuditLog.log_action(
            actor_user_id=admin_user_id,
            action=AuditAction.REACTIVATE_TENANT,
            target_tenant_id=tenant_id,
            details={'previous_reason': previous_reason},
            ip_address=ip_address
        ))
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    logger.info(f"[ADMIN] Tenant {tenant_id} reactivated by {admin_user_id}")
    return tenant
