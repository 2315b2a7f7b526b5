"""
Subscription Service for managing tenant billing cycles.
Handles cycle resolution, trial creation, cycle rollover and the
subscription status view shown to tenants.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from tasador.models import (
    Plan, Tenant, SubscriptionCycle, CycleStatus,
    BillingMovement, MovementKind, MovementStatus
)
from tasador.exceptions import BusinessLogicError, ConflictError, NotFoundError
from tasador.services.pricing_service import resolve_net_price
from tasador.utils.dates import iso
from tasador.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_CYCLE_DAYS = 30
DEFAULT_TRIAL_DAYS = 15
DEFAULT_GRACE_PERIOD_DAYS = 2


@dataclass(frozen=True)
class CycleState:
    """Snapshot of a tenant's current billing cycle."""
    tenant_id: str
    cycle_start: date
    cycle_end: date
    plan_id: str
    plan_name: Optional[str] = None
    next_plan_id: Optional[str] = None
    next_plan_name: Optional[str] = None
    change_scheduled_for: Optional[date] = None


def get_active_cycle(session: Session, tenant_id: str, for_update: bool = False) -> Optional[SubscriptionCycle]:
    """Return the tenant's active cycle (latest start wins), optionally row-locked."""
    query = session.query(SubscriptionCycle).filter(
        SubscriptionCycle.tenant_id == tenant_id,
        SubscriptionCycle.status == CycleStatus.ACTIVE.value
    ).order_by(SubscriptionCycle.cycle_start.desc())

    if for_update:
        query = query.with_for_update()

    return query.first()


def resolve_cycle_state(session: Session, tenant_id: Optional[str]) -> Optional[CycleState]:
    """
    Resolve the current cycle of a tenant.

    No authorization is performed here. A cycle whose end precedes its
    start is treated as unresolvable.

    Args:
        session: Database session
        tenant_id: Tenant id

    Returns:
        CycleState, or None when the tenant has no usable active cycle
    """
    if not tenant_id:
        return None

    cycle = get_active_cycle(session, tenant_id)
    if not cycle:
        return None

    if cycle.cycle_end < cycle.cycle_start:
        logger.warning(
            f"Cycle {cycle.id} of tenant {tenant_id} ends before it starts "
            f"({cycle.cycle_start} > {cycle.cycle_end}), ignoring it"
        )
        return None

    return CycleState(
        tenant_id=tenant_id,
        cycle_start=cycle.cycle_start,
        cycle_end=cycle.cycle_end,
        plan_id=cycle.plan_id,
        plan_name=cycle.plan.name if cycle.plan else None,
        next_plan_id=cycle.next_plan_id,
        next_plan_name=cycle.next_plan.name if cycle.next_plan else None,
        change_scheduled_for=cycle.change_scheduled_for,
    )


def _cycle_length(plan: Plan, default_days: int) -> int:
    if plan.duration_days and plan.duration_days > 0:
        return plan.duration_days
    return default_days


def create_trial_subscription(
    session: Session,
    tenant_id: str,
    today: date,
    trial_days: int = DEFAULT_TRIAL_DAYS
) -> SubscriptionCycle:
    """
    Create the first (trial) cycle for a tenant.

    Args:
        session: Database session
        tenant_id: ID of the tenant
        today: First day of the trial
        trial_days: Trial length in days

    Returns:
        SubscriptionCycle: Created cycle (flushed, not committed)
    """
    if not session.get(Tenant, tenant_id):
        raise NotFoundError("Empresa no encontrada.")

    if get_active_cycle(session, tenant_id):
        raise ConflictError("La empresa ya tiene una suscripción activa.")

    trial_plan = session.query(Plan).filter_by(is_trial=True, active=True).first()
    if not trial_plan:
        raise NotFoundError("No hay un plan de prueba configurado.")

    cycle = SubscriptionCycle(
        tenant_id=tenant_id,
        plan_id=trial_plan.id,
        status=CycleStatus.ACTIVE.value,
        cycle_start=today,
        cycle_end=today + timedelta(days=trial_days - 1),
    )

    session.add(cycle)
    session.flush()

    logger.info(f"Created trial cycle for tenant {tenant_id}, ends {cycle.cycle_end}")
    return cycle


def start_cycle(
    session: Session,
    tenant_id: str,
    plan_id: str,
    start: date,
    default_cycle_days: int = DEFAULT_CYCLE_DAYS
) -> SubscriptionCycle:
    """
    Start a new active cycle on a plan, cancelling any other active cycle.

    The cycle covers ``[start, start + duration - 1]`` where duration is the
    plan's ``duration_days`` or ``default_cycle_days``.
    """
    plan = session.get(Plan, plan_id)
    if not plan:
        raise NotFoundError("Plan no encontrado.")

    for other in session.query(SubscriptionCycle).filter_by(
        tenant_id=tenant_id,
        status=CycleStatus.ACTIVE.value
    ).all():
        other.status = CycleStatus.CANCELLED.value

    cycle = SubscriptionCycle(
        tenant_id=tenant_id,
        plan_id=plan.id,
        status=CycleStatus.ACTIVE.value,
        cycle_start=start,
        cycle_end=start + timedelta(days=_cycle_length(plan, default_cycle_days) - 1),
    )
    session.add(cycle)
    session.flush()

    logger.info(f"Started cycle {cycle.id} for tenant {tenant_id} on plan {plan_id}")
    return cycle


def activate_cycle(
    session: Session,
    cycle: SubscriptionCycle,
    today: date,
    default_cycle_days: int = DEFAULT_CYCLE_DAYS
) -> SubscriptionCycle:
    """
    Activate a pending cycle after payment.

    The cycle is re-anchored to start today and any other active cycle of
    the tenant is cancelled. Already active cycles are left untouched.
    """
    if cycle.is_active:
        return cycle

    if cycle.status != CycleStatus.PENDING.value:
        raise BusinessLogicError(f"No se puede activar una suscripción en estado {cycle.status}.")

    for other in session.query(SubscriptionCycle).filter(
        SubscriptionCycle.tenant_id == cycle.tenant_id,
        SubscriptionCycle.status == CycleStatus.ACTIVE.value,
        SubscriptionCycle.id != cycle.id
    ).all():
        other.status = CycleStatus.CANCELLED.value

    plan = cycle.plan or session.get(Plan, cycle.plan_id)
    cycle.cycle_start = today
    cycle.cycle_end = today + timedelta(days=_cycle_length(plan, default_cycle_days) - 1)
    cycle.status = CycleStatus.ACTIVE.value
    session.flush()

    logger.info(f"Activated cycle {cycle.id} for tenant {cycle.tenant_id}")
    return cycle


def roll_over_cycles(
    session: Session,
    today: date,
    tax_rate: Decimal = Decimal('0.21'),
    currency: str = 'ARS',
    default_cycle_days: int = DEFAULT_CYCLE_DAYS
) -> List[SubscriptionCycle]:
    """
    Close every active cycle that ended before ``today`` and open the next one.

    The next cycle starts the day after the old one ends, on the scheduled
    next plan when there is one, otherwise on the same plan. A pending
    ``subscription`` movement is recorded for each new cycle with a price.
    Trial cycles without a scheduled plan just end.

    Returns:
        List of newly created cycles (flushed, not committed)
    """
    tax_rate = to_decimal(tax_rate) or Decimal('0')
    expired = session.query(SubscriptionCycle).filter(
        SubscriptionCycle.status == CycleStatus.ACTIVE.value,
        SubscriptionCycle.cycle_end < today
    ).with_for_update().all()

    created = []
    for cycle in expired:
        cycle.status = CycleStatus.ENDED.value

        next_plan_id = cycle.next_plan_id or cycle.plan_id
        next_plan = session.get(Plan, next_plan_id)

        if next_plan is None or (next_plan.is_trial and not cycle.next_plan_id):
            logger.info(f"Cycle {cycle.id} of tenant {cycle.tenant_id} ended without renewal")
            continue

        length = _cycle_length(next_plan, default_cycle_days)
        start = cycle.cycle_end + timedelta(days=1)
        # Skip whole periods the job missed so the new cycle contains today.
        while start + timedelta(days=length - 1) < today:
            start += timedelta(days=length)

        new_cycle = SubscriptionCycle(
            tenant_id=cycle.tenant_id,
            plan_id=next_plan.id,
            status=CycleStatus.ACTIVE.value,
            cycle_start=start,
            cycle_end=start + timedelta(days=length - 1),
            external_customer_id=cycle.external_customer_id,
            external_subscription_id=cycle.external_subscription_id,
        )
        session.add(new_cycle)
        session.flush()

        net_price = resolve_net_price(session, next_plan.id, cycle.tenant_id)
        if net_price is not None and net_price > 0:
            tax = round2(net_price * tax_rate)
            session.add(BillingMovement(
                tenant_id=cycle.tenant_id,
                kind=MovementKind.SUBSCRIPTION.value,
                status=MovementStatus.PENDING.value,
                date=datetime.now(timezone.utc),
                currency=currency,
                net_amount=round2(net_price),
                tax_amount=tax,
                total_amount=round2(net_price + tax),
                description=f"Suscripción {next_plan.name} {start.isoformat()} a {new_cycle.cycle_end.isoformat()}",
                metadata_json={'cycle_id': new_cycle.id, 'plan_id': next_plan.id},
            ))

        logger.info(
            f"Rolled over tenant {cycle.tenant_id}: cycle {cycle.id} -> {new_cycle.id} "
            f"(plan {next_plan.id})"
        )
        created.append(new_cycle)

    session.flush()
    return created


def get_subscription_status(
    session: Session,
    tenant_id: str,
    today: date,
    tax_rate: Decimal = Decimal('0.21'),
    grace_days: int = DEFAULT_GRACE_PERIOD_DAYS
) -> Dict[str, Any]:
    """
    Get comprehensive subscription status for a tenant.

    Uses the active cycle, or the most recent cycle when none is active.

    Args:
        session: Database session
        tenant_id: ID of the tenant
        today: Reference date for the expiry flags
        tax_rate: IVA rate applied to the plan price
        grace_days: Days after expiry still considered grace period

    Returns:
        dict: Subscription status details
    """
    tax_rate = to_decimal(tax_rate) or Decimal('0')
    tenant = session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Empresa no encontrada.")

    tenant_status = {
        'suspended': bool(tenant.suspended),
        'suspension_reason': tenant.suspension_reason,
        'suspended_at': tenant.suspended_at.isoformat() if tenant.suspended_at else None,
        'plan_expired': False,
        'days_since_expiry': None,
        'in_grace_period': False,
    }

    cycle = get_active_cycle(session, tenant_id)
    if not cycle:
        cycle = session.query(SubscriptionCycle).filter_by(
            tenant_id=tenant_id
        ).order_by(SubscriptionCycle.cycle_start.desc()).first()

    if not cycle:
        return {
            'tenant_id': tenant_id,
            'plan': None,
            'cycle': {'start': None, 'end': None, 'next_charge': None},
            'subscription': None,
            'next_plan': None,
            'status': tenant_status,
        }

    days_since_expiry = (today - cycle.cycle_end).days
    tenant_status['days_since_expiry'] = days_since_expiry
    if days_since_expiry > 0:
        tenant_status['plan_expired'] = True
        tenant_status['in_grace_period'] = days_since_expiry <= grace_days

    plan = cycle.plan
    net_price = resolve_net_price(session, cycle.plan_id, tenant_id)
    if net_price is not None:
        tax = round2(net_price * tax_rate)
        price_info = {'net_price': float(round2(net_price)), 'total_with_tax': float(round2(net_price + tax))}
    else:
        price_info = {'net_price': None, 'total_with_tax': None}

    next_plan = None
    if cycle.next_plan_id:
        next_plan = {
            'id': cycle.next_plan_id,
            'name': cycle.next_plan.name if cycle.next_plan else '',
            'effective_from': iso(cycle.change_scheduled_for),
        }

    return {
        'tenant_id': tenant_id,
        'plan': {
            'id': plan.id,
            'name': plan.name,
            'is_trial': bool(plan.is_trial),
            'max_advisors': plan.max_advisors,
            **price_info,
        } if plan else None,
        'cycle': {
            'start': iso(cycle.cycle_start),
            'end': iso(cycle.cycle_end),
            'next_charge': iso(cycle.cycle_end + timedelta(days=1)),
        },
        'subscription': {
            'id': cycle.id,
            'status': cycle.status,
            'external_customer_id': cycle.external_customer_id,
            'external_subscription_id': cycle.external_subscription_id,
        },
        'next_plan': next_plan,
        'status': tenant_status,
    }
