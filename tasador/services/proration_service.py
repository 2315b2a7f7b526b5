"""
Proration service: price delta of a mid-cycle plan change.

``calculate_proration`` and ``classify_change`` are pure; ``preview_plan_change``
reads the cycle and prices from the database and never writes.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, Union
from sqlalchemy.orm import Session

from tasador.models import Plan
from tasador.exceptions import BusinessLogicError, ConflictError
from tasador.services.pricing_service import resolve_net_price
from tasador.services.subscription_service import CycleState, resolve_cycle_state
from tasador.utils.dates import as_date, iso
from tasador.utils.formatters import date_ar, money_ar
from tasador.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)

UPGRADE = 'upgrade'
DOWNGRADE = 'downgrade'
NO_CHANGE = 'no_change'

FRACTION_PLACES = Decimal('0.000001')

DateLike = Union[date, str]


@dataclass(frozen=True)
class ProrationResult:
    """Outcome of a proration calculation. Money fields are rounded to cents."""
    days_in_cycle: int
    days_remaining: int
    fraction: Decimal
    delta_net: Decimal
    tax: Decimal
    total: Decimal
    currency: str = 'ARS'

    def delta_dict(self) -> Dict[str, Any]:
        return {
            'net': float(self.delta_net),
            'tax': float(self.tax),
            'total': float(self.total),
            'currency': self.currency,
        }


def calculate_proration(
    cycle_start: DateLike,
    cycle_end: DateLike,
    current_net_price,
    new_net_price,
    tax_rate,
    today: DateLike,
    currency: str = 'ARS'
) -> ProrationResult:
    """
    Compute the charge for switching plans with part of the cycle left.

    Both cycle bounds are inclusive. Days remaining count today and are
    clamped to ``[0, days_in_cycle]``; a cycle with no days has fraction 0.
    Tax applies only to a positive delta.

    Args:
        cycle_start: First day of the cycle (date or ISO string)
        cycle_end: Last day of the cycle (date or ISO string)
        current_net_price: Net price of the current plan
        new_net_price: Net price of the target plan
        tax_rate: IVA rate, e.g. 0.21
        today: Reference date (date or ISO string)
        currency: Currency code reported back

    Returns:
        ProrationResult
    """
    start = as_date(cycle_start)
    end = as_date(cycle_end)
    ref = as_date(today)

    current = to_decimal(current_net_price) or Decimal('0')
    new = to_decimal(new_net_price) or Decimal('0')
    rate = to_decimal(tax_rate) or Decimal('0')

    days_in_cycle = (end - start).days + 1
    days_remaining = (end - ref).days + 1
    days_remaining = max(0, min(days_remaining, max(days_in_cycle, 0)))

    if days_in_cycle <= 0:
        fraction = Decimal('0')
    else:
        fraction = Decimal(days_remaining) / Decimal(days_in_cycle)

    delta_net = (new - current) * fraction
    tax = delta_net * rate if delta_net > 0 else Decimal('0')
    total = delta_net + tax

    return ProrationResult(
        days_in_cycle=days_in_cycle,
        days_remaining=days_remaining,
        fraction=fraction.quantize(FRACTION_PLACES, rounding=ROUND_HALF_UP),
        delta_net=round2(delta_net),
        tax=round2(tax),
        total=round2(total),
        currency=currency,
    )


def classify_change(current_net_price, new_net_price) -> str:
    """Classify a plan change by the sign of ``new - current``."""
    current = to_decimal(current_net_price) or Decimal('0')
    new = to_decimal(new_net_price) or Decimal('0')
    diff = new - current
    if diff > 0:
        return UPGRADE
    if diff < 0:
        return DOWNGRADE
    return NO_CHANGE


def _plan_block(plan_id: str, plan: Optional[Plan], price: Decimal) -> Dict[str, Any]:
    return {
        'plan_id': plan_id,
        'plan_name': plan.name if plan else None,
        'price': float(round2(price)),
    }


def _note(action: str, result: ProrationResult, target_name: str, state: CycleState) -> str:
    if action == UPGRADE:
        note = (
            f"Se cobrará {money_ar(result.total, result.currency)} (IVA incluido) por los "
            f"{result.days_remaining} días restantes del ciclo. "
            f"El plan {target_name} se aplica de inmediato."
        )
        if state.next_plan_id:
            note += f" Se cancela el cambio programado al plan {state.next_plan_name or state.next_plan_id}."
        return note
    if action == DOWNGRADE:
        return (
            f"El cambio al plan {target_name} se aplicará al finalizar el ciclo "
            f"actual ({date_ar(state.cycle_end)}). No hay cargo ahora."
        )
    note = "El plan elegido tiene el mismo precio que el actual. No hay cambios."
    if state.next_plan_id:
        effective_from = state.change_scheduled_for or state.cycle_end
        note += (
            f" Sigue programado el cambio al plan {state.next_plan_name or state.next_plan_id}"
            f" el {date_ar(effective_from)}."
        )
    return note


def build_plan_change(
    session: Session,
    tenant_id: str,
    target_plan_id: Optional[str],
    today: DateLike,
    tax_rate,
    currency: str = 'ARS'
) -> Dict[str, Any]:
    """
    Resolve cycle and prices and compute the proration for a plan change.

    Shared by the preview and the commit path.

    Raises:
        BusinessLogicError: target plan id missing (400)
        ConflictError: no active cycle, today outside the cycle, unknown
            price or inactive plan (409)
    """
    if not target_plan_id:
        raise BusinessLogicError("Falta 'nuevo_plan_id'.")

    state = resolve_cycle_state(session, tenant_id)
    if state is None:
        raise ConflictError("La empresa no tiene una suscripción activa.")

    reference = as_date(today)
    # Expired cycles wait for rollover; nothing left to prorate.
    if reference > state.cycle_end:
        raise ConflictError(
            f"El ciclo actual terminó el {date_ar(state.cycle_end)}. "
            "Esperá la renovación para cambiar de plan."
        )
    if reference < state.cycle_start:
        raise ConflictError(f"El ciclo actual comienza el {date_ar(state.cycle_start)}.")

    target_plan = session.get(Plan, target_plan_id)
    if target_plan is not None and not target_plan.active:
        raise ConflictError("El plan elegido no está disponible.")

    current_price = resolve_net_price(session, state.plan_id, tenant_id)
    target_price = resolve_net_price(session, target_plan_id, tenant_id)
    if current_price is None or target_price is None:
        raise ConflictError("No se pudo determinar el precio de los planes.")

    result = calculate_proration(
        state.cycle_start,
        state.cycle_end,
        current_price,
        target_price,
        tax_rate,
        today,
        currency=currency,
    )
    action = classify_change(current_price, target_price)

    return {
        'action': action,
        'state': state,
        'target_plan': target_plan,
        'current_price': current_price,
        'target_price': target_price,
        'result': result,
    }


def preview_plan_change(
    session: Session,
    tenant_id: str,
    target_plan_id: Optional[str],
    today: DateLike,
    tax_rate,
    currency: str = 'ARS'
) -> Dict[str, Any]:
    """
    Preview what changing to ``target_plan_id`` would cost right now.

    Upgrades report the prorated delta. Downgrades report a zero delta and
    the plan scheduled for the cycle end. Equal prices report no change and
    keep any downgrade already scheduled. A cycle that does not contain
    ``today`` is rejected (409).

    Args:
        session: Database session
        tenant_id: Tenant whose cycle is used (already authorized)
        target_plan_id: Plan the tenant wants to switch to
        today: Reference date
        tax_rate: IVA rate
        currency: Currency code

    Returns:
        dict with action, cycle, current, target, delta, scheduled_next and note
    """
    change = build_plan_change(session, tenant_id, target_plan_id, today, tax_rate, currency)
    action = change['action']
    state = change['state']
    result = change['result']
    target_plan = change['target_plan']

    current_plan = session.get(Plan, state.plan_id)

    if action == UPGRADE:
        delta = result.delta_dict()
    else:
        delta = {'net': 0.0, 'tax': 0.0, 'total': 0.0, 'currency': currency}

    if action == DOWNGRADE:
        scheduled_next = {
            'plan_id': target_plan_id,
            'plan_name': target_plan.name if target_plan else None,
            'effective_from': iso(state.cycle_end),
        }
    elif action == NO_CHANGE and state.next_plan_id:
        # Nothing is committed, so the pending schedule still applies
        scheduled_next = {
            'plan_id': state.next_plan_id,
            'plan_name': state.next_plan_name,
            'effective_from': iso(state.change_scheduled_for or state.cycle_end),
        }
    else:
        scheduled_next = None

    target_name = target_plan.name if target_plan else target_plan_id
    logger.debug(f"Preview for tenant {tenant_id}: {action} to {target_plan_id} ({result})")

    return {
        'action': action,
        'tenant_id': tenant_id,
        'cycle': {
            'start': iso(state.cycle_start),
            'end': iso(state.cycle_end),
            'days_in_cycle': result.days_in_cycle,
            'days_remaining': result.days_remaining,
            'fraction': float(result.fraction),
        },
        'current': _plan_block(state.plan_id, current_plan, change['current_price']),
        'target': _plan_block(target_plan_id, target_plan, change['target_price']),
        'delta': delta,
        'scheduled_next': scheduled_next,
        'note': _note(action, result, target_name, state),
    }
