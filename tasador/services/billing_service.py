"""Billing service for plan changes, checkouts and payment webhooks."""
import logging
from datetime import date, datetime, timezone, timedelta
from decimal import Decimal
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import requests

from tasador.models import (
    Plan, Tenant, SubscriptionCycle, CycleStatus, BillingMovement, MovementKind,
    MovementStatus, UPGRADE_PRORATION_SUBTYPE, WebhookEvent, AdminAuditLog, AuditAction
)
from tasador.exceptions import (
    BusinessLogicError, ConflictError, NotFoundError, PaymentProviderError
)
from tasador.services.mercadopago_client import MercadoPagoClient
from tasador.services.proration_service import (
    build_plan_change, UPGRADE, DOWNGRADE, NO_CHANGE
)
from tasador.services.subscription_service import (
    get_active_cycle, start_cycle, activate_cycle, DEFAULT_CYCLE_DAYS
)
from tasador.services.tenant_resolver import first_non_null
from tasador.utils.dates import iso
from tasador.utils.formatters import date_ar

logger = logging.getLogger(__name__)

ACTIVATION_EVENTS = frozenset({'subscription_active', 'payment_succeeded', 'subscription_resumed'})
SUSPENSION_EVENTS = frozenset({'subscription_paused', 'invoice_payment_failed'})
CANCELLATION_EVENTS = frozenset({'subscription_canceled'})
KNOWN_EVENTS = ACTIVATION_EVENTS | SUSPENSION_EVENTS | CANCELLATION_EVENTS
KNOWN_PROVIDERS = frozenset({'sandbox', 'mercadopago'})


def _utcnow():
    return datetime.now(timezone.utc)


class BillingService:
    """Servicio de facturación: cambios de plan, checkout y webhooks de pago."""

    def __init__(
        self,
        db_session: Session,
        mp_client: Optional[MercadoPagoClient] = None,
        tax_rate: Decimal = Decimal('0.21'),
        currency: str = 'ARS',
        default_cycle_days: int = DEFAULT_CYCLE_DAYS
    ):
        """
        Initialize billing service.

        Args:
            db_session: SQLAlchemy session
            mp_client: Mercado Pago client; None means sandbox checkouts
            tax_rate: IVA rate
            currency: Billing currency
            default_cycle_days: Cycle length for plans without duration
        """
        self.db = db_session
        self.mp_client = mp_client
        self.tax_rate = tax_rate
        self.currency = currency
        self.default_cycle_days = default_cycle_days

    # ------------------------------------------------------------------
    # Plan change
    # ------------------------------------------------------------------

    def change_plan(
        self,
        tenant_id: str,
        target_plan_id: Optional[str],
        actor_user_id: str,
        today: date,
        on_behalf: bool = False
    ) -> Dict[str, Any]:
        """
        Commit a plan change for a tenant.

        Upgrades switch the plan immediately and record a pending prorated
        charge. Downgrades are scheduled for the end of the cycle.

        Args:
            tenant_id: Tenant (already authorized)
            target_plan_id: Plan to switch to
            actor_user_id: User performing the change
            today: Reference date
            on_behalf: Staff acting for the tenant; the change is audited

        Returns:
            dict describing the outcome (action plus movement or schedule)

        Raises:
            BusinessLogicError: target plan id missing (400)
            ConflictError: no active cycle, unknown price or inactive plan (409)
        """
        try:
            cycle = get_active_cycle(self.db, tenant_id, for_update=True)
            if not cycle:
                raise ConflictError("La empresa no tiene una suscripción activa.")

            change = build_plan_change(
                self.db, tenant_id, target_plan_id, today, self.tax_rate, self.currency
            )
            action = change['action']
            result = change['result']

            if action == NO_CHANGE:
                self.db.rollback()
                return {
                    'action': NO_CHANGE,
                    'message': "El plan elegido tiene el mismo precio que el actual. No hay cambios."
                }

            if action == UPGRADE:
                previous_plan_id = cycle.plan_id
                cycle.plan_id = target_plan_id
                cycle.next_plan_id = None
                cycle.change_scheduled_for = None

                target_name = change['target_plan'].name if change['target_plan'] else target_plan_id
                movement = BillingMovement(
                    tenant_id=tenant_id,
                    kind=MovementKind.ADJUSTMENT.value,
                    subtype=UPGRADE_PRORATION_SUBTYPE,
                    status=MovementStatus.PENDING.value,
                    date=_utcnow(),
                    currency=self.currency,
                    net_amount=result.delta_net,
                    tax_amount=result.tax,
                    total_amount=result.total,
                    description=(
                        f"Prorrateo upgrade a {target_name} "
                        f"({result.days_remaining}/{result.days_in_cycle} días)"
                    ),
                    metadata_json={
                        'subtipo': UPGRADE_PRORATION_SUBTYPE,
                        'cycle_id': cycle.id,
                        'from_plan_id': previous_plan_id,
                        'to_plan_id': target_plan_id,
                        'days_remaining': result.days_remaining,
                        'days_in_cycle': result.days_in_cycle,
                        'fraction': str(result.fraction),
                        'actor_user_id': actor_user_id,
                    },
                )
                self.db.add(movement)
                self.db.flush()

                response = {
                    'action': UPGRADE,
                    'movement_id': movement.id,
                    'delta': result.delta_dict(),
                }
            else:
                cycle.next_plan_id = target_plan_id
                cycle.change_scheduled_for = cycle.cycle_end
                response = {
                    'action': DOWNGRADE,
                    'scheduled': True,
                    'effective_from': iso(cycle.cycle_end),
                    'next_plan_id': target_plan_id,
                    'message': f"El cambio se aplicará el {date_ar(cycle.cycle_end)}.",
                }

            if on_behalf:
                self.db.add(AdminAuditLog.log_action(
                    actor_user_id=actor_user_id,
                    action=AuditAction.CHANGE_PLAN_ON_BEHALF,
                    target_tenant_id=tenant_id,
                    details={'action': action, 'target_plan_id': target_plan_id},
                ))

            self.db.commit()
            logger.info(f"[BILLING] Tenant {tenant_id}: {action} to plan {target_plan_id} by {actor_user_id}")
            return response

        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_checkout(
        self,
        tenant_id: str,
        plan_id: Optional[str],
        actor_user_id: str,
        actor_role: str,
        site_url: str,
        today: date,
        payer_email: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Crear un checkout para contratar un plan.

        Creates a pending cycle and, with a Mercado Pago client, a payment
        preference; otherwise a sandbox URL.

        Returns:
            dict with checkoutUrl and subscription_id
        """
        if not plan_id:
            raise BusinessLogicError("Falta 'planId'.")

        try:
            plan = self.db.get(Plan, plan_id)
            if not plan:
                raise NotFoundError("Plan no encontrado.")
            if not plan.active:
                raise ConflictError("El plan elegido no está disponible.")
            if not self.db.get(Tenant, tenant_id):
                raise NotFoundError("Empresa no encontrada.")

            length = plan.duration_days if plan.duration_days and plan.duration_days > 0 else self.default_cycle_days
            cycle = SubscriptionCycle(
                tenant_id=tenant_id,
                plan_id=plan.id,
                status=CycleStatus.PENDING.value,
                cycle_start=today,
                cycle_end=today + timedelta(days=length - 1),
                metadata_json={
                    'initiated_by': actor_user_id,
                    'role': actor_role,
                    'source': 'checkout_mercadopago' if self.mp_client else 'checkout_sandbox',
                },
            )
            self.db.add(cycle)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not self.mp_client:
            checkout_url = (
                f"{site_url}/checkout/sandbox?empresaId={tenant_id}"
                f"&planId={plan.id}&suscripcionId={cycle.id}"
            )
            return {'checkoutUrl': checkout_url, 'subscription_id': cycle.id}

        try:
            preference = self.mp_client.create_preference(
                title=f"Plan {plan.name}",
                unit_price=float(plan.net_price or 0),
                external_reference=f"{tenant_id}:{plan.id}:{cycle.id}",
                notification_url=f"{site_url}/api/pagos/webhook",
                back_url_base=f"{site_url}/dashboard/empresa",
                payer_email=payer_email,
                currency_id=self.currency,
                metadata={'empresaId': tenant_id, 'planId': plan.id, 'suscripcionId': cycle.id},
            )
        except requests.RequestException as e:
            logger.error(f"[BILLING] Error creating MP preference for tenant {tenant_id}: {e}")
            raise PaymentProviderError()

        checkout_url = preference.get('init_point') or preference.get('sandbox_init_point')
        if not checkout_url:
            raise PaymentProviderError("Preferencia creada pero sin URL de checkout.")

        return {'checkoutUrl': checkout_url, 'subscription_id': cycle.id}

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def _cycle_by_id(self, data: Dict[str, Any]) -> Optional[SubscriptionCycle]:
        if not data.get('suscripcionId'):
            return None
        return self.db.get(SubscriptionCycle, str(data['suscripcionId']))

    def _cycle_by_external_id(self, data: Dict[str, Any]) -> Optional[SubscriptionCycle]:
        if not data.get('externoSubscriptionId'):
            return None
        return self.db.query(SubscriptionCycle).filter_by(
            external_subscription_id=str(data['externoSubscriptionId'])
        ).order_by(SubscriptionCycle.cycle_start.desc()).first()

    def _cycle_by_tenant_and_plan(self, data: Dict[str, Any]) -> Optional[SubscriptionCycle]:
        if not (data.get('empresaId') and data.get('planId')):
            return None
        return self.db.query(SubscriptionCycle).filter_by(
            tenant_id=str(data['empresaId']),
            plan_id=str(data['planId'])
        ).order_by(SubscriptionCycle.cycle_start.desc()).first()

    def find_cycle(self, data: Dict[str, Any]) -> Optional[SubscriptionCycle]:
        """Locate the cycle a webhook refers to (own id, provider id, tenant+plan)."""
        return first_non_null((
            self._cycle_by_id,
            self._cycle_by_external_id,
            self._cycle_by_tenant_and_plan,
        ))(data)

    def process_webhook(
        self,
        provider: Optional[str],
        external_event_id: Optional[str],
        event_type: Optional[str],
        data: Optional[Dict[str, Any]],
        today: date
    ) -> Dict[str, Any]:
        """
        Procesar evento webhook de pago (idempotente).

        Args:
            provider: Payment provider name (sandbox, mercadopago...)
            external_event_id: Provider event id, unique per provider
            event_type: Event type (subscription_active, payment_succeeded...)
            data: Event payload
            today: Reference date for cycle changes

        Returns:
            Response body; ``idempotent`` is set when the event was already seen

        Raises:
            BusinessLogicError: missing mandatory fields (400)
        """
        if not provider or not external_event_id or not event_type:
            raise BusinessLogicError(
                "Faltan campos obligatorios: provider, externalEventId, eventType."
            )
        data = data if isinstance(data, dict) else {}
        external_event_id = str(external_event_id)

        existing = self.db.query(WebhookEvent).filter_by(
            provider=provider,
            external_event_id=external_event_id
        ).first()
        if existing:
            logger.info(f"[WEBHOOK] Event already received: {provider}/{external_event_id}")
            return {'ok': True, 'idempotent': True}

        webhook_event = WebhookEvent(
            provider=provider,
            external_event_id=external_event_id,
            event_type=event_type,
            payload=data,
        )
        try:
            self.db.add(webhook_event)
            self.db.commit()
        except IntegrityError:
            # Another worker stored the same event first
            self.db.rollback()
            logger.warning(f"[WEBHOOK] Dedupe conflict (race): {provider}/{external_event_id}")
            return {'ok': True, 'idempotent': True}

        try:
            response = self._apply_event(event_type, data, today)
            webhook_event.processed_at = _utcnow()
            self.db.commit()
            return response
        except Exception as e:
            self.db.rollback()
            logger.error(f"[WEBHOOK] Error processing {provider}/{external_event_id}: {e}")
            raise

    def _apply_event(self, event_type: str, data: Dict[str, Any], today: date) -> Dict[str, Any]:
        cycle = self.find_cycle(data)

        tenant_id = cycle.tenant_id if cycle else data.get('empresaId')
        plan_id = cycle.plan_id if cycle else data.get('planId')

        if not cycle and not (tenant_id and plan_id and self.db.get(Tenant, str(tenant_id))):
            return {'ok': True, 'note': "Evento registrado (sin suscripción vinculada)."}

        if event_type in ACTIVATION_EVENTS:
            if cycle is None or cycle.status in (CycleStatus.CANCELLED.value, CycleStatus.ENDED.value):
                cycle = start_cycle(self.db, str(tenant_id), str(plan_id), today, self.default_cycle_days)
            elif cycle.is_pending:
                activate_cycle(self.db, cycle, today, self.default_cycle_days)

            if data.get('externoCustomerId'):
                cycle.external_customer_id = str(data['externoCustomerId'])
            if data.get('externoSubscriptionId'):
                cycle.external_subscription_id = str(data['externoSubscriptionId'])

            self._mark_movement_paid(cycle.tenant_id, data.get('movimientoId'))
            logger.info(f"[WEBHOOK] {event_type}: cycle {cycle.id} of tenant {cycle.tenant_id} active")

        elif event_type in SUSPENSION_EVENTS:
            if cycle and cycle.is_active:
                cycle.status = CycleStatus.PENDING.value
                logger.info(f"[WEBHOOK] {event_type}: cycle {cycle.id} of tenant {cycle.tenant_id} suspended")

        elif event_type in CANCELLATION_EVENTS:
            if cycle and cycle.status != CycleStatus.ENDED.value:
                cycle.status = CycleStatus.CANCELLED.value
                cycle.cycle_end = max(cycle.cycle_start, min(cycle.cycle_end, today))
                cycle.next_plan_id = None
                cycle.change_scheduled_for = None
                logger.info(f"[WEBHOOK] {event_type}: cycle {cycle.id} of tenant {cycle.tenant_id} cancelled")

        else:
            return {'ok': True, 'note': f"Evento {event_type} registrado (sin efectos)."}

        return {'ok': True}

    def _mark_movement_paid(self, tenant_id: str, movement_id: Optional[str]) -> None:
        if not movement_id:
            return
        movement = self.db.get(BillingMovement, str(movement_id))
        if not movement or movement.tenant_id != tenant_id:
            logger.warning(f"[WEBHOOK] Movement {movement_id} not found for tenant {tenant_id}")
            return
        if movement.is_pending:
            movement.status = MovementStatus.PAID.value
