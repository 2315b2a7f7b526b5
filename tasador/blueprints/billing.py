"""Billing blueprint: plan change preview/commit, subscription status and checkout."""
from datetime import date
from flask import Blueprint, request, g, jsonify, current_app

from tasador.database import get_session
from tasador.decorators.permissions import require_actor, billing_managers_only, STAFF_ROLES
from tasador.exceptions import BusinessLogicError
from tasador.services.billing_service import BillingService
from tasador.services.mercadopago_client import MercadoPagoClient
from tasador.services.proration_service import preview_plan_change
from tasador.services.subscription_service import get_subscription_status
from tasador.services.tenant_resolver import resolve_target_tenant
from tasador.blueprints.metrics import plan_change_previews_total, plan_changes_committed_total
from tasador.utils.dates import as_date

billing_bp = Blueprint('billing', __name__, url_prefix='/api/billing')


def _billing_service(db_session) -> BillingService:
    config = current_app.config
    mp_client = MercadoPagoClient(config['MP_ACCESS_TOKEN']) if config.get('MP_ACCESS_TOKEN') else None
    return BillingService(
        db_session,
        mp_client=mp_client,
        tax_rate=config['IVA_RATE'],
        currency=config['BILLING_CURRENCY'],
        default_cycle_days=config['DEFAULT_CYCLE_DAYS']
    )


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BusinessLogicError("Body inválido.")
    return body


@billing_bp.route('/preview-change', methods=['GET'])
@require_actor
def preview_change():
    """Preview the cost of changing plan. Read-only."""
    db_session = get_session()
    tenant_id = resolve_target_tenant(db_session, g.actor, request.args.get('empresa_id'))

    try:
        today = as_date(request.args.get('today')) or date.today()
    except ValueError:
        raise BusinessLogicError("Fecha 'today' inválida. Usá AAAA-MM-DD.")

    preview = preview_plan_change(
        db_session,
        tenant_id,
        request.args.get('nuevo_plan_id'),
        today,
        current_app.config['IVA_RATE'],
        current_app.config['BILLING_CURRENCY']
    )
    plan_change_previews_total.labels(action=preview['action']).inc()

    return jsonify(preview), 200


@billing_bp.route('/change-plan', methods=['POST'])
@billing_managers_only
def change_plan():
    """Commit a plan change (upgrade now, downgrade at cycle end)."""
    db_session = get_session()
    body = _json_body()
    tenant_id = resolve_target_tenant(db_session, g.actor, body.get('empresa_id'))

    result = _billing_service(db_session).change_plan(
        tenant_id=tenant_id,
        target_plan_id=body.get('nuevo_plan_id'),
        actor_user_id=g.actor.user_id,
        today=date.today(),
        on_behalf=g.actor.role in STAFF_ROLES
    )
    plan_changes_committed_total.labels(action=result['action']).inc()

    current_app.logger.info(
        f"[BILLING] change-plan tenant={tenant_id} action={result['action']} by={g.actor.user_id}"
    )
    return jsonify(result), 200


@billing_bp.route('/estado', methods=['GET'])
@require_actor
def estado():
    """Subscription status of the tenant (cycle, plan, suspension and expiry flags)."""
    db_session = get_session()
    tenant_id = resolve_target_tenant(db_session, g.actor, request.args.get('empresa_id'))

    status = get_subscription_status(
        db_session,
        tenant_id,
        date.today(),
        tax_rate=current_app.config['IVA_RATE'],
        grace_days=current_app.config['GRACE_PERIOD_DAYS']
    )
    return jsonify(status), 200


@billing_bp.route('/checkout', methods=['POST'])
@billing_managers_only
def checkout():
    """Start a checkout for a plan (Mercado Pago or sandbox)."""
    db_session = get_session()
    body = _json_body()
    tenant_id = resolve_target_tenant(db_session, g.actor, body.get('empresaId'))

    result = _billing_service(db_session).create_checkout(
        tenant_id=tenant_id,
        plan_id=body.get('planId'),
        actor_user_id=g.actor.user_id,
        actor_role=g.actor.role.value,
        site_url=current_app.config['SITE_URL'].rstrip('/'),
        today=date.today(),
        payer_email=g.actor.email
    )

    current_app.logger.info(f"[BILLING] checkout tenant={tenant_id} subscription={result['subscription_id']}")
    return jsonify(result), 200
