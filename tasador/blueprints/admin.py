"""
Admin Blueprint - plan catalog and tenant administration (JSON API).

Routes:
- GET   /api/admin/planes                        - Paginated plan list
- POST  /api/admin/planes                        - Create plan
- PATCH /api/admin/planes/<id>                   - Update plan
- PUT   /api/admin/empresas/<id>/override        - Set/clear negotiated price
- POST  /api/admin/empresas/<id>/suspend         - Suspend tenant
- POST  /api/admin/empresas/<id>/unsuspend       - Reactivate tenant
"""

from flask import Blueprint, request, jsonify, current_app, g
from tasador.database import get_session
from tasador.decorators.permissions import admin_only
from tasador.exceptions import BusinessLogicError
from tasador.services import admin_service

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _int_arg(name: str, default: int) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BusinessLogicError("Body inválido.")
    return body


@admin_bp.route('/planes', methods=['GET'])
@admin_only
def list_plans():
    """Plan catalog, searchable by name and ordered by price."""
    result = admin_service.list_plans(
        get_session(),
        q=request.args.get('q'),
        page=_int_arg('page', 1),
        page_size=_int_arg('pageSize', 10)
    )
    return jsonify(result), 200


@admin_bp.route('/planes', methods=['POST'])
@admin_only
def create_plan():
    plan = admin_service.create_plan(
        get_session(),
        _json_body(),
        admin_user_id=g.actor.user_id,
        ip_address=request.remote_addr
    )
    current_app.logger.info(f"[ADMIN] Plan created: {plan.id}")
    return jsonify({'ok': True, 'plan': plan.to_dict()}), 201


@admin_bp.route('/planes/<plan_id>', methods=['PATCH'])
@admin_only
def update_plan(plan_id):
    plan = admin_service.update_plan(
        get_session(),
        plan_id,
        _json_body(),
        admin_user_id=g.actor.user_id,
        ip_address=request.remote_addr
    )
    return jsonify({'ok': True, 'plan': plan.to_dict()}), 200


@admin_bp.route('/empresas/<tenant_id>/override', methods=['PUT'])
@admin_only
def set_override(tenant_id):
    """Set the negotiated net price of a plan for a tenant; null clears it."""
    body = _json_body()
    override = admin_service.set_price_override(
        get_session(),
        tenant_id,
        body.get('plan_id'),
        body.get('precio'),
        admin_user_id=g.actor.user_id,
        ip_address=request.remote_addr
    )
    return jsonify({
        'ok': True,
        'override': {
            'tenant_id': override.tenant_id,
            'plan_id': override.plan_id,
            'precio': float(override.net_price_override),
        } if override else None
    }), 200


@admin_bp.route('/empresas/<tenant_id>/suspend', methods=['POST'])
@admin_only
def suspend(tenant_id):
    body = request.get_json(silent=True) or {}
    tenant = admin_service.suspend_tenant(
        get_session(),
        tenant_id,
        body.get('motivo'),
        admin_user_id=g.actor.user_id,
        ip_address=request.remote_addr
    )
    return jsonify({'ok': True, 'suspendida': tenant.suspended}), 200


@admin_bp.route('/empresas/<tenant_id>/unsuspend', methods=['POST'])
@admin_only
def unsuspend(tenant_id):
    tenant = admin_service.unsuspend_tenant(
        get_session(),
        tenant_id,
        admin_user_id=g.actor.user_id,
        ip_address=request.remote_addr
    )
    return jsonify({'ok': True, 'suspendida': tenant.suspended}), 200
