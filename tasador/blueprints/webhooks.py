"""
Webhooks Blueprint for payment provider notifications.
Handles subscription lifecycle and payment events.
"""

import logging
import hmac
import hashlib
from datetime import date
from flask import Blueprint, request, jsonify, current_app

from tasador.database import get_session
from tasador.exceptions import BusinessLogicError
from tasador.services.billing_service import BillingService, KNOWN_EVENTS, KNOWN_PROVIDERS
from tasador.blueprints.metrics import payment_webhooks_total

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/api/pagos')


def metric_labels(provider, event_type, outcome: str) -> dict:
    """Label values for payment_webhooks_total; unknown client strings fold into 'other'."""
    return {
        'provider': provider if isinstance(provider, str) and provider in KNOWN_PROVIDERS else 'other',
        'event_type': event_type if isinstance(event_type, str) and event_type in KNOWN_EVENTS else 'other',
        'outcome': outcome,
    }


def verify_signature(request_data: bytes, signature: str) -> bool:
    """
    Verify the HMAC-SHA256 signature of a webhook body.

    Verification is skipped when MP_WEBHOOK_SECRET is not configured.
    """
    secret = current_app.config.get('MP_WEBHOOK_SECRET')
    if not secret:
        logger.debug("Skipping webhook signature verification (no secret configured)")
        return True

    if not signature:
        logger.warning("Missing X-Signature header in payment webhook")
        return False

    expected_signature = hmac.new(
        secret.encode('utf-8'),
        request_data,
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(signature, expected_signature)


@webhooks_bp.route('/webhook', methods=['POST'])
def payment_webhook():
    """
    Handle payment provider events.

    Body: {provider, externalEventId, eventType, data}. Events are
    processed once per (provider, externalEventId).
    """
    signature = request.headers.get('X-Signature', '')
    if not verify_signature(request.get_data(), signature):
        logger.warning("Invalid payment webhook signature")
        return jsonify({'status': 'error', 'message': 'Firma inválida.'}), 401

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BusinessLogicError("Body inválido.")

    provider = body.get('provider')
    event_type = body.get('eventType')
    logger.info(f"[WEBHOOK] Received {provider}/{body.get('externalEventId')}: {event_type}")

    service = BillingService(
        get_session(),
        default_cycle_days=current_app.config['DEFAULT_CYCLE_DAYS']
    )
    result = service.process_webhook(
        provider=provider,
        external_event_id=body.get('externalEventId'),
        event_type=event_type,
        data=body.get('data'),
        today=date.today()
    )

    outcome = 'duplicate' if result.get('idempotent') else ('ignored' if result.get('note') else 'applied')
    payment_webhooks_total.labels(**metric_labels(provider, event_type, outcome)).inc()

    return jsonify(result), 200
