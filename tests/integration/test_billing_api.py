"""
Integration tests for the billing endpoints (/api/billing).
"""

from tasador.models import SubscriptionCycle, BillingMovement, AdminAuditLog, AuditAction, CycleStatus


class TestAuthentication:

    def test_anonymous_is_rejected(self, client):
        response = client.get('/api/billing/estado')

        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_session_without_profile_is_anonymous(self, client, login_as):
        login_as('ghost')
        assert client.get('/api/billing/estado').status_code == 401


class TestPreviewChange:

    def test_preview_upgrade(self, empresa_client, tenant_id, plans, january_cycle):
        response = empresa_client.get(
            f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&today=2024-01-16"
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data['action'] == 'upgrade'
        assert data['tenant_id'] == tenant_id
        assert data['cycle']['days_remaining'] == 16
        assert data['delta']['total'] == 312.26

    def test_preview_is_read_only(self, empresa_client, session, plans, january_cycle):
        empresa_client.get(f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&today=2024-01-16")

        assert session.query(BillingMovement).count() == 0
        assert session.get(SubscriptionCycle, january_cycle).plan_id == plans['basic']

    def test_missing_plan_id(self, empresa_client, january_cycle):
        response = empresa_client.get('/api/billing/preview-change')
        assert response.status_code == 400

    def test_invalid_today(self, empresa_client, plans, january_cycle):
        response = empresa_client.get(f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&today=16/01/2024")
        assert response.status_code == 400

    def test_without_cycle(self, empresa_client, plans):
        response = empresa_client.get(f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}")
        assert response.status_code == 409

    def test_other_tenant_is_forbidden(self, empresa_client, plans, other_tenant_id, january_cycle):
        response = empresa_client.get(
            f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&empresa_id={other_tenant_id}"
        )
        assert response.status_code == 403

    def test_advisor_may_preview(self, login_as, users, plans, january_cycle):
        client = login_as(users['asesor'])

        response = client.get(f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&today=2024-01-16")
        assert response.status_code == 200

    def test_support_previews_any_tenant(self, login_as, users, tenant_id, plans, january_cycle):
        client = login_as(users['soporte'])

        response = client.get(
            f"/api/billing/preview-change?nuevo_plan_id={plans['pro']}&empresa_id={tenant_id}&today=2024-01-16"
        )
        assert response.status_code == 200
        assert response.get_json()['tenant_id'] == tenant_id


class TestChangePlan:

    def test_upgrade(self, empresa_client, session, plans, current_cycle):
        response = empresa_client.post('/api/billing/change-plan', json={'nuevo_plan_id': plans['pro']})

        assert response.status_code == 200
        data = response.get_json()
        assert data['action'] == 'upgrade'
        assert data['delta']['total'] > 0
        assert session.get(SubscriptionCycle, current_cycle).plan_id == plans['pro']
        assert session.get(BillingMovement, data['movement_id']) is not None

    def test_downgrade(self, empresa_client, session, tenant_id, plans, current_cycle):
        empresa_client.post('/api/billing/change-plan', json={'nuevo_plan_id': plans['pro']})

        response = empresa_client.post('/api/billing/change-plan', json={'nuevo_plan_id': plans['basic']})

        assert response.status_code == 200
        assert response.get_json()['action'] == 'downgrade'
        cycle = session.get(SubscriptionCycle, current_cycle)
        assert cycle.plan_id == plans['pro']
        assert cycle.next_plan_id == plans['basic']

    def test_advisor_cannot_commit(self, login_as, users, plans, current_cycle):
        client = login_as(users['asesor'])

        response = client.post('/api/billing/change-plan', json={'nuevo_plan_id': plans['pro']})
        assert response.status_code == 403

    def test_support_cannot_commit(self, login_as, users, tenant_id, plans, current_cycle):
        client = login_as(users['soporte'])

        response = client.post(
            '/api/billing/change-plan', json={'nuevo_plan_id': plans['pro'], 'empresa_id': tenant_id}
        )
        assert response.status_code == 403

    def test_admin_on_behalf_is_audited(self, admin_client, session, tenant_id, plans, current_cycle):
        response = admin_client.post(
            '/api/billing/change-plan', json={'nuevo_plan_id': plans['pro'], 'empresa_id': tenant_id}
        )

        assert response.status_code == 200
        entry = session.query(AdminAuditLog).one()
        assert entry.action == AuditAction.CHANGE_PLAN_ON_BEHALF
        assert entry.target_tenant_id == tenant_id

    def test_invalid_body(self, empresa_client, current_cycle):
        response = empresa_client.post('/api/billing/change-plan', data='no json', content_type='text/plain')
        assert response.status_code == 400


class TestEstado:

    def test_status(self, empresa_client, tenant_id, plans, current_cycle):
        response = empresa_client.get('/api/billing/estado')

        assert response.status_code == 200
        data = response.get_json()
        assert data['tenant_id'] == tenant_id
        assert data['plan']['id'] == plans['basic']
        assert data['status']['plan_expired'] is False
        assert data['subscription']['status'] == CycleStatus.ACTIVE.value

    def test_expired_cycle(self, empresa_client, january_cycle):
        data = empresa_client.get('/api/billing/estado').get_json()

        assert data['status']['plan_expired'] is True
        assert data['status']['in_grace_period'] is False


class TestCheckout:

    def test_sandbox_checkout(self, empresa_client, session, tenant_id, plans):
        response = empresa_client.post('/api/billing/checkout', json={'planId': plans['pro']})

        assert response.status_code == 200
        data = response.get_json()
        assert data['checkoutUrl'].startswith('http://testserver/checkout/sandbox?')
        cycle = session.get(SubscriptionCycle, data['subscription_id'])
        assert cycle.tenant_id == tenant_id
        assert cycle.status == CycleStatus.PENDING.value

    def test_unknown_plan(self, empresa_client, tenant_id, plans):
        response = empresa_client.post('/api/billing/checkout', json={'planId': 'missing'})
        assert response.status_code == 404

    def test_missing_plan(self, empresa_client, tenant_id, plans):
        response = empresa_client.post('/api/billing/checkout', json={})
        assert response.status_code == 400
