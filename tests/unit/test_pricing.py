"""
Unit tests for price resolution.
"""

from decimal import Decimal

from tasador.models import Plan, TenantPlanOverride
from tasador.services.pricing_service import resolve_net_price


class TestResolveNetPrice:

    def test_list_price_without_override(self, session, tenant_id, plans):
        assert resolve_net_price(session, plans['pro'], tenant_id) == Decimal('1500.00')

    def test_override_wins(self, session, tenant_id, plans, override_pro_1200):
        assert resolve_net_price(session, plans['pro'], tenant_id) == Decimal('1200.00')

    def test_override_only_applies_to_its_tenant(self, session, tenant_id, other_tenant_id, plans, override_pro_1200):
        assert resolve_net_price(session, plans['pro'], other_tenant_id) == Decimal('1500.00')

    def test_override_without_price_falls_back(self, session, tenant_id, plans):
        session.add(TenantPlanOverride(tenant_id=tenant_id, plan_id=plans['pro'], net_price_override=None))
        session.commit()

        assert resolve_net_price(session, plans['pro'], tenant_id) == Decimal('1500.00')

    def test_missing_plan(self, session, tenant_id, plans):
        assert resolve_net_price(session, 'missing', tenant_id) is None
        assert resolve_net_price(session, None, tenant_id) is None

    def test_plan_without_price(self, session, tenant_id):
        plan = Plan(name='A medida', net_price=None, max_advisors=10)
        session.add(plan)
        session.commit()

        assert resolve_net_price(session, plan.id, tenant_id) is None

    def test_without_tenant_uses_list_price(self, session, plans, override_pro_1200):
        assert resolve_net_price(session, plans['pro'], None) == Decimal('1500.00')
