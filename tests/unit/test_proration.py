"""
Unit tests for the proration engine.
"""

import pytest
from datetime import date
from decimal import Decimal

from tasador.exceptions import BusinessLogicError, ConflictError
from tasador.models import Plan
from tasador.services.proration_service import (
    calculate_proration, classify_change, preview_plan_change,
    UPGRADE, DOWNGRADE, NO_CHANGE
)

START = date(2024, 1, 1)
END = date(2024, 1, 31)
RATE = Decimal('0.21')


class TestCalculateProration:

    def test_mid_cycle_upgrade(self):
        result = calculate_proration(START, END, 1000, 1500, RATE, date(2024, 1, 16))

        assert result.days_in_cycle == 31
        assert result.days_remaining == 16
        assert float(result.fraction) == pytest.approx(0.516129, abs=1e-6)
        assert result.delta_net == Decimal('258.06')
        assert result.tax == Decimal('54.19')
        assert result.total == Decimal('312.26')

    def test_accepts_iso_strings(self):
        from_strings = calculate_proration('2024-01-01', '2024-01-31', '1000', '1500', '0.21', '2024-01-16')
        from_dates = calculate_proration(START, END, 1000, 1500, RATE, date(2024, 1, 16))
        assert from_strings == from_dates

    def test_first_day_charges_full_difference(self):
        result = calculate_proration(START, END, 1000, 1500, RATE, START)
        assert result.days_remaining == 31
        assert result.fraction == Decimal('1.000000')
        assert result.delta_net == Decimal('500.00')

    def test_last_day_counts_as_one_day(self):
        result = calculate_proration(START, END, 1000, 1500, RATE, END)
        assert result.days_remaining == 1

    def test_today_before_cycle_is_clamped(self):
        result = calculate_proration(START, END, 1000, 1500, RATE, date(2023, 12, 1))
        assert result.days_remaining == 31
        assert result.fraction == Decimal('1.000000')

    def test_today_after_cycle_is_clamped(self):
        result = calculate_proration(START, END, 1000, 1500, RATE, date(2024, 3, 1))
        assert result.days_remaining == 0
        assert result.fraction == Decimal('0')
        assert result.total == Decimal('0')

    def test_degenerate_cycle_has_zero_fraction(self):
        result = calculate_proration(date(2024, 1, 31), date(2024, 1, 1), 1000, 1500, RATE, date(2024, 1, 15))
        assert result.days_in_cycle <= 0
        assert result.fraction == Decimal('0')
        assert result.total == Decimal('0')

    @pytest.mark.parametrize('today', [date(2023, 12, 31), START, date(2024, 1, 10), END, date(2024, 2, 2)])
    def test_fraction_bounds(self, today):
        result = calculate_proration(START, END, 1000, 3000, RATE, today)
        assert Decimal('0') <= result.fraction <= Decimal('1')
        assert 0 <= result.days_remaining <= result.days_in_cycle

    def test_equal_prices_give_zero(self):
        result = calculate_proration(START, END, 1500, 1500, RATE, date(2024, 1, 16))
        assert result.delta_net == 0
        assert result.tax == 0
        assert result.total == 0

    def test_negative_delta_has_no_tax(self):
        result = calculate_proration(START, END, 1500, 1000, RATE, date(2024, 1, 16))
        assert result.delta_net == Decimal('-258.06')
        assert result.tax == Decimal('0')
        assert result.total == Decimal('-258.06')

    def test_pure(self):
        first = calculate_proration(START, END, 1000, 1500, RATE, date(2024, 1, 16))
        second = calculate_proration(START, END, 1000, 1500, RATE, date(2024, 1, 16))
        assert first == second


class TestClassifyChange:

    @pytest.mark.parametrize('current,new,expected', [
        (1000, 1500, UPGRADE),
        (1500, 1000, DOWNGRADE),
        (1500, 1500, NO_CHANGE),
        (Decimal('1000.00'), '1000', NO_CHANGE),
    ])
    def test_sign(self, current, new, expected):
        assert classify_change(current, new) == expected

    def test_consistent_with_delta_sign(self):
        for new in (500, 1000, 1500):
            action = classify_change(1000, new)
            delta = calculate_proration(START, END, 1000, new, RATE, date(2024, 1, 10)).delta_net
            if action == UPGRADE:
                assert delta > 0
            elif action == DOWNGRADE:
                assert delta < 0
            else:
                assert delta == 0


class TestPreviewPlanChange:

    def test_upgrade(self, session, tenant_id, plans, january_cycle):
        preview = preview_plan_change(session, tenant_id, plans['pro'], date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == UPGRADE
        assert preview['tenant_id'] == tenant_id
        assert preview['cycle'] == {
            'start': '2024-01-01',
            'end': '2024-01-31',
            'days_in_cycle': 31,
            'days_remaining': 16,
            'fraction': pytest.approx(0.516129, abs=1e-6),
        }
        assert preview['current'] == {'plan_id': plans['basic'], 'plan_name': 'Básico', 'price': 1000.0}
        assert preview['target'] == {'plan_id': plans['pro'], 'plan_name': 'Pro', 'price': 1500.0}
        assert preview['delta'] == {'net': 258.06, 'tax': 54.19, 'total': 312.26, 'currency': 'ARS'}
        assert preview['scheduled_next'] is None
        assert '312,26' in preview['note']

    def test_downgrade_is_scheduled_without_charge(self, session, tenant_id, plans, cycle_factory):
        cycle_factory(tenant_id, plans['pro'], START, END)

        preview = preview_plan_change(session, tenant_id, plans['basic'], date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == DOWNGRADE
        assert preview['delta']['total'] == 0
        assert preview['delta']['tax'] == 0
        assert preview['scheduled_next'] == {
            'plan_id': plans['basic'],
            'plan_name': 'Básico',
            'effective_from': '2024-01-31',
        }
        assert '31/01/2024' in preview['note']

    def test_same_price_is_no_change(self, session, tenant_id, plans, january_cycle):
        same_price = Plan(name='Básico anual', net_price=Decimal('1000.00'), max_advisors=2)
        session.add(same_price)
        session.commit()

        preview = preview_plan_change(session, tenant_id, same_price.id, date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == NO_CHANGE
        assert preview['delta']['total'] == 0
        assert preview['scheduled_next'] is None

    def test_override_price_is_used(self, session, tenant_id, plans, january_cycle, override_pro_1200):
        preview = preview_plan_change(session, tenant_id, plans['pro'], date(2024, 1, 16), RATE, 'ARS')

        assert preview['target']['price'] == 1200.0
        # (1200 - 1000) * 16/31 = 103.2258...
        assert preview['delta']['net'] == 103.23
        assert preview['delta']['tax'] == 21.68
        assert preview['delta']['total'] == 124.9

    def test_preview_does_not_write(self, session, tenant_id, plans, january_cycle):
        from tasador.models import BillingMovement, SubscriptionCycle

        preview_plan_change(session, tenant_id, plans['pro'], date(2024, 1, 16), RATE, 'ARS')

        assert session.query(BillingMovement).count() == 0
        assert session.get(SubscriptionCycle, january_cycle).plan_id == plans['basic']

    def test_missing_target_plan(self, session, tenant_id, plans, january_cycle):
        with pytest.raises(BusinessLogicError) as exc:
            preview_plan_change(session, tenant_id, None, date(2024, 1, 16), RATE, 'ARS')
        assert exc.value.status_code == 400

    def test_no_active_cycle(self, session, tenant_id, plans):
        with pytest.raises(ConflictError) as exc:
            preview_plan_change(session, tenant_id, plans['pro'], date(2024, 1, 16), RATE, 'ARS')
        assert exc.value.status_code == 409

    def test_unpriced_plan(self, session, tenant_id, plans, january_cycle):
        unpriced = Plan(name='A medida', net_price=None, max_advisors=50)
        session.add(unpriced)
        session.commit()

        with pytest.raises(ConflictError):
            preview_plan_change(session, tenant_id, unpriced.id, date(2024, 1, 16), RATE, 'ARS')

    def test_unknown_plan(self, session, tenant_id, plans, january_cycle):
        with pytest.raises(ConflictError):
            preview_plan_change(session, tenant_id, 'no-such-plan', date(2024, 1, 16), RATE, 'ARS')

    def test_inactive_target_plan(self, session, tenant_id, plans, january_cycle):
        session.get(Plan, plans['premium']).active = False
        session.commit()

        with pytest.raises(ConflictError):
            preview_plan_change(session, tenant_id, plans['premium'], date(2024, 1, 16), RATE, 'ARS')

    def test_expired_cycle_is_rejected(self, session, tenant_id, plans, january_cycle):
        with pytest.raises(ConflictError) as exc:
            preview_plan_change(session, tenant_id, plans['pro'], date(2024, 3, 1), RATE, 'ARS')
        assert '31/01/2024' in exc.value.message

    def test_cycle_not_started_is_rejected(self, session, tenant_id, plans, january_cycle):
        with pytest.raises(ConflictError):
            preview_plan_change(session, tenant_id, plans['pro'], date(2023, 12, 20), RATE, 'ARS')

    def test_last_day_of_cycle_is_accepted(self, session, tenant_id, plans, january_cycle):
        preview = preview_plan_change(session, tenant_id, plans['pro'], END, RATE, 'ARS')
        assert preview['cycle']['days_remaining'] == 1


class TestPreviewWithScheduledChange:

    @pytest.fixture
    def pro_with_downgrade(self, tenant_id, plans, cycle_factory):
        return cycle_factory(
            tenant_id, plans['pro'], START, END,
            next_plan_id=plans['basic'], change_scheduled_for=END
        )

    def test_no_change_keeps_pending_schedule(self, session, tenant_id, plans, pro_with_downgrade):
        preview = preview_plan_change(session, tenant_id, plans['pro'], date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == NO_CHANGE
        assert preview['scheduled_next'] == {
            'plan_id': plans['basic'],
            'plan_name': 'Básico',
            'effective_from': '2024-01-31',
        }
        assert 'Básico' in preview['note']

    def test_upgrade_note_mentions_cancelled_schedule(self, session, tenant_id, plans, pro_with_downgrade):
        preview = preview_plan_change(session, tenant_id, plans['premium'], date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == UPGRADE
        assert preview['scheduled_next'] is None
        assert 'Se cancela el cambio programado al plan Básico' in preview['note']

    def test_new_downgrade_replaces_schedule(self, session, tenant_id, plans, pro_with_downgrade):
        mini = Plan(name='Mini', net_price=Decimal('500.00'), max_advisors=1)
        session.add(mini)
        session.commit()

        preview = preview_plan_change(session, tenant_id, mini.id, date(2024, 1, 16), RATE, 'ARS')

        assert preview['action'] == DOWNGRADE
        assert preview['scheduled_next']['plan_id'] == mini.id
