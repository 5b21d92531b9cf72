"""
Tests for the LoyaltyEngine.

Covers:
- Earning (rate, flooring, idempotency per order, disabled program)
- Redemption (check order, minimum, balance, currency rounding)
- Manual adjustments
- Ledger invariants and history
- FIFO points expiration
- Settings defaults and validation
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from posrewards.extensions import db
from posrewards.models import Customer, PointsAccount, LedgerEntry, LoyaltySettings
from posrewards.services.loyalty_engine import LoyaltyEngine
from posrewards.utils.clock import utcnow, subtract_months
from posrewards.utils.exceptions import (
    ValidationError,
    NotFoundError,
    CustomerNotFoundError,
    LoyaltyDisabledError,
    BelowMinimumRedemptionError,
    InsufficientPointsError,
    NegativeBalanceError,
)


def ledger_sum(customer_id):
    return sum(e.points for e in LedgerEntry.query.filter_by(customer_id=customer_id).all())


class TestLoyaltyEngineEarn:
    """Tests for LoyaltyEngine.earn."""

    def test_earn_credits_one_point_per_dollar(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)

        result = engine.earn(sample_customer.id, order.id, Decimal('50.00'))

        assert result['points_earned'] == 50
        assert result['new_balance'] == 50
        assert result['duplicate'] is False
        entry = result['transaction']
        assert entry.type == 'earned'
        assert entry.points == 50
        assert entry.order_id == order.id
        assert entry.description == 'Earned 50 points from purchase of 50.00 USD'

        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        assert account.balance == 50
        assert account.lifetime_earned == 50

    def test_earn_floors_fractional_points(self, sample_store, sample_customer, loyalty_settings, make_order):
        loyalty_settings.points_per_dollar = Decimal('1.50')
        db.session.commit()
        order = make_order('10.99', customer_id=sample_customer.id)

        result = LoyaltyEngine(sample_store.id).earn(sample_customer.id, order.id, '10.99')

        # 10.99 * 1.5 = 16.485
        assert result['points_earned'] == 16

    def test_earn_is_idempotent_per_order(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)

        first = engine.earn(sample_customer.id, order.id, Decimal('50.00'))
        second = engine.earn(sample_customer.id, order.id, Decimal('50.00'))

        assert second['duplicate'] is True
        assert second['points_earned'] == 50
        assert second['new_balance'] == 50
        assert second['transaction'].id == first['transaction'].id
        assert LedgerEntry.query.filter_by(order_id=order.id, type='earned').count() == 1

    def test_concurrent_duplicate_earn_hits_unique_index(self, sample_store, sample_customer,
                                                         loyalty_settings, make_order):
        """A second earned row for the same order is rejected by the database."""
        order = make_order('20.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)
        original = engine.earn(sample_customer.id, order.id, Decimal('20.00'))['transaction']

        # pretend the pre-check raced and saw nothing
        with patch.object(LoyaltyEngine, '_earned_entry_for', side_effect=[None, original]):
            result = engine.earn(sample_customer.id, order.id, Decimal('20.00'))

        assert result['duplicate'] is True
        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        assert account.balance == 20
        assert LedgerEntry.query.filter_by(order_id=order.id).count() == 1

    def test_earn_disabled(self, sample_store, sample_customer, loyalty_settings, make_order):
        loyalty_settings.enabled = False
        db.session.commit()
        order = make_order('50.00', customer_id=sample_customer.id)

        with pytest.raises(LoyaltyDisabledError) as exc:
            LoyaltyEngine(sample_store.id).earn(sample_customer.id, order.id, Decimal('50.00'))

        assert exc.value.reason == 'disabled'
        assert PointsAccount.query.count() == 0

    def test_earn_unknown_customer(self, sample_store, loyalty_settings, make_order):
        order = make_order('50.00')
        with pytest.raises(CustomerNotFoundError):
            LoyaltyEngine(sample_store.id).earn('no-such-customer', order.id, Decimal('50.00'))

    def test_earn_unknown_order(self, sample_store, sample_customer, loyalty_settings):
        with pytest.raises(NotFoundError):
            LoyaltyEngine(sample_store.id).earn(sample_customer.id, 'no-such-order', Decimal('50.00'))

    def test_earn_customer_from_other_store(self, sample_store, other_store, sample_customer,
                                            loyalty_settings, make_order):
        order = make_order('50.00', store_id=other_store.id)
        with pytest.raises(CustomerNotFoundError):
            LoyaltyEngine(other_store.id).earn(sample_customer.id, order.id, Decimal('50.00'))

    def test_earn_rejects_negative_amount(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        with pytest.raises(ValidationError):
            LoyaltyEngine(sample_store.id).earn(sample_customer.id, order.id, '-5')

    def test_earn_rejects_non_numeric_amount(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        with pytest.raises(ValidationError):
            LoyaltyEngine(sample_store.id).earn(sample_customer.id, order.id, 'fifty')

    def test_earn_rejects_order_of_another_customer(self, sample_store, sample_customer,
                                                    loyalty_settings, make_order):
        other = Customer(store_id=sample_store.id, name='Grace Hopper', email='grace@example.com')
        db.session.add(other)
        db.session.commit()
        order = make_order('50.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)

        with pytest.raises(ValidationError) as exc:
            engine.earn(other.id, order.id, Decimal('50.00'))
        assert exc.value.field == 'customerId'
        assert PointsAccount.query.filter_by(customer_id=other.id).count() == 0

        result = engine.earn(sample_customer.id, order.id, Decimal('50.00'))
        assert result['duplicate'] is False
        assert result['new_balance'] == 50
        assert engine.get_balance(sample_customer.id).balance == 50

    def test_walk_in_order_credits_only_first_customer(self, sample_store, sample_customer,
                                                       loyalty_settings, make_order):
        other = Customer(store_id=sample_store.id, name='Grace Hopper', email='grace@example.com')
        db.session.add(other)
        db.session.commit()
        order = make_order('30.00')
        engine = LoyaltyEngine(sample_store.id)
        engine.earn(sample_customer.id, order.id, Decimal('30.00'))

        with pytest.raises(ValidationError):
            engine.earn(other.id, order.id, Decimal('30.00'))

        assert engine.get_balance(other.id).balance == 0
        assert engine.get_balance(sample_customer.id).balance == 30

    def test_account_created_by_concurrent_request(self, sample_store, sample_customer,
                                                   loyalty_settings, make_order):
        """Losing the first-insert race reuses the account the other request created."""
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 30)
        existing = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        order = make_order('20.00', customer_id=sample_customer.id)

        # the locking select misses the row once, as if it were committed just after
        with patch.object(LoyaltyEngine, '_select_account', side_effect=[None, existing]):
            result = engine.earn(sample_customer.id, order.id, Decimal('20.00'))

        assert result['points_earned'] == 20
        assert result['new_balance'] == 50
        assert PointsAccount.query.filter_by(customer_id=sample_customer.id).count() == 1
        assert ledger_sum(sample_customer.id) == 50

    def test_earn_description_uses_store_currency(self, sample_store, sample_customer,
                                                  loyalty_settings, make_order):
        sample_store.currency_code = 'JPY'
        db.session.commit()
        order = make_order('1500', customer_id=sample_customer.id)

        result = LoyaltyEngine(sample_store.id).earn(sample_customer.id, order.id, '1500')

        assert result['transaction'].description == 'Earned 1500 points from purchase of 1500 JPY'


class TestLoyaltyEngineRedeem:
    """Tests for LoyaltyEngine.redeem."""

    def test_earn_then_redeem_scenario(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)
        engine.earn(sample_customer.id, order.id, Decimal('50.00'))

        result = engine.redeem(sample_customer.id, 25)

        assert result['discount_value'] == Decimal('0.25')
        assert result['new_balance'] == 25
        assert result['transaction'].type == 'redeemed'
        assert result['transaction'].points == -25
        assert result['transaction'].description == 'Redeemed 25 points for 0.25 USD discount'

        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        assert account.lifetime_redeemed == 25

    def test_below_minimum_with_zero_balance(self, sample_store, sample_customer, loyalty_settings):
        loyalty_settings.minimum_redemption = 100
        db.session.commit()

        with pytest.raises(BelowMinimumRedemptionError) as exc:
            LoyaltyEngine(sample_store.id).redeem(sample_customer.id, 10)

        assert exc.value.reason == 'below_minimum'

    def test_below_minimum_regardless_of_balance(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 1000, 'Opening balance')

        with pytest.raises(BelowMinimumRedemptionError):
            engine.redeem(sample_customer.id, 5)

        assert engine.get_balance(sample_customer.id).balance == 1000

    def test_insufficient_balance(self, sample_store, sample_customer, loyalty_settings, make_order):
        order = make_order('50.00', customer_id=sample_customer.id)
        engine = LoyaltyEngine(sample_store.id)
        engine.earn(sample_customer.id, order.id, Decimal('50.00'))

        with pytest.raises(InsufficientPointsError) as exc:
            engine.redeem(sample_customer.id, 60)

        assert exc.value.reason == 'insufficient_balance'
        assert exc.value.current == 50
        assert engine.get_balance(sample_customer.id).balance == 50

    def test_redeem_without_account_does_not_create_one(self, sample_store, sample_customer, loyalty_settings):
        with pytest.raises(InsufficientPointsError):
            LoyaltyEngine(sample_store.id).redeem(sample_customer.id, 10)

        assert PointsAccount.query.count() == 0

    def test_disabled_checked_before_minimum(self, sample_store, sample_customer, loyalty_settings):
        loyalty_settings.enabled = False
        db.session.commit()

        with pytest.raises(LoyaltyDisabledError):
            LoyaltyEngine(sample_store.id).redeem(sample_customer.id, 1)

    def test_redeem_rounds_to_zero_decimal_currency(self, sample_store, sample_customer, loyalty_settings):
        sample_store.currency_code = 'JPY'
        loyalty_settings.redemption_rate = Decimal('0.015')
        db.session.commit()
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 500)

        result = engine.redeem(sample_customer.id, 101)

        # 101 * 0.015 = 1.515 yen
        assert result['discount_value'] == Decimal('2')
        assert result['transaction'].description == 'Redeemed 101 points for 2 JPY discount'

    @pytest.mark.parametrize('points', [0, -5, 'ten', 2.5, True])
    def test_redeem_rejects_invalid_points(self, sample_store, sample_customer, loyalty_settings, points):
        with pytest.raises(ValidationError):
            LoyaltyEngine(sample_store.id).redeem(sample_customer.id, points)


class TestLoyaltyEngineAdjust:
    """Tests for LoyaltyEngine.adjust."""

    def test_positive_adjustment(self, sample_store, sample_customer, loyalty_settings):
        result = LoyaltyEngine(sample_store.id).adjust(sample_customer.id, 40, 'Goodwill')

        assert result['new_balance'] == 40
        assert result['transaction'].type == 'adjusted'
        assert result['transaction'].description == 'Goodwill'
        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        assert account.lifetime_adjusted == 40

    def test_negative_adjustment_within_balance(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 40)

        result = engine.adjust(sample_customer.id, -15)

        assert result['new_balance'] == 25
        assert result['transaction'].description == 'Manual adjustment of -15 points'

    def test_adjustment_cannot_go_negative(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 10)

        with pytest.raises(NegativeBalanceError) as exc:
            engine.adjust(sample_customer.id, -11)

        assert exc.value.reason == 'would_go_negative'
        assert engine.get_balance(sample_customer.id).balance == 10
        assert LedgerEntry.query.filter_by(customer_id=sample_customer.id).count() == 1

    def test_zero_adjustment_rejected(self, sample_store, sample_customer, loyalty_settings):
        with pytest.raises(ValidationError):
            LoyaltyEngine(sample_store.id).adjust(sample_customer.id, 0)


class TestLedgerInvariants:
    """Balance always equals the totals and the ledger, and never drops below zero."""

    def test_mixed_sequence_keeps_invariants(self, sample_store, sample_customer, loyalty_settings, make_order):
        engine = LoyaltyEngine(sample_store.id)
        customer_id = sample_customer.id

        for amount in ('12.40', '80.00', '7.99'):
            order = make_order(amount, customer_id=customer_id)
            engine.earn(customer_id, order.id, Decimal(amount))
        engine.redeem(customer_id, 30)
        engine.adjust(customer_id, 5)
        with pytest.raises(InsufficientPointsError):
            engine.redeem(customer_id, 500)
        engine.adjust(customer_id, -20)
        with pytest.raises(NegativeBalanceError):
            engine.adjust(customer_id, -1000)

        account = PointsAccount.query.filter_by(customer_id=customer_id).one()
        # 12 + 80 + 7 - 30 + 5 - 20
        assert account.balance == 54
        assert account.balance >= 0
        assert account.balance == (
            account.lifetime_earned - account.lifetime_redeemed
            - account.lifetime_expired + account.lifetime_adjusted
        )
        assert account.balance == ledger_sum(customer_id)
        assert engine.verify_balances() == []

    def test_verify_balances_reports_drift(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 10)
        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        account.balance = 99
        db.session.commit()

        problems = engine.verify_balances()

        assert len(problems) == 1
        assert problems[0]['customer_id'] == sample_customer.id
        assert problems[0]['ledger_total'] == 10


class TestBalanceAndHistory:
    """Tests for get_balance and get_history."""

    def test_balance_for_new_customer_is_unsaved_zero(self, sample_store, sample_customer, loyalty_settings):
        account = LoyaltyEngine(sample_store.id).get_balance(sample_customer.id)

        assert account.balance == 0
        assert account.to_dict()['totalEarned'] == 0
        assert PointsAccount.query.count() == 0

    def test_balance_unknown_customer(self, sample_store, loyalty_settings):
        with pytest.raises(CustomerNotFoundError):
            LoyaltyEngine(sample_store.id).get_balance('missing')

    def test_history_still_readable_after_soft_delete(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 10)
        sample_customer.soft_delete()
        db.session.commit()

        assert len(engine.get_history(sample_customer.id)) == 1
        with pytest.raises(CustomerNotFoundError):
            engine.adjust(sample_customer.id, 5)

    def test_history_newest_first_with_limit(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 10, 'first')
        engine.adjust(sample_customer.id, 20, 'second')
        engine.adjust(sample_customer.id, 30, 'third')

        history = engine.get_history(sample_customer.id)
        assert [e.description for e in history] == ['third', 'second', 'first']

        limited = engine.get_history(sample_customer.id, limit=2)
        assert [e.description for e in limited] == ['third', 'second']


class TestPointsExpiration:
    """Tests for FIFO expiration."""

    def _backdate(self, entry, months):
        entry.transaction_date = subtract_months(utcnow(), months)
        db.session.commit()

    def test_expires_unconsumed_old_credits(self, sample_store, sample_customer, loyalty_settings, make_order):
        engine = LoyaltyEngine(sample_store.id)
        customer_id = sample_customer.id

        old_order = make_order('100.00', customer_id=customer_id)
        old = engine.earn(customer_id, old_order.id, Decimal('100.00'))['transaction']
        self._backdate(old, 13)
        new_order = make_order('30.00', customer_id=customer_id)
        engine.earn(customer_id, new_order.id, Decimal('30.00'))
        engine.redeem(customer_id, 20)

        result = engine.expire_points(customer_id)

        # 100 old credits, 20 already consumed by the redemption
        assert result['points_expired'] == 80
        assert result['new_balance'] == 30
        assert result['transaction'].type == 'expired'
        assert result['transaction'].points == -80

        account = PointsAccount.query.filter_by(customer_id=customer_id).one()
        assert account.lifetime_expired == 80
        assert account.balance == account.expected_balance == ledger_sum(customer_id)

    def test_rerun_is_a_no_op(self, sample_store, sample_customer, loyalty_settings, make_order):
        engine = LoyaltyEngine(sample_store.id)
        order = make_order('60.00', customer_id=sample_customer.id)
        entry = engine.earn(sample_customer.id, order.id, Decimal('60.00'))['transaction']
        self._backdate(entry, 18)

        assert engine.expire_points(sample_customer.id)['points_expired'] == 60
        assert engine.expire_points(sample_customer.id)['points_expired'] == 0
        assert LedgerEntry.query.filter_by(type='expired').count() == 1

    def test_expiry_never_drives_balance_negative(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        credit = engine.adjust(sample_customer.id, 50)['transaction']
        self._backdate(credit, 14)
        # balance lower than the ledger implies
        account = PointsAccount.query.filter_by(customer_id=sample_customer.id).one()
        account.balance = 20
        account.lifetime_adjusted = 20
        db.session.commit()

        result = engine.expire_points(sample_customer.id)

        assert result['points_expired'] == 20
        assert result['new_balance'] == 0

    def test_recent_points_are_kept(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        engine.adjust(sample_customer.id, 50)

        assert engine.expire_points(sample_customer.id)['points_expired'] == 0

    def test_no_expiry_configured(self, sample_store, sample_customer, loyalty_settings):
        loyalty_settings.points_expiry_months = None
        db.session.commit()
        engine = LoyaltyEngine(sample_store.id)
        credit = engine.adjust(sample_customer.id, 50)['transaction']
        self._backdate(credit, 36)

        assert engine.expire_points(sample_customer.id)['points_expired'] == 0

    def test_expire_store_dry_run_changes_nothing(self, sample_store, sample_customer, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)
        credit = engine.adjust(sample_customer.id, 50)['transaction']
        self._backdate(credit, 13)

        summary = engine.expire_store(dry_run=True)

        assert summary['points_expired'] == 50
        assert summary['dry_run'] is True
        assert engine.get_balance(sample_customer.id).balance == 50
        assert LedgerEntry.query.filter_by(type='expired').count() == 0


class TestLoyaltySettings:
    """Tests for get_settings / update_settings."""

    def test_defaults_created_on_first_read(self, sample_store):
        settings = LoyaltyEngine(sample_store.id).get_settings()

        assert settings.points_per_dollar == Decimal('1.00')
        assert settings.redemption_rate == Decimal('0.01')
        assert settings.minimum_redemption == 100
        assert settings.points_expiry_months == 12
        assert settings.enabled is True
        assert LoyaltySettings.query.filter_by(store_id=sample_store.id).count() == 1

    def test_partial_update(self, sample_store, loyalty_settings):
        engine = LoyaltyEngine(sample_store.id)

        settings = engine.update_settings(minimum_redemption=250, points_expiry_months=None)

        assert settings.minimum_redemption == 250
        assert settings.points_expiry_months is None
        assert settings.redemption_rate == Decimal('0.01')

    @pytest.mark.parametrize('changes', [
        {'redemption_rate': 0},
        {'redemption_rate': '-0.01'},
        {'points_per_dollar': -1},
        {'minimum_redemption': -1},
        {'minimum_redemption': 'lots'},
        {'points_expiry_months': 0},
        {'enabled': 'yes'},
        {'bonus_multiplier': 2},
    ])
    def test_invalid_updates_rejected(self, sample_store, loyalty_settings, changes):
        with pytest.raises(ValidationError):
            LoyaltyEngine(sample_store.id).update_settings(**changes)

    def test_earn_reads_settings_fresh(self, sample_store, sample_customer, loyalty_settings, make_order):
        engine = LoyaltyEngine(sample_store.id)
        first = make_order('10.00', customer_id=sample_customer.id)
        assert engine.earn(sample_customer.id, first.id, Decimal('10.00'))['points_earned'] == 10

        engine.update_settings(points_per_dollar='3')
        second = make_order('10.00', customer_id=sample_customer.id)
        assert engine.earn(sample_customer.id, second.id, Decimal('10.00'))['points_earned'] == 30
