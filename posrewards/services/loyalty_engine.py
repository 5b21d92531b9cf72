"""
Loyalty Engine for POS Rewards.

Points earning, redemption, manual adjustment and expiry over an
append-only ledger.

ARCHITECTURE:
- LedgerEntry rows are the history; PointsAccount holds the running totals
- Every balance mutation locks the account row (SELECT ... FOR UPDATE),
  updates the totals and appends exactly one ledger entry in the same
  transaction
- Settings are read fresh on every earn/redeem
- Earning is idempotent per order: at most one 'earned' entry per order id,
  enforced by a partial unique index

Invariants:
    balance >= 0
    balance == lifetime_earned - lifetime_redeemed - lifetime_expired + lifetime_adjusted
"""

from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, List, Dict, Any
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Customer,
    Order,
    StoreInfo,
    LoyaltySettings,
    PointsAccount,
    LedgerEntry,
    LedgerEntryType,
)
from ..utils.clock import utcnow, subtract_months
from ..utils.currency import format_money, round_money, to_decimal
from ..utils.exceptions import (
    ValidationError,
    NotFoundError,
    CustomerNotFoundError,
    StoreNotFoundError,
    LoyaltyDisabledError,
    BelowMinimumRedemptionError,
    InsufficientPointsError,
    NegativeBalanceError,
)


CREDIT_TYPES = (LedgerEntryType.EARNED.value, LedgerEntryType.ADJUSTED.value)


def _require_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer', field=field)
    return value


class LoyaltyEngine:
    """
    Store-scoped loyalty operations.

    Usage:
        engine = LoyaltyEngine(store_id)

        result = engine.earn(customer_id, order_id, Decimal('50.00'))
        result = engine.redeem(customer_id, 200)
    """

    def __init__(self, store_id: int, currency_code: str = None):
        self.store_id = store_id
        self._currency_code = currency_code

    @property
    def currency_code(self) -> str:
        if self._currency_code is None:
            store = db.session.get(StoreInfo, self.store_id)
            if store is None:
                raise StoreNotFoundError(self.store_id)
            self._currency_code = store.currency_code or current_app.config.get('DEFAULT_CURRENCY', 'USD')
        return self._currency_code

    # ==================== Settings ====================

    def get_settings(self) -> LoyaltySettings:
        """Store settings; created with the configured defaults on first read."""
        settings = LoyaltySettings.query.filter_by(store_id=self.store_id).first()
        if settings is None:
            defaults = current_app.config.get('DEFAULT_LOYALTY_SETTINGS', {})
            settings = LoyaltySettings(
                store_id=self.store_id,
                points_per_dollar=Decimal(str(defaults.get('points_per_dollar', '1.00'))),
                redemption_rate=Decimal(str(defaults.get('redemption_rate', '0.01'))),
                minimum_redemption=defaults.get('minimum_redemption', 100),
                points_expiry_months=defaults.get('points_expiry_months', 12),
                enabled=defaults.get('enabled', True),
            )
            db.session.add(settings)
            db.session.commit()
            current_app.logger.info(f'[Loyalty] Created default settings for store {self.store_id}')
        return settings

    def update_settings(self, **changes) -> LoyaltySettings:
        """
        Partial settings update.

        Args:
            points_per_dollar: Decimal >= 0
            redemption_rate: Decimal > 0
            minimum_redemption: int >= 0
            points_expiry_months: int >= 1, or None for no expiry
            enabled: bool

        Raises:
            ValidationError: unknown field or out-of-range value
        """
        allowed = {'points_per_dollar', 'redemption_rate', 'minimum_redemption',
                   'points_expiry_months', 'enabled'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown settings field: {', '.join(sorted(unknown))}")

        values = {}
        if 'points_per_dollar' in changes:
            values['points_per_dollar'] = self._parse_rate(changes['points_per_dollar'], 'pointsPerDollar')
            if values['points_per_dollar'] < 0:
                raise ValidationError('pointsPerDollar must be >= 0', field='pointsPerDollar')
        if 'redemption_rate' in changes:
            values['redemption_rate'] = self._parse_rate(changes['redemption_rate'], 'redemptionRate')
            if values['redemption_rate'] <= 0:
                raise ValidationError('redemptionRate must be > 0', field='redemptionRate')
        if 'minimum_redemption' in changes:
            minimum = _require_int(changes['minimum_redemption'], 'minimumRedemption')
            if minimum < 0:
                raise ValidationError('minimumRedemption must be >= 0', field='minimumRedemption')
            values['minimum_redemption'] = minimum
        if 'points_expiry_months' in changes:
            months = changes['points_expiry_months']
            if months is not None:
                months = _require_int(months, 'pointsExpiryMonths')
                if months < 1:
                    raise ValidationError('pointsExpiryMonths must be >= 1 or null', field='pointsExpiryMonths')
            values['points_expiry_months'] = months
        if 'enabled' in changes:
            if not isinstance(changes['enabled'], bool):
                raise ValidationError('enabled must be a boolean', field='enabled')
            values['enabled'] = changes['enabled']

        settings = self.get_settings()
        for key, value in values.items():
            setattr(settings, key, value)
        db.session.commit()

        current_app.logger.info(f'[Loyalty] Updated settings for store {self.store_id}: {sorted(values)}')
        return settings

    @staticmethod
    def _parse_rate(value: Any, field: str) -> Decimal:
        try:
            return to_decimal(value, field)
        except ValueError as e:
            raise ValidationError(str(e), field=field)

    # ==================== Helpers ====================

    def _get_customer(self, customer_id: str, include_deleted: bool = False) -> Customer:
        if not customer_id:
            raise ValidationError('customerId is required', field='customerId')
        query = Customer.query.filter_by(id=customer_id, store_id=self.store_id)
        if not include_deleted:
            query = query.filter(Customer.deleted_at.is_(None))
        customer = query.first()
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def _select_account(self, customer_id: str) -> Optional[PointsAccount]:
        return PointsAccount.query.filter_by(customer_id=customer_id).with_for_update().first()

    def _lock_account(self, customer_id: str, create: bool = True) -> Optional[PointsAccount]:
        """
        Fetch the account row FOR UPDATE, creating it with a zero balance if asked.

        With create=True this must run before any other write in the
        transaction: losing the insert race to another request rolls the
        transaction back and locks the row that request created.
        """
        account = self._select_account(customer_id)
        if account is None and create:
            account = PointsAccount(
                customer_id=customer_id,
                balance=0,
                lifetime_earned=0,
                lifetime_redeemed=0,
                lifetime_expired=0,
                lifetime_adjusted=0,
            )
            db.session.add(account)
            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                account = self._select_account(customer_id)
                if account is None:
                    raise
                current_app.logger.info(f'[Loyalty] Account for customer {customer_id} created concurrently; reusing it')
        return account

    def _append(self, account: PointsAccount, entry_type: str, points: int,
                description: str, order_id: str = None, when: datetime = None) -> LedgerEntry:
        now = when or utcnow()
        account.last_updated = now
        entry = LedgerEntry(
            customer_id=account.customer_id,
            order_id=order_id,
            type=entry_type,
            points=points,
            description=description,
            transaction_date=now,
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    def _earned_entry_for(self, order_id: str) -> Optional[LedgerEntry]:
        return LedgerEntry.query.filter_by(order_id=order_id, type=LedgerEntryType.EARNED.value).first()

    # ==================== Core Operations ====================

    def earn(self, customer_id: str, order_id: str, purchase_amount: Any) -> Dict[str, Any]:
        """
        Credit points for a purchase. Always commits.

        points = floor(purchase_amount * points_per_dollar)

        A second call for the same order credits nothing and returns the
        original entry with duplicate=True.

        Raises:
            LoyaltyDisabledError: loyalty is switched off for the store
            ValidationError: missing ids, a negative/non-numeric amount, or an
                order that belongs to (or was credited to) another customer
            NotFoundError: unknown customer or order
        """
        if not order_id:
            raise ValidationError('orderId is required', field='orderId')
        try:
            amount = to_decimal(purchase_amount, 'amount')
        except ValueError as e:
            raise ValidationError(str(e), field='amount')
        if amount < 0:
            raise ValidationError('amount must be >= 0', field='amount')

        settings = self.get_settings()
        if not settings.enabled:
            raise LoyaltyDisabledError()

        self._get_customer(customer_id)
        order = Order.query.filter_by(id=order_id, store_id=self.store_id).first()
        if order is None:
            raise NotFoundError('Order', order_id)
        if order.customer_id and order.customer_id != customer_id:
            raise ValidationError(f'Order {order_id} belongs to another customer', field='customerId')

        existing = self._earned_entry_for(order_id)
        if existing is not None:
            return self._duplicate_result(existing, customer_id)

        points = int((amount * Decimal(settings.points_per_dollar)).to_integral_value(rounding=ROUND_FLOOR))
        description = f'Earned {points} points from purchase of {format_money(amount, self.currency_code)}'

        try:
            account = self._lock_account(customer_id)
            account.balance += points
            account.lifetime_earned += points
            entry = self._append(
                account,
                LedgerEntryType.EARNED.value,
                points,
                description,
                order_id=order_id,
            )
            db.session.commit()
        except IntegrityError:
            # a concurrent request credited this order first
            db.session.rollback()
            existing = self._earned_entry_for(order_id)
            if existing is None:
                raise
            return self._duplicate_result(existing, customer_id)

        current_app.logger.info(
            f'[Loyalty] Customer {customer_id} earned {points} points on order {order_id} '
            f'(balance {account.balance})'
        )
        return {
            'points_earned': points,
            'new_balance': account.balance,
            'transaction': entry,
            'duplicate': False,
        }

    def _duplicate_result(self, entry: LedgerEntry, customer_id: str) -> Dict[str, Any]:
        if entry.customer_id != customer_id:
            current_app.logger.warning(
                f'[Loyalty] Order {entry.order_id} was credited to customer {entry.customer_id}, '
                f'not {customer_id}'
            )
            raise ValidationError(f'Order {entry.order_id} was credited to another customer', field='customerId')
        account = PointsAccount.query.filter_by(customer_id=customer_id).first()
        current_app.logger.info(f'[Loyalty] Order {entry.order_id} already credited; skipping earn')
        return {
            'points_earned': entry.points,
            'new_balance': account.balance if account else 0,
            'transaction': entry,
            'duplicate': True,
        }

    def redeem(self, customer_id: str, points_to_redeem: Any, order_id: str = None,
               commit: bool = True) -> Dict[str, Any]:
        """
        Spend points for a discount.

        Checks, in order: disabled, below_minimum, insufficient_balance.

        Returns:
            Dict with discount_value (points * redemption_rate, rounded to the
            store currency), new_balance and the ledger entry
        """
        points = _require_int(points_to_redeem, 'pointsToRedeem')
        if points <= 0:
            raise ValidationError('pointsToRedeem must be a positive integer', field='pointsToRedeem')

        settings = self.get_settings()
        if not settings.enabled:
            raise LoyaltyDisabledError()
        if points < settings.minimum_redemption:
            raise BelowMinimumRedemptionError(settings.minimum_redemption, points)

        self._get_customer(customer_id)
        account = self._lock_account(customer_id, create=False)
        current = account.balance if account else 0
        if account is None or points > account.balance:
            if commit:
                db.session.rollback()
            current_app.logger.warning(
                f'[Loyalty] Redeem rejected for customer {customer_id}: {points} requested, {current} available'
            )
            raise InsufficientPointsError(current, points)

        discount_value = round_money(Decimal(points) * Decimal(settings.redemption_rate), self.currency_code)

        account.balance -= points
        account.lifetime_redeemed += points
        entry = self._append(
            account,
            LedgerEntryType.REDEEMED.value,
            -points,
            f'Redeemed {points} points for {format_money(discount_value, self.currency_code)} discount',
            order_id=order_id,
        )
        if commit:
            db.session.commit()

        current_app.logger.info(
            f'[Loyalty] Customer {customer_id} redeemed {points} points for {discount_value} '
            f'(balance {account.balance})'
        )
        return {
            'discount_value': discount_value,
            'new_balance': account.balance,
            'transaction': entry,
        }

    def adjust(self, customer_id: str, delta: Any, description: str = None) -> Dict[str, Any]:
        """
        Manual correction. Negative deltas may not take the balance below zero.

        Raises:
            ValidationError: delta is zero or not an integer
            NegativeBalanceError: the adjustment would go negative
        """
        delta = _require_int(delta, 'points')
        if delta == 0:
            raise ValidationError('points must be a non-zero integer', field='points')

        self._get_customer(customer_id)
        account = self._lock_account(customer_id)
        if account.balance + delta < 0:
            db.session.rollback()
            current_app.logger.warning(
                f'[Loyalty] Adjustment of {delta} rejected for customer {customer_id} (balance {account.balance})'
            )
            raise NegativeBalanceError(account.balance, delta)

        account.balance += delta
        account.lifetime_adjusted += delta
        entry = self._append(
            account,
            LedgerEntryType.ADJUSTED.value,
            delta,
            description or f'Manual adjustment of {delta:+d} points',
        )
        db.session.commit()

        current_app.logger.info(
            f'[Loyalty] Adjusted customer {customer_id} by {delta:+d} points (balance {account.balance})'
        )
        return {'new_balance': account.balance, 'transaction': entry}

    # ==================== Queries ====================

    def get_balance(self, customer_id: str) -> PointsAccount:
        """The customer's account, or an unsaved zero account if none exists yet."""
        self._get_customer(customer_id, include_deleted=True)
        account = PointsAccount.query.filter_by(customer_id=customer_id).first()
        if account is None:
            account = PointsAccount(
                customer_id=customer_id,
                balance=0,
                lifetime_earned=0,
                lifetime_redeemed=0,
                lifetime_expired=0,
                lifetime_adjusted=0,
                last_updated=None,
            )
        return account

    def get_history(self, customer_id: str, limit: int = None) -> List[LedgerEntry]:
        """Ledger entries, newest first."""
        self._get_customer(customer_id, include_deleted=True)
        query = LedgerEntry.query.filter_by(customer_id=customer_id).order_by(
            LedgerEntry.transaction_date.desc(), LedgerEntry.id.desc()
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    # ==================== Expiration ====================

    def expire_points(self, customer_id: str, now: datetime = None,
                      dry_run: bool = False) -> Dict[str, Any]:
        """
        Expire credits older than the store's expiry period (FIFO).

        Debits consume the oldest credits first, so what is left of credits
        made before the cutoff is (credits before cutoff) - (all debits).
        Previous expirations count as debits, which makes re-running a no-op.
        """
        settings = self.get_settings()
        result = {'customer_id': customer_id, 'points_expired': 0, 'new_balance': None, 'transaction': None}
        if not settings.points_expiry_months:
            return result

        now = now or utcnow()
        cutoff = subtract_months(now, settings.points_expiry_months)

        account = self._lock_account(customer_id, create=False)
        if account is None:
            return result
        result['new_balance'] = account.balance

        old_credits = db.session.query(func.coalesce(func.sum(LedgerEntry.points), 0)).filter(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.type.in_(CREDIT_TYPES),
            LedgerEntry.points > 0,
            LedgerEntry.transaction_date < cutoff,
        ).scalar()
        debits = -db.session.query(func.coalesce(func.sum(LedgerEntry.points), 0)).filter(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.points < 0,
        ).scalar()

        to_expire = min(max(0, int(old_credits) - int(debits)), account.balance)
        result['points_expired'] = to_expire
        if to_expire <= 0 or dry_run:
            return result

        account.balance -= to_expire
        account.lifetime_expired += to_expire
        entry = self._append(
            account,
            LedgerEntryType.EXPIRED.value,
            -to_expire,
            f'{to_expire} points expired (earned before {cutoff.date().isoformat()})',
            when=now,
        )
        db.session.commit()

        current_app.logger.info(
            f'[Loyalty] Expired {to_expire} points for customer {customer_id} (balance {account.balance})'
        )
        result['new_balance'] = account.balance
        result['transaction'] = entry
        return result

    def expire_store(self, now: datetime = None, dry_run: bool = False) -> Dict[str, Any]:
        """Run expire_points for every customer in the store holding points."""
        now = now or utcnow()
        customer_ids = [
            row.customer_id for row in
            db.session.query(PointsAccount.customer_id)
            .join(Customer, Customer.id == PointsAccount.customer_id)
            .filter(Customer.store_id == self.store_id, PointsAccount.balance > 0)
            .all()
        ]

        points_expired = 0
        accounts_affected = 0
        for customer_id in customer_ids:
            outcome = self.expire_points(customer_id, now=now, dry_run=dry_run)
            if outcome['points_expired']:
                accounts_affected += 1
                points_expired += outcome['points_expired']
        if dry_run:
            db.session.rollback()

        current_app.logger.info(
            f'[Loyalty] Store {self.store_id} expiration{" (dry run)" if dry_run else ""}: '
            f'{points_expired} points across {accounts_affected} accounts'
        )
        return {
            'store_id': self.store_id,
            'customers_checked': len(customer_ids),
            'accounts_affected': accounts_affected,
            'points_expired': points_expired,
            'dry_run': dry_run,
        }

    # ==================== Consistency ====================

    def verify_balances(self) -> List[Dict[str, Any]]:
        """
        Compare each account against its running totals and its ledger.

        Returns:
            One dict per inconsistent account (empty list when all agree)
        """
        ledger_sums = dict(
            db.session.query(LedgerEntry.customer_id, func.coalesce(func.sum(LedgerEntry.points), 0))
            .join(Customer, Customer.id == LedgerEntry.customer_id)
            .filter(Customer.store_id == self.store_id)
            .group_by(LedgerEntry.customer_id)
            .all()
        )
        accounts = (
            PointsAccount.query.join(Customer, Customer.id == PointsAccount.customer_id)
            .filter(Customer.store_id == self.store_id)
            .all()
        )

        problems = []
        for account in accounts:
            ledger_total = int(ledger_sums.get(account.customer_id, 0))
            if account.balance != account.expected_balance or account.balance != ledger_total or account.balance < 0:
                problems.append({
                    'customer_id': account.customer_id,
                    'balance': account.balance,
                    'expected_from_totals': account.expected_balance,
                    'ledger_total': ledger_total,
                })
        return problems
