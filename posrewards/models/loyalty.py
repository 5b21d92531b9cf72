"""
Loyalty points models.

PointsAccount holds the denormalized balance; LedgerEntry is the append-only
history that explains it:

    balance == lifetime_earned - lifetime_redeemed - lifetime_expired + lifetime_adjusted

Ledger rows are never updated or deleted.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Any
from ..extensions import db
from ..utils.clock import utcnow


class LedgerEntryType(str, Enum):
    """Types of ledger entries."""
    EARNED = 'earned'       # + points from a purchase
    REDEEMED = 'redeemed'   # - points spent as a discount
    EXPIRED = 'expired'     # - points past the expiry period
    ADJUSTED = 'adjusted'   # +/- manual correction


class LoyaltySettings(db.Model):
    """Per-store loyalty configuration."""
    __tablename__ = 'loyalty_settings'

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, unique=True)

    points_per_dollar = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('1.00'))
    redemption_rate = db.Column(db.Numeric(10, 4), nullable=False, default=Decimal('0.01'))
    minimum_redemption = db.Column(db.Integer, nullable=False, default=100)
    points_expiry_months = db.Column(db.Integer, default=12)  # null = never
    enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<LoyaltySettings store={self.store_id} enabled={self.enabled}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'storeInfoId': self.store_id,
            'pointsPerDollar': float(self.points_per_dollar),
            'redemptionRate': float(self.redemption_rate),
            'minimumRedemption': self.minimum_redemption,
            'pointsExpiryMonths': self.points_expiry_months,
            'enabled': self.enabled,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class PointsAccount(db.Model):
    """
    One per customer, created on the first balance mutation.
    Rows are locked with SELECT ... FOR UPDATE for every read-modify-write.
    """
    __tablename__ = 'loyalty_points'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, unique=True)

    balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_redeemed = db.Column(db.Integer, nullable=False, default=0)
    lifetime_expired = db.Column(db.Integer, nullable=False, default=0)
    lifetime_adjusted = db.Column(db.Integer, nullable=False, default=0)  # signed
    last_updated = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='balance_non_negative'),
    )

    def __repr__(self):
        return f'<PointsAccount {self.customer_id}: {self.balance}>'

    @property
    def expected_balance(self) -> int:
        return (
            (self.lifetime_earned or 0)
            - (self.lifetime_redeemed or 0)
            - (self.lifetime_expired or 0)
            + (self.lifetime_adjusted or 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'customerId': self.customer_id,
            'balance': self.balance or 0,
            'totalEarned': self.lifetime_earned or 0,
            'totalRedeemed': self.lifetime_redeemed or 0,
            'totalExpired': self.lifetime_expired or 0,
            'lastUpdated': self.last_updated.isoformat() if self.last_updated else None,
        }


class LedgerEntry(db.Model):
    """
    Immutable points transaction.

    A partial unique index allows at most one 'earned' entry per order, which
    makes earning idempotent when an order request is retried.
    """
    __tablename__ = 'loyalty_transactions'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, index=True)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=True, index=True)
    type = db.Column(db.String(20), nullable=False)
    points = db.Column(db.Integer, nullable=False)  # signed delta
    description = db.Column(db.String(500))
    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        db.Index(
            'uq_loyalty_transactions_order_earned',
            'order_id',
            unique=True,
            sqlite_where=db.text("type = 'earned'"),
            postgresql_where=db.text("type = 'earned'"),
        ),
    )

    def __repr__(self):
        return f'<LedgerEntry {self.type} {self.points:+d} customer={self.customer_id}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'customerId': self.customer_id,
            'orderId': self.order_id,
            'type': self.type,
            'points': self.points,
            'description': self.description,
            'transactionDate': self.transaction_date.isoformat() if self.transaction_date else None,
        }
