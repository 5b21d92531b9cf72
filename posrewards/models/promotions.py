"""
Promotions and discount codes for POS Rewards.

Promotion types:
- percentage: % off the eligible subtotal (optionally capped)
- fixed_amount: flat amount off, never more than the eligible subtotal
- buy_x_get_y: buy N get M, applied to the cheapest qualifying units
- time_based: only inside a daily/weekly/specific-date window

Codes live in their own table, upper-cased, unique per promotion.
"""

from datetime import datetime, time
from enum import Enum
from typing import Optional, List, Dict, Any
from ..extensions import db
from ..utils.clock import utcnow, to_store_time
from .store import SoftDeleteMixin, new_uuid


# ==================== Enums ====================

class PromotionType(str, Enum):
    """Types of promotions."""
    PERCENTAGE = 'percentage'
    FIXED_AMOUNT = 'fixed_amount'
    BUY_X_GET_Y = 'buy_x_get_y'
    TIME_BASED = 'time_based'


class GetDiscountType(str, Enum):
    """How the free units of a buy_x_get_y promotion are discounted."""
    FREE = 'free'
    PERCENTAGE = 'percentage'
    FIXED_AMOUNT = 'fixed_amount'


class TimeBasedType(str, Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    SPECIFIC_DATES = 'specific_dates'


# ==================== Models ====================

class Promotion(SoftDeleteMixin, db.Model):
    """
    Store-scoped promotion.

    The validity window is [start_date, end_date] in UTC. Time-of-day windows
    for time_based promotions are evaluated in the store's local time.
    """
    __tablename__ = 'promotions'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, index=True)

    # Basic info
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False)
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)

    # Limits
    minimum_purchase = db.Column(db.Numeric(10, 2))
    maximum_discount = db.Column(db.Numeric(10, 2))
    usage_limit = db.Column(db.Integer)           # null = unlimited
    customer_usage_limit = db.Column(db.Integer)  # null = unlimited

    # Validity window
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Scope (empty on both = every item)
    applicable_to_categories = db.Column(db.JSON, default=list)
    applicable_to_products = db.Column(db.JSON, default=list)

    # Buy X get Y
    buy_quantity = db.Column(db.Integer)
    get_quantity = db.Column(db.Integer)
    get_discount_type = db.Column(db.String(20))
    get_discount_value = db.Column(db.Numeric(10, 2))

    # Time based
    time_based_type = db.Column(db.String(20))
    active_time_start = db.Column(db.Time)
    active_time_end = db.Column(db.Time)
    active_days = db.Column(db.JSON)      # [0..6], 0 = Sunday
    specific_dates = db.Column(db.JSON)   # ["YYYY-MM-DD", ...]

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    codes = db.relationship('DiscountCode', backref='promotion', lazy='selectin',
                            cascade='all, delete-orphan', order_by='DiscountCode.id')
    store = db.relationship('StoreInfo')

    def __repr__(self):
        return f'<Promotion {self.id}: {self.name}>'

    @property
    def code_list(self) -> List[str]:
        return [c.code for c in self.codes if c.is_active]

    def set_codes(self, codes: List[str]) -> None:
        """Replace the promotion's codes, upper-cased and de-duplicated."""
        wanted = []
        for code in codes:
            normalized = code.strip().upper()
            if normalized and normalized not in wanted:
                wanted.append(normalized)
        existing = {c.code: c for c in self.codes}
        self.codes = [existing.get(code) or DiscountCode(code=code) for code in wanted]

    def in_validity_window(self, now: datetime) -> bool:
        """Active, not deleted and now within [start_date, end_date]."""
        if not self.is_active or self.is_deleted:
            return False
        return self.start_date <= now <= self.end_date

    def in_time_window(self, now: datetime, tz_name: Optional[str] = None) -> bool:
        """
        For time_based promotions, whether `now` (UTC) falls inside the
        configured time of day and day/date set. Other types always pass.
        """
        if self.type != PromotionType.TIME_BASED.value:
            return True

        local = to_store_time(now, tz_name)
        current_time = local.time().replace(microsecond=0)

        if self.active_time_start and self.active_time_end:
            if not (self.active_time_start <= current_time <= self.active_time_end):
                return False

        if self.time_based_type == TimeBasedType.WEEKLY.value:
            # isoweekday: Mon=1..Sun=7; stored days use 0 = Sunday
            day = local.isoweekday() % 7
            if day not in (self.active_days or []):
                return False
        elif self.time_based_type == TimeBasedType.SPECIFIC_DATES.value:
            if local.strftime('%Y-%m-%d') not in (self.specific_dates or []):
                return False

        return True

    def is_active_now(self, now: datetime = None, tz_name: Optional[str] = None) -> bool:
        now = now or utcnow()
        return self.in_validity_window(now) and self.in_time_window(now, tz_name)

    def applies_to_item(self, product_id: str, category_id: Optional[int]) -> bool:
        """Item eligibility: unrestricted, or product listed, or category listed."""
        products = self.applicable_to_products or []
        categories = self.applicable_to_categories or []
        if not products and not categories:
            return True
        if product_id in products:
            return True
        return category_id is not None and category_id in categories

    def to_dict(self) -> Dict[str, Any]:
        """Serialize promotion to dictionary."""
        return {
            'id': self.id,
            'storeInfoId': self.store_id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'discountValue': float(self.discount_value),
            'minimumPurchase': float(self.minimum_purchase) if self.minimum_purchase is not None else None,
            'maximumDiscount': float(self.maximum_discount) if self.maximum_discount is not None else None,
            'startDate': self.start_date.isoformat() if self.start_date else None,
            'endDate': self.end_date.isoformat() if self.end_date else None,
            'usageLimit': self.usage_limit,
            'customerUsageLimit': self.customer_usage_limit,
            'isActive': self.is_active,
            'applicableToCategories': self.applicable_to_categories or [],
            'applicableToProducts': self.applicable_to_products or [],
            'discountCodes': self.code_list,
            'buyQuantity': self.buy_quantity,
            'getQuantity': self.get_quantity,
            'getDiscountType': self.get_discount_type,
            'getDiscountValue': float(self.get_discount_value) if self.get_discount_value is not None else None,
            'timeBasedType': self.time_based_type,
            'activeTimeStart': _format_time(self.active_time_start),
            'activeTimeEnd': _format_time(self.active_time_end),
            'activeDays': self.active_days,
            'specificDates': self.specific_dates,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class DiscountCode(db.Model):
    """A code customers type at checkout. Stored upper-case."""
    __tablename__ = 'discount_codes'

    id = db.Column(db.Integer, primary_key=True)
    promotion_id = db.Column(db.String(36), db.ForeignKey('promotions.id'), nullable=False, index=True)
    code = db.Column(db.String(50), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('promotion_id', 'code', name='uq_discount_codes_promotion_code'),
    )

    def __repr__(self):
        return f'<DiscountCode {self.code}>'


def _format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime('%H:%M:%S') if value else None
