"""
Discount calculation for POS Rewards.

validate_and_compute() runs the promotion checks in a fixed order and stops
at the first failure:

    1. promotion active and inside its window     -> expired_or_inactive
    2. eligible subtotal >= minimum purchase      -> minimum_purchase_not_met
    3. total usage < usage limit                  -> usage_limit_reached
    4. customer usage < customer usage limit      -> customer_usage_limit_reached
    5. computed discount > 0                      -> no_eligible_items

The discount never exceeds the eligible subtotal and is rounded half-up to
the store currency's minor unit.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from ..models import Promotion, PromotionType, GetDiscountType
from ..utils.clock import utcnow
from ..utils.currency import ZERO, round_money
from .cart import CartLine
from .promotion_catalog import get_usage_count


HUNDRED = Decimal('100')


@dataclass
class DiscountResult:
    valid: bool
    discount_amount: Decimal = ZERO
    eligible_items: List[CartLine] = field(default_factory=list)
    reason: Optional[str] = None
    line_discounts: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def eligible_subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.eligible_items), ZERO)

    @classmethod
    def rejected(cls, reason: str) -> 'DiscountResult':
        return cls(valid=False, reason=reason)


class DiscountCalculator:
    """
    Computes the discount a promotion gives an order.

    Usage counts come from `usage_counter(promotion_id, customer_id=None)`,
    which defaults to counting orders in the database.
    """

    def __init__(self, currency_code: str = 'USD', timezone: Optional[str] = None,
                 usage_counter: Callable[..., int] = None):
        self.currency_code = currency_code
        self.timezone = timezone
        self.usage_counter = usage_counter or get_usage_count

    def validate_and_compute(
        self,
        promotion: Optional[Promotion],
        customer_id: Optional[str],
        order_items: List[CartLine],
        now: datetime = None
    ) -> DiscountResult:
        now = now or utcnow()

        if promotion is None or not promotion.is_active_now(now, self.timezone):
            return DiscountResult.rejected('expired_or_inactive')

        eligible = [
            line for line in order_items
            if promotion.applies_to_item(line.product_id, line.category_id)
        ]
        eligible_subtotal = sum((line.line_total for line in eligible), ZERO)

        if promotion.minimum_purchase is not None and eligible_subtotal < Decimal(promotion.minimum_purchase):
            return DiscountResult.rejected('minimum_purchase_not_met')

        if promotion.usage_limit is not None:
            if self.usage_counter(promotion.id) >= promotion.usage_limit:
                return DiscountResult.rejected('usage_limit_reached')

        if customer_id and promotion.customer_usage_limit is not None:
            if self.usage_counter(promotion.id, customer_id) >= promotion.customer_usage_limit:
                return DiscountResult.rejected('customer_usage_limit_reached')

        if promotion.type == PromotionType.BUY_X_GET_Y.value:
            weights = self._bogo_discounts(promotion, eligible)
            amount = sum(weights.values(), ZERO)
        else:
            amount = self._amount_off(promotion, eligible_subtotal)
            weights = {line.product_id: line.line_total for line in eligible}

        amount = round_money(min(max(amount, ZERO), eligible_subtotal), self.currency_code)
        if amount <= ZERO:
            return DiscountResult.rejected('no_eligible_items')

        return DiscountResult(
            valid=True,
            discount_amount=amount,
            eligible_items=eligible,
            line_discounts=self._allocate(amount, weights),
        )

    # ==================== Amounts ====================

    def _amount_off(self, promotion: Promotion, eligible_subtotal: Decimal) -> Decimal:
        value = Decimal(promotion.discount_value)

        if promotion.type == PromotionType.PERCENTAGE.value:
            amount = eligible_subtotal * value / HUNDRED
        elif promotion.type == PromotionType.FIXED_AMOUNT.value:
            return min(value, eligible_subtotal)
        elif promotion.type == PromotionType.TIME_BASED.value:
            # values up to 100 are a percentage, above that a flat amount
            if value <= HUNDRED:
                amount = eligible_subtotal * value / HUNDRED
            else:
                amount = min(value, eligible_subtotal)
        else:
            return ZERO

        if promotion.maximum_discount is not None:
            amount = min(amount, Decimal(promotion.maximum_discount))
        return amount

    def _bogo_discounts(self, promotion: Promotion, eligible: List[CartLine]) -> Dict[str, Decimal]:
        """
        Buy X get Y: every full group of (buy + get) units frees `get` units,
        always the cheapest ones in the cart.
        """
        buy = promotion.buy_quantity or 0
        get = promotion.get_quantity or 0
        if buy < 1 or get < 1:
            return {}

        units = []
        for line in eligible:
            units.extend([(line.unit_price, line.product_id)] * line.quantity)
        free_units = (len(units) // (buy + get)) * get
        if free_units <= 0:
            return {}

        units.sort(key=lambda unit: unit[0])
        get_value = Decimal(promotion.get_discount_value or 0)

        discounts: Dict[str, Decimal] = {}
        for price, product_id in units[:free_units]:
            if promotion.get_discount_type == GetDiscountType.PERCENTAGE.value:
                unit_discount = price * get_value / HUNDRED
            elif promotion.get_discount_type == GetDiscountType.FIXED_AMOUNT.value:
                unit_discount = min(get_value, price)
            else:
                unit_discount = price
            discounts[product_id] = discounts.get(product_id, ZERO) + unit_discount
        return discounts

    def _allocate(self, amount: Decimal, weights: Dict[str, Decimal]) -> Dict[str, Decimal]:
        """Spread the order discount over lines in proportion to their weight."""
        total_weight = sum(weights.values(), ZERO)
        if total_weight <= ZERO:
            return {}

        allocation = {}
        remaining = amount
        keys = [k for k, w in weights.items() if w > ZERO]
        for index, product_id in enumerate(keys):
            if index == len(keys) - 1:
                share = remaining
            else:
                share = round_money(amount * weights[product_id] / total_weight, self.currency_code)
                share = min(share, remaining)
            allocation[product_id] = share
            remaining -= share
        return allocation
