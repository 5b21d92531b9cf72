"""
Order settlement for POS Rewards.

One order request, start to finish:

1. Price the cart from the catalog
2. Look up and validate the discount code (nothing is written on failure)
3. Lock the promotion row and re-check its usage limits, so two checkouts
   cannot both take the last use
4. Persist the order with frozen totals (optionally redeeming points),
   retrying with a fresh order number if another checkout took it
5. Commit, then credit points on the post-discount total

Points crediting happens after the order is committed. If it fails the
order stands and the failure is reported in `warnings`.
"""

from typing import Optional, List, Dict, Any
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StoreInfo, Customer, Order, OrderItem, OrderStatus, Promotion
from ..utils.clock import utcnow
from ..utils.currency import ZERO, round_money
from ..utils.exceptions import (
    ValidationError,
    CustomerNotFoundError,
    StoreNotFoundError,
    PosRewardsError,
    LoyaltyDisabledError,
    PromotionRejectedError,
)
from .cart import resolve_cart_lines, cart_subtotal
from .discount_calculator import DiscountCalculator, DiscountResult
from .loyalty_engine import LoyaltyEngine
from .promotion_catalog import PromotionCatalog


PAYMENT_METHODS = ('cash', 'card', 'mobile', 'gift_card', 'store_credit', 'other')
SETTLEABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.COMPLETED.value)
ORDER_NUMBER_ATTEMPTS = 3


class OrderSettlement:
    """
    Usage:
        settlement = OrderSettlement(store_id)
        result = settlement.settle(items, customer_id='...', discount_code='SAVE10',
                                   payment_method='card')
    """

    def __init__(self, store_id: int):
        self.store_id = store_id
        store = db.session.get(StoreInfo, store_id)
        if store is None:
            raise StoreNotFoundError(store_id)
        self.currency_code = store.currency_code or current_app.config.get('DEFAULT_CURRENCY', 'USD')
        self.timezone = store.timezone
        self.catalog = PromotionCatalog(store_id)
        self.calculator = DiscountCalculator(self.currency_code, self.timezone)
        self.loyalty = LoyaltyEngine(store_id, self.currency_code)

    def settle(
        self,
        items: List[Dict[str, Any]],
        customer_id: Optional[str] = None,
        discount_code: Optional[str] = None,
        payment_method: str = None,
        status: str = OrderStatus.COMPLETED.value,
        order_id: Optional[str] = None,
        points_to_redeem: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create an order, applying a discount code and crediting points.

        Returns:
            Dict with order, discount, loyalty and warnings

        Raises:
            ValidationError: malformed input
            NotFoundError: unknown product, customer or discount code
            PromotionRejectedError: the code failed a promotion check
            BusinessRuleError: points redemption rejected
        """
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}", field='paymentMethod'
            )
        if status not in SETTLEABLE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(SETTLEABLE_STATUSES)}", field='status'
            )
        if points_to_redeem is not None and not customer_id:
            raise ValidationError('customerId is required to redeem points', field='customerId')

        now = utcnow()
        lines = resolve_cart_lines(self.store_id, items)
        subtotal = cart_subtotal(lines)

        if customer_id:
            customer = Customer.active_query().filter_by(id=customer_id, store_id=self.store_id).first()
            if customer is None:
                raise CustomerNotFoundError(customer_id)
        if customer_id and points_to_redeem is not None:
            # settings row must exist before the order transaction starts
            self.loyalty.get_settings()

        discount = DiscountResult(valid=False)
        promotion = None
        code = None
        if discount_code:
            promotion = self.catalog.find_active_promotion_by_code(discount_code, now)
            code = discount_code.strip().upper()
            discount = self._check(promotion, customer_id, lines, now)

        if order_id and db.session.get(Order, order_id) is not None:
            raise ValidationError(f'Order {order_id} already exists', field='orderId')

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = self._next_order_number(now)
            try:
                order, promotion, discount, redemption = self._persist_order(
                    order_number, lines, subtotal, promotion, discount, code, customer_id,
                    payment_method, status, order_id, points_to_redeem, now,
                )
                db.session.commit()
                break
            except IntegrityError:
                db.session.rollback()
                if attempt == ORDER_NUMBER_ATTEMPTS or not self._order_number_taken(order_number):
                    raise
                current_app.logger.warning(
                    f'[Orders] Order number {order_number} taken for store {self.store_id}; retrying'
                )
            except Exception:
                db.session.rollback()
                raise

        current_app.logger.info(
            f'[Orders] Settled order {order.order_number} for store {self.store_id}: '
            f'subtotal {order.subtotal}, discount {order.discount_amount}, total {order.total}'
        )

        warnings = []
        earned = None
        if customer_id and status == OrderStatus.COMPLETED.value:
            try:
                earned = self.loyalty.earn(customer_id, order.id, order.total)
            except LoyaltyDisabledError:
                current_app.logger.info(f'[Orders] Loyalty disabled; no points for order {order.id}')
            except PosRewardsError as e:
                db.session.rollback()
                self._warn(warnings, order, e.message)
            except Exception as e:
                db.session.rollback()
                current_app.logger.exception(f'[Orders] Points credit failed for order {order.id}')
                self._warn(warnings, order, str(e))

        return {
            'order': order,
            'discount': discount,
            'promotion': promotion,
            'redemption': redemption,
            'earned': earned,
            'warnings': warnings,
        }

    def _persist_order(self, order_number, lines, subtotal, promotion, discount, code, customer_id,
                       payment_method, status, order_id, points_to_redeem, now):
        if promotion is not None:
            # serialize checkouts on this promotion, then count again
            promotion = Promotion.query.filter_by(id=promotion.id).with_for_update().one()
            discount = self._check(promotion, customer_id, lines, now)

        discount_amount = discount.discount_amount if discount.valid else ZERO
        order = Order(
            store_id=self.store_id,
            order_number=order_number,
            subtotal=round_money(subtotal, self.currency_code),
            discount_amount=discount_amount,
            loyalty_discount=ZERO,
            total=round_money(subtotal - discount_amount, self.currency_code),
            promotion_id=promotion.id if promotion is not None else None,
            discount_code=code,
            customer_id=customer_id,
            payment_method=payment_method,
            status=status,
            created_at=now,
        )
        if order_id:
            order.id = order_id
        for line in lines:
            line_discount = discount.line_discounts.get(line.product_id, ZERO)
            order.items.append(OrderItem(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                discount_amount=line_discount,
                final_price=line.line_total - line_discount,
            ))
        db.session.add(order)
        db.session.flush()

        redemption = None
        if points_to_redeem is not None:
            redemption = self.loyalty.redeem(customer_id, points_to_redeem, order_id=order.id, commit=False)
            loyalty_discount = min(redemption['discount_value'], order.total)
            order.loyalty_discount = loyalty_discount
            order.total = order.total - loyalty_discount
        return order, promotion, discount, redemption

    def _check(self, promotion: Promotion, customer_id: Optional[str], lines, now) -> DiscountResult:
        result = self.calculator.validate_and_compute(promotion, customer_id, lines, now)
        if not result.valid:
            current_app.logger.warning(
                f'[Orders] Promotion {promotion.id} rejected for store {self.store_id}: {result.reason}'
            )
            raise PromotionRejectedError(result.reason)
        return result

    def _warn(self, warnings: list, order: Order, detail: str) -> None:
        current_app.logger.error(f'[Orders] Points not credited for order {order.id}: {detail}')
        warnings.append({
            'code': 'points_not_credited',
            'message': f'Order saved but loyalty points were not credited: {detail}',
        })

    def _next_order_number(self, now) -> str:
        """ORD-YYYYMMDD-NNNN, sequential per store and day."""
        prefix = f"ORD-{now.strftime('%Y%m%d')}-"
        latest = db.session.query(func.max(Order.order_number)).filter(
            Order.store_id == self.store_id,
            Order.order_number.like(f'{prefix}%')
        ).scalar()
        sequence = int(latest[len(prefix):]) + 1 if latest else 1
        return f'{prefix}{sequence:04d}'

    def _order_number_taken(self, order_number: str) -> bool:
        return db.session.query(
            Order.query.filter_by(store_id=self.store_id, order_number=order_number).exists()
        ).scalar()
