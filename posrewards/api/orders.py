"""
Orders API for POS Rewards.

Order creation goes through OrderSettlement: discount code, optional points
redemption, persistence and points crediting in one request.
"""
from flask import Blueprint, jsonify, g

from ..middleware.auth import require_auth
from ..models import OrderStatus
from ..services.order_settlement import OrderSettlement
from .request_utils import get_json_body, require_fields

orders_bp = Blueprint('orders', __name__)


@orders_bp.route('', methods=['POST'])
@require_auth
def create_order():
    """
    Settle a new order.

    Request body:
        items: [{productId, quantity}] (required)
        paymentMethod: cash, card, mobile, gift_card, store_credit, other (required)
        customerId: Customer ID (optional)
        discountCode: Discount code (optional)
        pointsToRedeem: Points to spend on this order (optional, needs customerId)
        status: pending or completed (default completed)
        orderId: Client-generated order id (optional)

    Returns:
        201 with order, discount, loyalty and warnings. Warnings are set when
        the order was saved but points could not be credited.
    """
    data = get_json_body()
    require_fields(data, ('items', 'paymentMethod'))

    result = OrderSettlement(g.store_id).settle(
        data['items'],
        customer_id=data.get('customerId'),
        discount_code=data.get('discountCode'),
        payment_method=data['paymentMethod'],
        status=data.get('status', OrderStatus.COMPLETED.value),
        order_id=data.get('orderId'),
        points_to_redeem=data.get('pointsToRedeem'),
    )

    discount = result['discount']
    promotion = result['promotion']
    redemption = result['redemption']
    earned = result['earned']

    return jsonify({
        'order': result['order'].to_dict(),
        'discount': {
            'applied': discount.valid,
            'promotionId': promotion.id if promotion is not None else None,
            'discountCode': result['order'].discount_code,
            'discountAmount': float(discount.discount_amount),
        },
        'loyalty': {
            'pointsRedeemed': -redemption['transaction'].points if redemption else 0,
            'redemptionValue': float(redemption['discount_value']) if redemption else 0.0,
            'pointsEarned': earned['points_earned'] if earned else 0,
            'newBalance': earned['new_balance'] if earned else (
                redemption['new_balance'] if redemption else None
            ),
        },
        'warnings': result['warnings'],
    }), 201
