"""
Loyalty API endpoints for POS Rewards.

Handles:
- Store loyalty settings
- Customer points balance and history
- Earning, redeeming and manual adjustments
"""
from flask import Blueprint, request, jsonify, g

from ..middleware.auth import require_auth
from ..services.loyalty_engine import LoyaltyEngine
from ..utils.exceptions import ValidationError
from .request_utils import get_json_body, require_fields

loyalty_bp = Blueprint('loyalty', __name__)

SETTINGS_FIELDS = {
    'pointsPerDollar': 'points_per_dollar',
    'redemptionRate': 'redemption_rate',
    'minimumRedemption': 'minimum_redemption',
    'pointsExpiryMonths': 'points_expiry_months',
    'enabled': 'enabled',
}


# ==============================================================================
# SETTINGS
# ==============================================================================

@loyalty_bp.route('/settings', methods=['GET'])
@require_auth
def get_settings():
    """Store loyalty settings (defaults are created on first read)."""
    settings = LoyaltyEngine(g.store_id, g.store.currency_code).get_settings()
    return jsonify(settings.to_dict())


@loyalty_bp.route('/settings', methods=['PUT'])
@require_auth
def update_settings():
    """
    Partial settings update.

    Request body (all optional):
        pointsPerDollar, redemptionRate, minimumRedemption,
        pointsExpiryMonths (null = never), enabled
    """
    data = get_json_body()
    unknown = set(data) - set(SETTINGS_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown settings field: {', '.join(sorted(unknown))}")

    changes = {SETTINGS_FIELDS[key]: value for key, value in data.items()}
    settings = LoyaltyEngine(g.store_id, g.store.currency_code).update_settings(**changes)
    return jsonify(settings.to_dict())


# ==============================================================================
# BALANCE & HISTORY
# ==============================================================================

@loyalty_bp.route('/customers/<customer_id>/points', methods=['GET'])
@require_auth
def get_customer_points(customer_id):
    """Points balance with lifetime totals. Zeroes for a customer with no activity."""
    account = LoyaltyEngine(g.store_id, g.store.currency_code).get_balance(customer_id)
    return jsonify(account.to_dict())


@loyalty_bp.route('/customers/<customer_id>/transactions', methods=['GET'])
@require_auth
def get_customer_transactions(customer_id):
    """
    Ledger entries, newest first.

    Query params:
        limit: Max entries (optional, 1-500)
    """
    limit = request.args.get('limit')
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            raise ValidationError('limit must be an integer', field='limit')
        if limit < 1 or limit > 500:
            raise ValidationError('limit must be between 1 and 500', field='limit')

    entries = LoyaltyEngine(g.store_id, g.store.currency_code).get_history(customer_id, limit=limit)
    return jsonify([entry.to_dict() for entry in entries])


# ==============================================================================
# LEDGER OPERATIONS
# ==============================================================================

@loyalty_bp.route('/earn', methods=['POST'])
@require_auth
def earn_points():
    """
    Credit points for an order.

    Request body:
        customerId: Customer ID (required)
        orderId: Order ID (required)
        amount: Purchase amount (required)
    """
    data = get_json_body()
    require_fields(data, ('customerId', 'orderId', 'amount'))

    result = LoyaltyEngine(g.store_id, g.store.currency_code).earn(
        data['customerId'], data['orderId'], data['amount']
    )
    return jsonify({
        'pointsEarned': result['points_earned'],
        'newBalance': result['new_balance'],
        'duplicate': result['duplicate'],
        'transaction': result['transaction'].to_dict(),
    })


@loyalty_bp.route('/redeem', methods=['POST'])
@require_auth
def redeem_points():
    """
    Spend points for a discount.

    Request body:
        customerId: Customer ID (required)
        pointsToRedeem: Points (required)
        orderId: Order ID (optional)
    """
    data = get_json_body()
    require_fields(data, ('customerId', 'pointsToRedeem'))

    result = LoyaltyEngine(g.store_id, g.store.currency_code).redeem(
        data['customerId'], data['pointsToRedeem'], order_id=data.get('orderId')
    )
    return jsonify({
        'discountValue': float(result['discount_value']),
        'newBalance': result['new_balance'],
        'transaction': result['transaction'].to_dict(),
    })


@loyalty_bp.route('/adjust', methods=['POST'])
@require_auth
def adjust_points():
    """
    Manual points correction.

    Request body:
        customerId: Customer ID (required)
        points: Signed, non-zero delta (required)
        description: Reason (optional)
    """
    data = get_json_body()
    require_fields(data, ('customerId', 'points'))

    result = LoyaltyEngine(g.store_id, g.store.currency_code).adjust(
        data['customerId'], data['points'], data.get('description')
    )
    return jsonify({
        'newBalance': result['new_balance'],
        'transaction': result['transaction'].to_dict(),
    })
