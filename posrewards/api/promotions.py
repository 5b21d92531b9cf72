"""
Promotions API for POS Rewards.

Endpoints for:
- Discount code validation (preview only, never reserves a use)
- Promotion management (CRUD, soft delete)
- Per-promotion usage stats
"""

from flask import Blueprint, request, jsonify, g

from ..middleware.auth import require_auth
from ..services.cart import resolve_cart_lines
from ..services.discount_calculator import DiscountCalculator
from ..services.promotion_catalog import PromotionCatalog
from ..utils.clock import utcnow
from ..utils.exceptions import NotFoundError, PromotionRejectedError
from .request_utils import get_json_body, require_fields


promotions_bp = Blueprint('promotions', __name__)


def _check_store(store_info_id) -> None:
    """Path/body store ids must be the caller's own store."""
    if store_info_id is not None and str(store_info_id) != str(g.store_id):
        raise NotFoundError('Store', store_info_id)


# ==================== Code Validation ====================

@promotions_bp.route('/validate-code', methods=['POST'])
@require_auth
def validate_code():
    """
    Check a discount code against a cart.

    Request body:
        code: Discount code (required, case-insensitive)
        orderItems: [{productId, quantity}] (required)
        customerId: Customer ID (optional, enables per-customer limits)
        storeInfoId: Store ID (required, must match the caller's store)

    Returns 404 for an unknown or inactive code, 400 with `reason` when a
    promotion check fails.
    """
    data = get_json_body()
    require_fields(data, ('code', 'storeInfoId', 'orderItems'))
    _check_store(data['storeInfoId'])

    store = g.store
    now = utcnow()
    promotion = PromotionCatalog(store.id).find_active_promotion_by_code(data['code'], now)
    lines = resolve_cart_lines(store.id, data['orderItems'])

    calculator = DiscountCalculator(store.currency_code, store.timezone)
    result = calculator.validate_and_compute(promotion, data.get('customerId'), lines, now)
    if not result.valid:
        raise PromotionRejectedError(result.reason)

    return jsonify({
        'valid': True,
        'promotion': {
            'id': promotion.id,
            'name': promotion.name,
            'type': promotion.type,
            'discountValue': float(promotion.discount_value),
        },
        'discountAmount': float(result.discount_amount),
        'discountCode': data['code'].strip().upper(),
        'eligibleItems': [line.to_dict() for line in result.eligible_items],
    })


# ==================== Promotions CRUD ====================

@promotions_bp.route('/detail/<promotion_id>', methods=['GET'])
@require_auth
def get_promotion(promotion_id):
    """Get a single promotion."""
    promotion = PromotionCatalog(g.store_id).get_promotion(promotion_id)
    return jsonify(promotion.to_dict())


@promotions_bp.route('/detail/<promotion_id>', methods=['PUT'])
@require_auth
def update_promotion(promotion_id):
    """Partial update of a promotion."""
    data = get_json_body()
    promotion = PromotionCatalog(g.store_id).update_promotion(promotion_id, data)
    return jsonify(promotion.to_dict())


@promotions_bp.route('/detail/<promotion_id>', methods=['DELETE'])
@require_auth
def delete_promotion(promotion_id):
    """Soft delete a promotion."""
    PromotionCatalog(g.store_id).delete_promotion(promotion_id)
    return jsonify({'success': True, 'message': 'Promotion deleted successfully'})


@promotions_bp.route('/stats/<promotion_id>', methods=['GET'])
@require_auth
def get_promotion_stats(promotion_id):
    """Usage stats derived from orders."""
    return jsonify(PromotionCatalog(g.store_id).get_promotion_stats(promotion_id))


@promotions_bp.route('/<int:store_info_id>', methods=['GET'])
@require_auth
def list_promotions(store_info_id: int):
    """
    List the store's promotions, newest first.

    Query params:
        active: 'true' for only promotions inside their validity window
    """
    _check_store(store_info_id)
    active_only = request.args.get('active', '').lower() == 'true'
    promotions = PromotionCatalog(g.store_id).list_promotions(active_only=active_only)
    return jsonify([p.to_dict() for p in promotions])


@promotions_bp.route('/<int:store_info_id>', methods=['POST'])
@require_auth
def create_promotion(store_info_id: int):
    """
    Create a promotion.

    Request body:
        name, type, discountValue, startDate, endDate (required)
        description, minimumPurchase, maximumDiscount, usageLimit,
        customerUsageLimit, isActive, applicableToCategories,
        applicableToProducts, discountCodes
        buyQuantity, getQuantity, getDiscountType, getDiscountValue (buy_x_get_y)
        timeBasedType, activeTimeStart, activeTimeEnd, activeDays,
        specificDates (time_based)
    """
    _check_store(store_info_id)
    data = get_json_body()
    promotion = PromotionCatalog(g.store_id).create_promotion(data)
    return jsonify(promotion.to_dict()), 201
