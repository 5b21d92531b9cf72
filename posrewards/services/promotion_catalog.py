"""
Promotion catalog for POS Rewards.

Store-scoped lookup, listing and management of promotions:
- Code lookup for checkout (active, not deleted, inside the validity window)
- CRUD with field validation (soft delete)
- Usage counting, always derived from orders
- Per-promotion stats
"""

from datetime import datetime, time
from decimal import Decimal
from typing import Optional, List, Dict, Any
from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Promotion, DiscountCode, Order, PromotionType, GetDiscountType, TimeBasedType
from ..utils.clock import utcnow, parse_datetime
from ..utils.currency import to_decimal
from ..utils.exceptions import ValidationError, PromotionNotFoundError, DiscountCodeNotFoundError


REQUIRED_FIELDS = ('name', 'type', 'discountValue', 'startDate', 'endDate')


def get_usage_count(promotion_id: str, customer_id: Optional[str] = None) -> int:
    """Number of orders referencing the promotion (optionally for one customer)."""
    query = db.session.query(func.count(Order.id)).filter(Order.promotion_id == promotion_id)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    return query.scalar() or 0


class PromotionCatalog:
    """
    Store-scoped promotion lookup and management.

    Usage:
        catalog = PromotionCatalog(store_id)
        promotion = catalog.find_active_promotion_by_code('SAVE10')
    """

    def __init__(self, store_id: int):
        self.store_id = store_id

    # ==================== Lookup ====================

    def _active_filter(self, query, now: datetime):
        return query.filter(
            Promotion.store_id == self.store_id,
            Promotion.is_active.is_(True),
            Promotion.deleted_at.is_(None),
            Promotion.start_date <= now,
            Promotion.end_date >= now,
        )

    def find_active_promotion_by_code(self, code: str, now: datetime = None) -> Promotion:
        """
        Find the active promotion carrying `code` (case-insensitive).

        When several active promotions share the code, the most recently
        created one wins.

        Raises:
            DiscountCodeNotFoundError: no active promotion carries the code
        """
        if not code or not isinstance(code, str):
            raise ValidationError('code is required', field='code')
        now = now or utcnow()
        normalized = code.strip().upper()

        query = Promotion.query.join(DiscountCode, DiscountCode.promotion_id == Promotion.id).filter(
            DiscountCode.code == normalized,
            DiscountCode.is_active.is_(True),
        )
        promotion = self._active_filter(query, now).order_by(Promotion.created_at.desc()).first()
        if promotion is None:
            raise DiscountCodeNotFoundError(normalized)
        return promotion

    def list_active(self, now: datetime = None) -> List[Promotion]:
        """Promotions currently inside their validity window, in creation order."""
        now = now or utcnow()
        return self._active_filter(Promotion.query, now).order_by(Promotion.created_at.asc()).all()

    def list_promotions(self, active_only: bool = False) -> List[Promotion]:
        """All non-deleted promotions, newest first (or only active ones)."""
        if active_only:
            return self.list_active()
        return Promotion.active_query().filter(
            Promotion.store_id == self.store_id
        ).order_by(Promotion.created_at.desc()).all()

    def get_promotion(self, promotion_id: str, include_deleted: bool = False) -> Promotion:
        query = Promotion.query.filter_by(id=promotion_id, store_id=self.store_id)
        if not include_deleted:
            query = query.filter(Promotion.deleted_at.is_(None))
        promotion = query.first()
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        return promotion

    # ==================== Management ====================

    def create_promotion(self, data: Dict[str, Any]) -> Promotion:
        """
        Create a promotion from a camelCase request body.

        Raises:
            ValidationError: on missing or invalid fields
        """
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')

        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

        promotion = Promotion(store_id=self.store_id, is_active=True,
                              applicable_to_categories=[], applicable_to_products=[])
        _apply_fields(promotion, data)
        _validate_promotion(promotion)

        db.session.add(promotion)
        db.session.commit()

        current_app.logger.info(
            f'[Promotions] Created promotion {promotion.id} ({promotion.type}) for store {self.store_id}'
        )
        return promotion

    def update_promotion(self, promotion_id: str, data: Dict[str, Any]) -> Promotion:
        """Partial update; the resulting promotion is re-validated as a whole."""
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')

        promotion = self.get_promotion(promotion_id)
        for field in REQUIRED_FIELDS:
            if field in data and data[field] in (None, ''):
                raise ValidationError(f'{field} cannot be empty', field=field)

        try:
            _apply_fields(promotion, data)
            _validate_promotion(promotion)
        except ValidationError:
            db.session.rollback()
            raise

        db.session.commit()
        current_app.logger.info(f'[Promotions] Updated promotion {promotion.id}')
        return promotion

    def delete_promotion(self, promotion_id: str) -> Promotion:
        """Soft delete. The row stays so orders keep resolving their promotion."""
        promotion = self.get_promotion(promotion_id)
        promotion.soft_delete()
        db.session.commit()
        current_app.logger.info(f'[Promotions] Deleted promotion {promotion.id}')
        return promotion

    # ==================== Usage ====================

    def get_usage_count(self, promotion_id: str, customer_id: Optional[str] = None) -> int:
        return get_usage_count(promotion_id, customer_id)

    def get_promotion_stats(self, promotion_id: str) -> Dict[str, Any]:
        """Usage statistics derived from orders."""
        promotion = self.get_promotion(promotion_id, include_deleted=True)

        total_usage, total_discount, unique_customers = db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.discount_amount), 0),
            func.count(func.distinct(Order.customer_id)),
        ).filter(Order.promotion_id == promotion.id).one()

        remaining = None
        if promotion.usage_limit is not None:
            remaining = max(0, promotion.usage_limit - total_usage)

        return {
            'promotionId': promotion.id,
            'totalUsage': total_usage,
            'totalDiscount': float(total_discount or 0),
            'uniqueCustomers': unique_customers,
            'remainingUsage': remaining,
        }


# ==================== Field parsing ====================

def _parse_number(data: Dict[str, Any], field: str, minimum: Decimal = Decimal('0')) -> Optional[Decimal]:
    value = data.get(field)
    if value is None:
        return None
    try:
        number = to_decimal(value, field)
    except ValueError as e:
        raise ValidationError(str(e), field=field)
    if number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)
    return number


def _parse_int(data: Dict[str, Any], field: str, minimum: int = 1) -> Optional[int]:
    value = data.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer', field=field)
    if value < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)
    return value


def _parse_date(data: Dict[str, Any], field: str) -> datetime:
    try:
        return parse_datetime(data[field])
    except ValueError:
        raise ValidationError(f'Invalid date format for {field}', field=field)


def _parse_time(data: Dict[str, Any], field: str) -> Optional[time]:
    value = data.get(field)
    if not value:
        return None
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be HH:MM or HH:MM:SS', field=field)


def _parse_list(data: Dict[str, Any], field: str, item_type: type) -> list:
    value = data.get(field)
    if value is None:
        return []
    if not isinstance(value, list) or not all(
        isinstance(v, item_type) and not isinstance(v, bool) for v in value
    ):
        raise ValidationError(f'{field} must be a list of {item_type.__name__}', field=field)
    return list(value)


def _apply_fields(promotion: Promotion, data: Dict[str, Any]) -> None:
    """Copy present request fields onto the model, validating each one."""
    if 'name' in data:
        if not isinstance(data['name'], str) or not data['name'].strip():
            raise ValidationError('name must be a non-empty string', field='name')
        promotion.name = data['name'].strip()
    if 'description' in data:
        promotion.description = data['description']
    if 'type' in data:
        if data['type'] not in {t.value for t in PromotionType}:
            raise ValidationError(
                f"type must be one of: {', '.join(t.value for t in PromotionType)}", field='type'
            )
        promotion.type = data['type']
    if 'discountValue' in data:
        promotion.discount_value = _parse_number(data, 'discountValue')
    if 'minimumPurchase' in data:
        promotion.minimum_purchase = _parse_number(data, 'minimumPurchase')
    if 'maximumDiscount' in data:
        promotion.maximum_discount = _parse_number(data, 'maximumDiscount')
    if 'usageLimit' in data:
        promotion.usage_limit = _parse_int(data, 'usageLimit')
    if 'customerUsageLimit' in data:
        promotion.customer_usage_limit = _parse_int(data, 'customerUsageLimit')
    if 'startDate' in data:
        promotion.start_date = _parse_date(data, 'startDate')
    if 'endDate' in data:
        promotion.end_date = _parse_date(data, 'endDate')
    if 'isActive' in data:
        if not isinstance(data['isActive'], bool):
            raise ValidationError('isActive must be a boolean', field='isActive')
        promotion.is_active = data['isActive']
    if 'applicableToCategories' in data:
        promotion.applicable_to_categories = _parse_list(data, 'applicableToCategories', int)
    if 'applicableToProducts' in data:
        promotion.applicable_to_products = _parse_list(data, 'applicableToProducts', str)
    if 'discountCodes' in data:
        promotion.set_codes(_parse_list(data, 'discountCodes', str))

    # Buy X get Y
    if 'buyQuantity' in data:
        promotion.buy_quantity = _parse_int(data, 'buyQuantity')
    if 'getQuantity' in data:
        promotion.get_quantity = _parse_int(data, 'getQuantity')
    if 'getDiscountType' in data:
        promotion.get_discount_type = data['getDiscountType']
    if 'getDiscountValue' in data:
        promotion.get_discount_value = _parse_number(data, 'getDiscountValue')

    # Time based
    if 'timeBasedType' in data:
        promotion.time_based_type = data['timeBasedType']
    if 'activeTimeStart' in data:
        promotion.active_time_start = _parse_time(data, 'activeTimeStart')
    if 'activeTimeEnd' in data:
        promotion.active_time_end = _parse_time(data, 'activeTimeEnd')
    if 'activeDays' in data:
        days = _parse_list(data, 'activeDays', int)
        if any(d < 0 or d > 6 for d in days):
            raise ValidationError('activeDays must contain values 0-6 (0 = Sunday)', field='activeDays')
        promotion.active_days = sorted(set(days))
    if 'specificDates' in data:
        dates = _parse_list(data, 'specificDates', str)
        for value in dates:
            try:
                datetime.strptime(value, '%Y-%m-%d')
            except ValueError:
                raise ValidationError('specificDates must be YYYY-MM-DD strings', field='specificDates')
        promotion.specific_dates = dates


def _validate_promotion(promotion: Promotion) -> None:
    """Cross-field checks on the fully populated promotion."""
    if promotion.end_date < promotion.start_date:
        raise ValidationError('endDate must not be before startDate', field='endDate')

    if promotion.type == PromotionType.PERCENTAGE.value and promotion.discount_value > 100:
        raise ValidationError('Percentage discount must be between 0 and 100', field='discountValue')

    if promotion.type == PromotionType.BUY_X_GET_Y.value:
        if not promotion.buy_quantity or not promotion.get_quantity:
            raise ValidationError(
                'Buy X Get Y promotions require buyQuantity and getQuantity', field='buyQuantity'
            )
        if promotion.get_discount_type not in {t.value for t in GetDiscountType}:
            raise ValidationError(
                'getDiscountType must be one of: free, percentage, fixed_amount', field='getDiscountType'
            )
        if promotion.get_discount_type != GetDiscountType.FREE.value:
            if promotion.get_discount_value is None:
                raise ValidationError(
                    'getDiscountValue is required unless getDiscountType is free', field='getDiscountValue'
                )
            if (promotion.get_discount_type == GetDiscountType.PERCENTAGE.value
                    and promotion.get_discount_value > 100):
                raise ValidationError(
                    'getDiscountValue percentage must be between 0 and 100', field='getDiscountValue'
                )

    if promotion.type == PromotionType.TIME_BASED.value:
        if promotion.time_based_type not in {t.value for t in TimeBasedType}:
            raise ValidationError(
                'timeBasedType must be one of: daily, weekly, specific_dates', field='timeBasedType'
            )
        if not promotion.active_time_start or not promotion.active_time_end:
            raise ValidationError(
                'Time based promotions require activeTimeStart and activeTimeEnd', field='activeTimeStart'
            )
        if promotion.time_based_type == TimeBasedType.WEEKLY.value and not promotion.active_days:
            raise ValidationError('Weekly promotions require activeDays', field='activeDays')
        if promotion.time_based_type == TimeBasedType.SPECIFIC_DATES.value and not promotion.specific_dates:
            raise ValidationError('specific_dates promotions require specificDates', field='specificDates')
