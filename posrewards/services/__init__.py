"""
Business logic services for POS Rewards.
"""
from .loyalty_engine import LoyaltyEngine
from .promotion_catalog import PromotionCatalog
from .discount_calculator import DiscountCalculator, DiscountResult
from .order_settlement import OrderSettlement

__all__ = [
    'LoyaltyEngine',
    'PromotionCatalog',
    'DiscountCalculator',
    'DiscountResult',
    'OrderSettlement'
]
