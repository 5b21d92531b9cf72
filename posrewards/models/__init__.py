"""
Database models for POS Rewards.
"""
from .store import StoreInfo, Customer, SoftDeleteMixin
from .catalog import Category, Product
from .promotions import Promotion, DiscountCode, PromotionType, GetDiscountType, TimeBasedType
from .order import Order, OrderItem, OrderStatus
from .loyalty import LoyaltySettings, PointsAccount, LedgerEntry, LedgerEntryType

__all__ = [
    'StoreInfo',
    'Customer',
    'SoftDeleteMixin',
    'Category',
    'Product',
    'Promotion',
    'DiscountCode',
    'PromotionType',
    'GetDiscountType',
    'TimeBasedType',
    'Order',
    'OrderItem',
    'OrderStatus',
    'LoyaltySettings',
    'PointsAccount',
    'LedgerEntry',
    'LedgerEntryType',
]
