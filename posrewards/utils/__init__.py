"""
Utility modules for POS Rewards.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    not_found,
    internal_error
)
from .exceptions import (
    PosRewardsError,
    ValidationError,
    NotFoundError,
    StoreNotFoundError,
    CustomerNotFoundError,
    PromotionNotFoundError,
    DiscountCodeNotFoundError,
    BusinessRuleError,
    LoyaltyDisabledError,
    BelowMinimumRedemptionError,
    InsufficientPointsError,
    NegativeBalanceError,
    PromotionRejectedError,
    AuthorizationError
)
from .currency import format_money, round_money, to_decimal
from .clock import utcnow

__all__ = [
    'setup_logging',
    'ErrorCode',
    'error_response',
    'bad_request',
    'not_found',
    'internal_error',
    'PosRewardsError',
    'ValidationError',
    'NotFoundError',
    'StoreNotFoundError',
    'CustomerNotFoundError',
    'PromotionNotFoundError',
    'DiscountCodeNotFoundError',
    'BusinessRuleError',
    'LoyaltyDisabledError',
    'BelowMinimumRedemptionError',
    'InsufficientPointsError',
    'NegativeBalanceError',
    'PromotionRejectedError',
    'AuthorizationError',
    'format_money',
    'round_money',
    'to_decimal',
    'utcnow',
]
