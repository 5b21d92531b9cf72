"""
Custom exceptions for POS Rewards business logic.

Services raise these; the error handlers registered in create_app() turn
them into the standard JSON error envelope with the matching HTTP status.
"""


class PosRewardsError(Exception):
    """Base exception for all POS Rewards business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "POS_REWARDS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(PosRewardsError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = "MISSING_FIELD" if field and 'required' in message.lower() else "VALIDATION_ERROR"
        super().__init__(message, code)


class NotFoundError(PosRewardsError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class StoreNotFoundError(NotFoundError):
    """The authenticated principal has no store set up."""

    def __init__(self, identifier=None):
        super().__init__("Store", identifier)


class CustomerNotFoundError(NotFoundError):
    """Customer not found."""

    def __init__(self, identifier=None):
        super().__init__("Customer", identifier)


class PromotionNotFoundError(NotFoundError):
    """Promotion not found."""

    def __init__(self, identifier=None):
        super().__init__("Promotion", identifier)


class DiscountCodeNotFoundError(NotFoundError):
    """No active promotion carries the given code."""

    def __init__(self, code: str):
        super().__init__("Discount code")
        self.message = f"Invalid discount code: {code}"


class BusinessRuleError(PosRewardsError):
    """
    A request that is well formed but violates a ledger or promotion rule.

    `reason` is a stable machine-readable code (below_minimum,
    usage_limit_reached, ...) that clients switch on.
    """

    def __init__(self, reason: str, message: str = None):
        self.reason = reason
        super().__init__(message or reason.replace('_', ' ').capitalize(), "BUSINESS_RULE_VIOLATION")


class LoyaltyDisabledError(BusinessRuleError):
    """Loyalty program is switched off for the store."""

    def __init__(self):
        super().__init__('disabled', 'Loyalty system is disabled for this store')


class BelowMinimumRedemptionError(BusinessRuleError):
    """Redemption below the store's minimum threshold."""

    def __init__(self, minimum: int, requested: int):
        self.minimum = minimum
        self.requested = requested
        super().__init__(
            'below_minimum',
            f"Minimum redemption is {minimum} points (requested {requested})"
        )


class InsufficientPointsError(BusinessRuleError):
    """Not enough points for the operation."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        super().__init__(
            'insufficient_balance',
            f"Insufficient points. Current: {current}, Required: {required}"
        )


class NegativeBalanceError(BusinessRuleError):
    """Adjustment would drive the balance below zero."""

    def __init__(self, current: int, delta: int):
        self.current = current
        self.delta = delta
        super().__init__(
            'would_go_negative',
            f"Adjustment of {delta} points would leave a negative balance (current: {current})"
        )


class PromotionRejectedError(BusinessRuleError):
    """A promotion failed one of the discount validation checks."""

    MESSAGES = {
        'expired_or_inactive': 'Promotion is not currently active',
        'minimum_purchase_not_met': 'Minimum purchase amount not met',
        'usage_limit_reached': 'Promotion usage limit exceeded',
        'customer_usage_limit_reached': 'Customer usage limit exceeded for this promotion',
        'no_eligible_items': 'No eligible items for this promotion',
    }

    def __init__(self, reason: str):
        super().__init__(reason, self.MESSAGES.get(reason))


class AuthorizationError(PosRewardsError):
    """Missing or invalid credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "AUTH_REQUIRED")
