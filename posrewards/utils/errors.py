"""
Standardized error response utilities for the POS Rewards API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE",
        "reason": "below_minimum"      # business rule violations only
    }
}

Usage:
    from posrewards.utils.errors import error_response, ErrorCode

    return error_response("Customer not found", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from typing import Optional

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import PosRewardsError, BusinessRuleError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication (401)
    AUTH_REQUIRED = "AUTH_REQUIRED"

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"

    # Business Logic Errors (400)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    reason: Optional[str] = None,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum (or a plain string)
        status_code: HTTP status code
        log_error: Whether to log the error
        reason: Business rule reason code, included in the body when set
        details: Optional additional details (only logged, not returned to user)

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    body = {
        "message": message,
        "code": code.value if isinstance(code, ErrorCode) else code
    }
    if reason:
        body["reason"] = reason

    return jsonify({"error": body}), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)


def register_error_handlers(app: Flask) -> None:
    """Map domain exceptions and storage failures to error responses."""
    from ..extensions import db

    @app.errorhandler(BusinessRuleError)
    def handle_business_rule(error: BusinessRuleError):
        return error_response(
            error.message, error.code, error.status_code, reason=error.reason
        )

    @app.errorhandler(PosRewardsError)
    def handle_domain_error(error: PosRewardsError):
        return error_response(error.message, error.code, error.status_code, log_error=False)

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        return error_response(
            "A storage error occurred", ErrorCode.DATABASE_ERROR, 500,
            details={'error': str(error)}
        )

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request(getattr(error, 'description', None) or 'Bad request')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found('Not found')

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def handle_internal_error(error):
        return internal_error(details={'error': str(error)})
