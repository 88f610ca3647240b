"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class PaymentValidationError(AppException):
    """Raised when a payment request carries missing or malformed input."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            error_code="ERR_PAY_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else None
        )


class InvoiceAlreadyPaidError(AppException):
    """Raised when a payment is initiated for an invoice with nothing outstanding."""

    def __init__(self, invoice_id: Any):
        super().__init__(
            message="Invoice is already paid",
            error_code="ERR_PAY_ALREADY_PAID",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"invoice_id": invoice_id}
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class DuplicatePaymentError(AppException):
    """Raised when a ledger entry with the same reference already exists."""

    def __init__(self, reference: str):
        super().__init__(
            message=f"A payment with reference {reference} is already recorded",
            error_code="ERR_PAY_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"reference": reference}
        )


class RateLimitExceededError(AppException):
    """Raised when a principal exceeds the allowed number of attempts."""

    def __init__(self, message: str = "Too many payment attempts. Please try again later."):
        super().__init__(
            message=message,
            error_code="ERR_RATE_LIMIT",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS
        )


class GatewayNotConfiguredError(AppException):
    """Raised when payment gateway credentials are missing."""

    def __init__(self):
        super().__init__(
            message="Payment gateway not configured",
            error_code="ERR_GATEWAY_CONFIG",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class GatewayError(AppException):
    """Raised when the payment gateway rejects a call or cannot be reached."""

    def __init__(self, message: str = "Payment gateway error", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_GATEWAY_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        429: "ERR_RATE_LIMIT",
        500: "ERR_INTERNAL_SERVER",
        502: "ERR_BAD_GATEWAY"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors (missing or malformed fields)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ]
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
