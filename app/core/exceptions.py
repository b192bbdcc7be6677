"""Domain error taxonomy.

Services raise these; the API layer turns them into the standard error
envelope (see ``register_exception_handlers`` in ``app.main``).
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that are safe to surface to API clients"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None):
        self.message = message or self.message
        self.field = field
        super().__init__(self.message)


# Validation

class InvalidInputError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid input"


# Lookup

class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


# Phase errors: the entity exists but is in the wrong state

class InvalidStateError(AppError):
    status_code = 409
    code = "INVALID_STATE"
    message = "Operation not allowed in the current state"


class BillExpiredError(InvalidStateError):
    code = "BILL_EXPIRED"
    message = "This bill has expired. Ask the merchant to generate a new one."


class BillCancelledError(InvalidStateError):
    code = "BILL_CANCELLED"
    message = "This bill has been cancelled"


class MerchantInactiveError(InvalidStateError):
    code = "MERCHANT_INACTIVE"
    message = "This merchant is not active"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflicting update"


class BillAlreadyUsedError(ConflictError):
    code = "BILL_ALREADY_USED"
    message = "This bill has already been paid"


class GatewayOrderMismatchError(AppError):
    status_code = 400
    code = "GATEWAY_ORDER_MISMATCH"
    message = "Order ID mismatch"


# Authorization

class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Not authorized"


# Security rejections carry deliberately generic messages

class SecurityRejectionError(AppError):
    status_code = 400
    code = "SECURITY_REJECTION"
    message = "Invalid or expired"


class InvalidBillTokenError(SecurityRejectionError):
    code = "INVALID_QR_TOKEN"
    message = "QR code is invalid or expired"


class PaymentSignatureError(SecurityRejectionError):
    code = "PAYMENT_VERIFICATION_FAILED"
    message = "Payment verification failed"


class WebhookSignatureError(SecurityRejectionError):
    code = "INVALID_WEBHOOK_SIGNATURE"
    message = "Invalid webhook signature"


# Upstream gateway

class UpstreamUnavailableError(AppError):
    """Gateway unreachable or 5xx. The outcome of the call is unknown."""

    status_code = 503
    code = "GATEWAY_UNAVAILABLE"
    message = "Payment gateway is unavailable, please retry"


class GatewayTimeoutError(UpstreamUnavailableError):
    code = "GATEWAY_TIMEOUT"
    message = "Payment gateway timed out, please retry"


class GatewayRequestError(AppError):
    """Gateway answered but rejected the request (4xx)"""

    status_code = 502
    code = "GATEWAY_REJECTED"
    message = "Payment gateway rejected the request"

    def __init__(self, message: Optional[str] = None, *, gateway_status: Optional[int] = None):
        super().__init__(message)
        self.gateway_status = gateway_status
