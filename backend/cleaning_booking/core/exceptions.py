"""
Domain exceptions for the booking and payment core.

Services raise these; the API layer maps them onto HTTP responses in
`cleaning_booking.api.errors`. Each class carries its HTTP status so the
mapping lives in one place.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainError(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "domain_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DomainError):
    """Malformed or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_error"


class AuthenticationError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "not_authenticated"


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class StateConflictError(DomainError):
    """The request is well-formed but the current state does not allow it."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "state_conflict"


class SignatureVerificationFailed(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "signature_verification_failed"


class GatewayUnavailable(DomainError):
    """The payment gateway could not be reached or is rate limiting us."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "gateway_unavailable"


class GatewayTimeout(GatewayUnavailable):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_code = "gateway_timeout"


class GatewayRejected(GatewayUnavailable):
    """The gateway answered but refused the request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "gateway_rejected"


class PersistenceError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "persistence_error"


# Pricing

class InvalidServiceReference(ValidationError):
    default_code = "invalid_service_reference"


class InvalidAddOn(ValidationError):
    default_code = "invalid_add_on"


class InvalidQuantity(ValidationError):
    default_code = "invalid_quantity"


# Booking lifecycle

class InvalidTimeSlot(ValidationError):
    default_code = "invalid_time_slot"


class ScheduleInPast(ValidationError):
    default_code = "schedule_in_past"


class InvalidStatusTransition(StateConflictError):
    default_code = "invalid_status_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition booking from {current} to {target}",
            details={"current": current, "target": target},
        )


class BookingNotCancellable(StateConflictError):
    default_code = "booking_not_cancellable"


class BookingNotReschedulable(StateConflictError):
    default_code = "booking_not_reschedulable"


class CouponUnavailable(StateConflictError):
    default_code = "coupon_unavailable"


# Payments

class BookingNotPayable(StateConflictError):
    default_code = "booking_not_payable"


class AmountMismatch(ValidationError):
    default_code = "amount_mismatch"


class PaymentAlreadyCompleted(StateConflictError):
    default_code = "payment_already_completed"


class NotRefundable(StateConflictError):
    default_code = "not_refundable"


class RefundExceedsPayment(ValidationError):
    default_code = "refund_exceeds_payment"
