"""
Domain exception taxonomy.

Every error carries a machine-readable ``kind`` and the HTTP status the API
renders it with. Gateway failures live in
``community_payments.integrations.paystack_client`` next to the client that
raises them.
"""
from typing import Any, Optional


class PaymentError(Exception):
    """Base exception for payment, capacity and bank-account errors."""

    kind = "payment_error"
    status_code = 500

    def __init__(self, message: str, resource_id: Optional[Any] = None):
        """
        Initialize the error.

        Args:
            message: Human readable description
            resource_id: Identifier of the record the error concerns, if any
        """
        super().__init__(message)
        self.message = message
        self.resource_id = str(resource_id) if resource_id is not None else None


class ValidationError(PaymentError):
    """Raised when request input fails validation."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(PaymentError):
    kind = "not_found"
    status_code = 404


class ForbiddenError(PaymentError):
    """Raised when the caller does not own the resource."""

    kind = "forbidden"
    status_code = 403


class InvalidStateError(PaymentError):
    """Raised when the resource is in a state that forbids the operation."""

    kind = "invalid_state"
    status_code = 400


class InvalidTransitionError(InvalidStateError):
    """Raised when a payment status change is not an allowed transition."""

    kind = "invalid_transition"


class AlreadyPaidError(PaymentError):
    kind = "already_paid"
    status_code = 400


class AtCapacityError(PaymentError):
    """Raised when an event has no room for the requested seats."""

    kind = "at_capacity"
    status_code = 409


class ConflictError(PaymentError):
    kind = "conflict"
    status_code = 409


class VerificationFailedError(PaymentError):
    """Raised when the gateway cannot confirm bank account details."""

    kind = "verification_failed"
    status_code = 400


class ReferenceCollisionError(PaymentError):
    """Raised when a freshly minted reference already exists."""

    kind = "reference_collision"
    status_code = 500


class ReconciliationError(PaymentError):
    """Raised when a settled outcome could not be applied; the transaction was rolled back."""

    kind = "reconciliation_error"
    status_code = 500
