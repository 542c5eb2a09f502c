"""
Payment targets.

A payment pays for at most one thing. ``PaymentTarget`` is the tagged union of
the things it can pay for; the reconciler dispatches over it exhaustively.
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from community_payments.core.errors import ValidationError
from community_payments.database.models import Payment, PaymentType


@dataclass(frozen=True)
class BookingTarget:
    booking_id: uuid.UUID


@dataclass(frozen=True)
class BillTarget:
    bill_id: uuid.UUID


@dataclass(frozen=True)
class EventTarget:
    event_id: uuid.UUID


PaymentTarget = Union[BookingTarget, BillTarget, EventTarget, None]

# Payment types that require a specific target kind
_REQUIRED_TARGET = {
    PaymentType.SERVICE_BOOKING.value: BookingTarget,
    PaymentType.BILL_PAYMENT.value: BillTarget,
    PaymentType.EVENT_TICKET.value: EventTarget,
}


def build_target(
    booking_id: Optional[uuid.UUID] = None,
    bill_id: Optional[uuid.UUID] = None,
    event_id: Optional[uuid.UUID] = None,
) -> PaymentTarget:
    """
    Build a target from optional identifiers.

    Raises:
        ValidationError: If more than one identifier is given
    """
    given = [value for value in (booking_id, bill_id, event_id) if value is not None]
    if len(given) > 1:
        raise ValidationError("A payment can reference at most one of booking, bill or event")
    if booking_id is not None:
        return BookingTarget(booking_id)
    if bill_id is not None:
        return BillTarget(bill_id)
    if event_id is not None:
        return EventTarget(event_id)
    return None


def validate_target_for_type(payment_type: str, target: PaymentTarget) -> None:
    """
    Check that the target kind fits the payment type.

    Raises:
        ValidationError: On an unknown type or a missing or mismatched target
    """
    valid_types = {member.value for member in PaymentType}
    if payment_type not in valid_types:
        raise ValidationError(f"Unknown payment type: {payment_type}")

    required = _REQUIRED_TARGET.get(payment_type)
    if required is not None and not isinstance(target, required):
        raise ValidationError(
            f"Payment type {payment_type} requires a {required.__name__.replace('Target', '').lower()} reference"
        )
    if required is None and target is not None:
        raise ValidationError(f"Payment type {payment_type} does not take a target")


def target_of(payment: Payment) -> PaymentTarget:
    """Recover the target from a stored payment row."""
    if payment.booking_id is not None:
        return BookingTarget(payment.booking_id)
    if payment.event_id is not None:
        return EventTarget(payment.event_id)
    if payment.bill_id is not None:
        return BillTarget(payment.bill_id)
    return None


def target_columns(target: PaymentTarget) -> dict:
    """Column values for persisting a target on a payment row."""
    return {
        "booking_id": target.booking_id if isinstance(target, BookingTarget) else None,
        "bill_id": target.bill_id if isinstance(target, BillTarget) else None,
        "event_id": target.event_id if isinstance(target, EventTarget) else None,
    }
