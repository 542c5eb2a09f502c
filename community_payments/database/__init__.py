"""Database package for community payments."""
from .connection import (
    close_db,
    create_engine_for_url,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_db,
)
from .models import (
    AttendeePaymentStatus,
    BankAccount,
    Base,
    Booking,
    BookingPaymentStatus,
    BookingStatus,
    Event,
    EventAttendee,
    FaultKind,
    OutboxEvent,
    Payment,
    PaymentEvent,
    PaymentStatus,
    PaymentType,
    ReconciliationFault,
    RsvpStatus,
)

__all__ = [
    "AttendeePaymentStatus",
    "BankAccount",
    "Base",
    "Booking",
    "BookingPaymentStatus",
    "BookingStatus",
    "Event",
    "EventAttendee",
    "FaultKind",
    "OutboxEvent",
    "Payment",
    "PaymentEvent",
    "PaymentStatus",
    "PaymentType",
    "ReconciliationFault",
    "RsvpStatus",
    "close_db",
    "create_engine_for_url",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_db",
]
