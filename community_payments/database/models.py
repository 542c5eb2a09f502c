"""SQLAlchemy database models for payment, booking and event capacity state."""
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")

# Money columns carry up to three decimals for currencies such as KWD.
MoneyType = Numeric(14, 3)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, Enum):
    """Payment lifecycle states."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    """What a payment is for."""

    SERVICE_BOOKING = "service-booking"
    BILL_PAYMENT = "bill-payment"
    EVENT_TICKET = "event-ticket"
    SUBSCRIPTION = "subscription"
    OTHER = "other"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class RsvpStatus(str, Enum):
    GOING = "going"
    MAYBE = "maybe"
    NOT_GOING = "not_going"


class AttendeePaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class FaultKind(str, Enum):
    """Reasons a settled payment could not be applied to its target."""

    TARGET_MISSING = "target_missing"
    TARGET_CANCELLED = "target_cancelled"
    DUPLICATE_PAYMENT = "duplicate_payment"
    CAPACITY_EXHAUSTED = "capacity_exhausted"
    AMOUNT_MISMATCH = "amount_mismatch"


def _in_clause(column: str, enum_cls: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Payment(Base):
    """
    Payment records table.

    Single source of truth for whether money moved. Rows are never deleted;
    status only changes through the ledger's compare-and-set transitions.
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    access_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    authorization_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[Dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    bill_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    event_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_amount: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint(_in_clause("status", PaymentStatus), name="valid_payment_status"),
        CheckConstraint(_in_clause("type", PaymentType), name="valid_payment_type"),
        CheckConstraint("length(currency) = 3", name="valid_currency"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_payments_user_idempotency_key"),
        Index("idx_payments_user_status", "user_id", "status"),
        Index("idx_payments_type_status", "type", "status"),
    )

    def __repr__(self) -> str:
        """String representation of Payment."""
        return (
            f"<Payment(id={self.id}, reference={self.reference}, "
            f"amount={self.amount} {self.currency}, status={self.status})>"
        )


class PaymentEvent(Base):
    """
    Payment events audit trail table.

    One row per ledger transition. Immutable once written.
    """

    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    payment_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    correlation_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        """String representation of PaymentEvent."""
        return (
            f"<PaymentEvent(id={self.id}, payment_id={self.payment_id}, "
            f"type={self.event_type})>"
        )


class Booking(Base):
    """
    Service bookings.

    Created by the booking flow elsewhere; this package only moves its
    payment_status (and the pending -> confirmed step) on settlement and refund.
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.PENDING.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingPaymentStatus.PENDING.value
    )
    payment_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    scheduled_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", BookingStatus), name="valid_booking_status"),
        CheckConstraint(
            _in_clause("payment_status", BookingPaymentStatus),
            name="valid_booking_payment_status",
        ),
        Index("idx_bookings_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, status={self.status}, "
            f"payment_status={self.payment_status})>"
        )


class Event(Base):
    """
    Community events with an optional attendee ceiling.

    attendees_count caches the committed seat total (going rows plus their
    guests) and is recomputed inside every attendee mutation. version is bumped
    by every seat mutation; the bump doubles as the row lock.
    """

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organizer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_free: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    price: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    max_attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allow_guests: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    attendees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "max_attendees IS NULL OR max_attendees > 0", name="positive_max_attendees"
        ),
        CheckConstraint("attendees_count >= 0", name="non_negative_attendees_count"),
    )

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, attendees={self.attendees_count}/"
            f"{self.max_attendees})>"
        )


class EventAttendee(Base):
    """RSVP rows; (event_id, user_id) is unique."""

    __tablename__ = "event_attendees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    rsvp_status: Mapped[str] = mapped_column(String(20), nullable=False)
    guests_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_paid: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    rsvp_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendees_event_user"),
        CheckConstraint("guests_count >= 0", name="non_negative_guests"),
        CheckConstraint(_in_clause("rsvp_status", RsvpStatus), name="valid_rsvp_status"),
        Index("idx_event_attendees_event_rsvp", "event_id", "rsvp_status"),
    )

    @property
    def seats(self) -> int:
        """Seats held by this row: the attendee plus guests, only when going."""
        if self.rsvp_status != RsvpStatus.GOING.value:
            return 0
        return 1 + self.guests_count

    def __repr__(self) -> str:
        return (
            f"<EventAttendee(event_id={self.event_id}, user_id={self.user_id}, "
            f"rsvp={self.rsvp_status}, guests={self.guests_count})>"
        )


class BankAccount(Base):
    """Payout destinations; at most one default per user."""

    __tablename__ = "bank_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    bank_code: Mapped[str] = mapped_column(String(10), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "account_number", "bank_code", name="uq_bank_accounts_user_account"
        ),
        Index(
            "uq_bank_accounts_one_default",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BankAccount(id={self.id}, bank_code={self.bank_code}, "
            f"default={self.is_default}, verified={self.is_verified})>"
        )


class OutboxEvent(Base):
    """
    Transactional outbox events table.

    Events are written in the same transaction as the domain change they
    describe, then published asynchronously by a background worker.
    """

    __tablename__ = "outbox_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    aggregate_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_outbox_aggregate", "aggregate_id", "aggregate_type"),
    )

    def __repr__(self) -> str:
        """String representation of OutboxEvent."""
        return (
            f"<OutboxEvent(id={self.id}, type={self.event_type}, "
            f"published={self.published})>"
        )


class ReconciliationFault(Base):
    """
    Settled payments that could not be applied to their target.

    Written in the settlement transaction so the money movement and the
    repair ticket are durable together.
    """

    __tablename__ = "reconciliation_faults"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    payment_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_clause("kind", FaultKind), name="valid_fault_kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReconciliationFault(id={self.id}, payment_id={self.payment_id}, "
            f"kind={self.kind}, resolved={self.resolved})>"
        )
