"""
Capacity reservation for event seats and booking payment state.

Every seat mutation runs as one lock-then-check-then-write unit:

1. ``UPDATE events SET version = version + 1`` locks the event row (a row
   lock on PostgreSQL, the database write lock on SQLite)
2. The committed seat total is recomputed from attendee rows
3. The attendee row is upserted and ``attendees_count`` recomputed
4. Commit

Two reservations for the same event therefore never interleave between the
check and the write.
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.config import Settings, get_settings
from community_payments.core.errors import (
    AtCapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from community_payments.database.models import (
    AttendeePaymentStatus,
    Booking,
    BookingPaymentStatus,
    BookingStatus,
    Event,
    EventAttendee,
    FaultKind,
    Payment,
    RsvpStatus,
)
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

RESERVED = "reserved"
UPDATED = "updated"
AT_CAPACITY = "at_capacity"

# The refunded payment is not the one the target is recorded against
NOT_HOLDER = "not_holder"


@dataclass
class ReservationResult:
    """Outcome of a seat reservation attempt."""

    status: str
    attendee: Optional[EventAttendee]
    seats_taken: int
    max_attendees: Optional[int]

    @property
    def seats_remaining(self) -> Optional[int]:
        if self.max_attendees is None:
            return None
        return max(self.max_attendees - self.seats_taken, 0)


async def lock_event(db: AsyncSession, event_id: uuid.UUID) -> Event:
    """
    Lock an event row for the rest of the transaction and load it.

    Must be the first write of the transaction.

    Raises:
        NotFoundError: If the event does not exist
    """
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Event not found", resource_id=event_id)

    stmt = select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


async def count_seats_taken(db: AsyncSession, event_id: uuid.UUID) -> int:
    """Committed seats: one per going attendee plus their guests."""
    stmt = select(func.coalesce(func.sum(1 + EventAttendee.guests_count), 0)).where(
        EventAttendee.event_id == event_id,
        EventAttendee.rsvp_status == RsvpStatus.GOING.value,
    )
    return int((await db.execute(stmt)).scalar_one())


async def _refresh_attendees_count(db: AsyncSession, event: Event) -> int:
    await db.flush()
    taken = await count_seats_taken(db, event.id)
    await db.execute(
        update(Event)
        .where(Event.id == event.id)
        .values(attendees_count=taken)
        .execution_options(synchronize_session=False)
    )
    event.attendees_count = taken
    return taken


async def _find_attendee(
    db: AsyncSession, event_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[EventAttendee]:
    stmt = (
        select(EventAttendee)
        .where(EventAttendee.event_id == event_id, EventAttendee.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def reserve_locked(
    db: AsyncSession,
    event: Event,
    user_id: uuid.UUID,
    quantity: int,
    rsvp_status: str = RsvpStatus.GOING.value,
    guests_count: Optional[int] = None,
    **attendee_fields: Any,
) -> ReservationResult:
    """
    Check capacity and upsert the attendee row of a locked event.

    The caller owns the transaction and must have called ``lock_event``.
    Nothing is written when the result is ``at_capacity``.

    Args:
        db: Session holding the event lock
        event: Locked event
        user_id: Attendee
        quantity: Seats the attendee will hold after the change
        rsvp_status: New RSVP status
        guests_count: Guests stored on the row (defaults to quantity - 1 when going)
        **attendee_fields: Extra columns to set (payment fields)
    """
    if guests_count is None:
        guests_count = max(quantity - 1, 0) if rsvp_status == RsvpStatus.GOING.value else 0

    attendee = await _find_attendee(db, event.id, user_id)
    held = attendee.seats if attendee is not None else 0
    taken = await count_seats_taken(db, event.id)

    if (
        rsvp_status == RsvpStatus.GOING.value
        and event.max_attendees is not None
        and taken - held + quantity > event.max_attendees
    ):
        logger.info(
            "capacity_reservation_rejected",
            event_id=str(event.id),
            user_id=str(user_id),
            seats_taken=taken,
            seats_held=held,
            seats_requested=quantity,
            max_attendees=event.max_attendees,
        )
        return ReservationResult(AT_CAPACITY, attendee, taken, event.max_attendees)

    if attendee is None:
        attendee = EventAttendee(
            event_id=event.id,
            user_id=user_id,
            rsvp_status=rsvp_status,
            guests_count=guests_count,
            **attendee_fields,
        )
        db.add(attendee)
        status = RESERVED
    else:
        attendee.rsvp_status = rsvp_status
        attendee.guests_count = guests_count
        for name, value in attendee_fields.items():
            setattr(attendee, name, value)
        status = UPDATED

    taken = await _refresh_attendees_count(db, event)

    logger.info(
        "capacity_reserved",
        event_id=str(event.id),
        user_id=str(user_id),
        status=status,
        rsvp_status=rsvp_status,
        seats_taken=taken,
    )
    return ReservationResult(status, attendee, taken, event.max_attendees)


# ---------------------------------------------------------------------------
# Transaction-scoped helpers used by the reconciler. They never commit and
# return the fault kind they hit, NOT_HOLDER, or None.
# ---------------------------------------------------------------------------


async def settle_booking(db: AsyncSession, payment: Payment) -> Optional[str]:
    """
    Mark the payment's booking paid, confirming it when still pending.

    A single conditional UPDATE, guarded so a booking is never paid twice
    and a cancelled booking is never paid at all.
    """
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == payment.booking_id,
            Booking.payment_status != BookingPaymentStatus.PAID.value,
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .values(
            payment_status=BookingPaymentStatus.PAID.value,
            payment_id=payment.id,
            status=case(
                (Booking.status == BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value),
                else_=Booking.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return None

    existing = (
        await db.execute(
            select(Booking.payment_id, Booking.payment_status, Booking.status).where(
                Booking.id == payment.booking_id
            )
        )
    ).first()
    if existing is None:
        return FaultKind.TARGET_MISSING.value
    if existing.payment_id == payment.id:
        return None
    if existing.payment_status == BookingPaymentStatus.PAID.value:
        return FaultKind.DUPLICATE_PAYMENT.value
    return FaultKind.TARGET_CANCELLED.value


async def refund_booking(db: AsyncSession, payment: Payment) -> Optional[str]:
    """
    Roll a booking back after its payment was refunded.

    Only the payment the booking is recorded against can roll it back; a
    refunded duplicate leaves the booking alone and yields NOT_HOLDER.
    """
    result = await db.execute(
        update(Booking)
        .where(Booking.id == payment.booking_id, Booking.payment_id == payment.id)
        .values(
            payment_status=BookingPaymentStatus.REFUNDED.value,
            status=case(
                (
                    Booking.status.in_(
                        [BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]
                    ),
                    BookingStatus.CANCELLED.value,
                ),
                else_=Booking.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return None

    exists = (
        await db.execute(select(Booking.id).where(Booking.id == payment.booking_id))
    ).first()
    if exists is None:
        return FaultKind.TARGET_MISSING.value
    return NOT_HOLDER


async def commit_ticket(db: AsyncSession, payment: Payment) -> Optional[str]:
    """
    Give the payer a paid seat on the event.

    An existing going RSVP keeps its seats; otherwise one seat is reserved.
    A seat already paid for by another payment is a duplicate.
    """
    try:
        event = await lock_event(db, payment.event_id)
    except NotFoundError:
        return FaultKind.TARGET_MISSING.value

    attendee = await _find_attendee(db, event.id, payment.user_id)
    if (
        attendee is not None
        and attendee.payment_status == AttendeePaymentStatus.COMPLETED.value
    ):
        if attendee.payment_reference == payment.reference:
            return None
        return FaultKind.DUPLICATE_PAYMENT.value

    if attendee is not None and attendee.rsvp_status == RsvpStatus.GOING.value:
        quantity = attendee.seats
        guests_count: Optional[int] = attendee.guests_count
    else:
        quantity = 1
        guests_count = 0

    result = await reserve_locked(
        db,
        event,
        payment.user_id,
        quantity,
        RsvpStatus.GOING.value,
        guests_count=guests_count,
        payment_status=AttendeePaymentStatus.COMPLETED.value,
        payment_reference=payment.reference,
        amount_paid=Decimal(payment.amount),
    )
    if result.status == AT_CAPACITY:
        return FaultKind.CAPACITY_EXHAUSTED.value
    return None


async def release_ticket(db: AsyncSession, payment: Payment) -> Optional[str]:
    """
    Release the seat this payment bought; the row is kept as not_going / refunded.

    A payment that never held the seat (a duplicate, or one that found the
    event full) releases nothing and yields NOT_HOLDER.
    """
    try:
        event = await lock_event(db, payment.event_id)
    except NotFoundError:
        return FaultKind.TARGET_MISSING.value

    attendee = await _find_attendee(db, event.id, payment.user_id)
    if (
        attendee is None
        or attendee.payment_reference != payment.reference
        or attendee.payment_status != AttendeePaymentStatus.COMPLETED.value
    ):
        return NOT_HOLDER
    attendee.rsvp_status = RsvpStatus.NOT_GOING.value
    attendee.guests_count = 0
    attendee.payment_status = AttendeePaymentStatus.REFUNDED.value
    await _refresh_attendees_count(db, event)
    return None


class CapacityService:
    """
    Seat reservation and RSVP management for events.

    Each public operation runs in its own session and transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        """
        Initialize capacity service.

        Args:
            session_factory: Session factory used for every operation
            settings: Optional settings (defaults to the cached settings)
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def reserve(
        self,
        event_id: uuid.UUID,
        user_id: uuid.UUID,
        quantity: int,
        rsvp_status: str = RsvpStatus.GOING.value,
        guests_count: Optional[int] = None,
    ) -> ReservationResult:
        """
        Reserve seats for a user, replacing whatever they held before.

        Args:
            event_id: Event to reserve on
            user_id: Attendee
            quantity: Seats to hold (1 + guests when going, 0 otherwise)
            rsvp_status: RSVP status to store
            guests_count: Guests to store (derived from quantity when omitted)

        Returns:
            ReservationResult: ``reserved``, ``updated`` or ``at_capacity``

        Raises:
            NotFoundError: If the event does not exist
        """
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        async with self.session_factory() as db:
            try:
                event = await lock_event(db, event_id)
                result = await reserve_locked(
                    db, event, user_id, quantity, rsvp_status, guests_count=guests_count
                )
                if result.status == AT_CAPACITY:
                    await db.rollback()
                else:
                    await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_reservation(result.status)
        return result

    async def release(self, event_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """
        Delete a user's RSVP and free its seats.

        Returns:
            bool: True if a row was removed, False if there was nothing to release

        Raises:
            NotFoundError: If the event does not exist
            InvalidStateError: If the RSVP holds a paid ticket
        """
        async with self.session_factory() as db:
            try:
                event = await lock_event(db, event_id)
                attendee = await _find_attendee(db, event_id, user_id)
                if attendee is None:
                    await db.rollback()
                    return False
                if attendee.payment_status == AttendeePaymentStatus.COMPLETED.value:
                    raise InvalidStateError(
                        "This RSVP holds a paid ticket; refund the payment to release it",
                        resource_id=attendee.id,
                    )
                await db.delete(attendee)
                taken = await _refresh_attendees_count(db, event)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_reservation("released")
        logger.info(
            "capacity_released",
            event_id=str(event_id),
            user_id=str(user_id),
            seats_taken=taken,
        )
        return True

    async def rsvp(
        self,
        event_id: uuid.UUID,
        user_id: uuid.UUID,
        rsvp_status: str,
        guests_count: int = 0,
    ) -> ReservationResult:
        """
        Create or change a user's RSVP.

        Raises:
            ValidationError: Unknown status or bad guest count
            NotFoundError: If the event does not exist
            InvalidStateError: If the RSVP holds a paid ticket
            AtCapacityError: If the event has no room for the requested seats
        """
        valid = {member.value for member in RsvpStatus}
        if rsvp_status not in valid:
            raise ValidationError(f"rsvp_status must be one of {sorted(valid)}")
        if guests_count < 0:
            raise ValidationError("guests_count cannot be negative")
        if guests_count > self.settings.max_guests_per_rsvp:
            raise ValidationError(
                f"guests_count cannot exceed {self.settings.max_guests_per_rsvp}"
            )

        going = rsvp_status == RsvpStatus.GOING.value
        quantity = 1 + guests_count if going else 0

        async with self.session_factory() as db:
            try:
                event = await lock_event(db, event_id)
                if guests_count and not event.allow_guests:
                    raise ValidationError("This event does not allow guests", resource_id=event_id)

                current = await _find_attendee(db, event_id, user_id)
                if (
                    current is not None
                    and current.payment_status == AttendeePaymentStatus.COMPLETED.value
                ):
                    raise InvalidStateError(
                        "This RSVP holds a paid ticket; refund the payment to change it",
                        resource_id=current.id,
                    )

                result = await reserve_locked(
                    db, event, user_id, quantity, rsvp_status, guests_count=guests_count
                )
                if result.status == AT_CAPACITY:
                    await db.rollback()
                else:
                    await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_reservation(result.status)
        if result.status == AT_CAPACITY:
            raise AtCapacityError(
                "Not enough spots available for you and your guests",
                resource_id=event_id,
            )
        return result

    async def cancel_rsvp(self, event_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        return await self.release(event_id, user_id)

    async def availability(self, event_id: uuid.UUID) -> Dict[str, Any]:
        """
        Seat availability recomputed from attendee rows.

        Raises:
            NotFoundError: If the event does not exist
        """
        async with self.session_factory() as db:
            event = (
                await db.execute(select(Event).where(Event.id == event_id))
            ).scalar_one_or_none()
            if event is None:
                raise NotFoundError("Event not found", resource_id=event_id)
            taken = await count_seats_taken(db, event_id)

        remaining = None if event.max_attendees is None else max(event.max_attendees - taken, 0)
        return {
            "event_id": event_id,
            "max_attendees": event.max_attendees,
            "seats_taken": taken,
            "seats_remaining": remaining,
            "is_full": remaining == 0,
        }

    async def has_room(self, event_id: uuid.UUID, user_id: uuid.UUID, quantity: int = 1) -> bool:
        """Unlocked capacity pre-check; the locked check at commit time is authoritative."""
        async with self.session_factory() as db:
            event = (
                await db.execute(select(Event).where(Event.id == event_id))
            ).scalar_one_or_none()
            if event is None:
                raise NotFoundError("Event not found", resource_id=event_id)
            if event.max_attendees is None:
                return True
            attendee = await _find_attendee(db, event_id, user_id)
            held = attendee.seats if attendee is not None else 0
            if held >= quantity:
                return True
            taken = await count_seats_taken(db, event_id)
        return taken - held + quantity <= event.max_attendees
