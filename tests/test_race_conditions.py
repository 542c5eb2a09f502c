"""
Race condition tests for concurrent seat reservations and verifications.

Each coroutine uses its own session and connection, so the event row lock
and the payment status compare-and-set are exercised for real.
"""
import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from community_payments.core.errors import AtCapacityError, InvalidStateError
from community_payments.core.targets import BookingTarget, EventTarget
from community_payments.database.models import Booking, Event, EventAttendee, OutboxEvent, PaymentEvent


class TestRaceConditions:
    """Test suite for race condition scenarios."""

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_rsvps_never_exceed_capacity(
        self, capacity, make_event, load, session_factory
    ) -> None:
        """M concurrent going RSVPs on an event with K < M seats: exactly K win."""
        event = await make_event(max_attendees=3)
        users = [uuid.uuid4() for _ in range(10)]

        results = await asyncio.gather(
            *(capacity.rsvp(event.id, user, "going") for user in users),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, AtCapacityError)]
        assert len(winners) == 3
        assert len(rejected) == 7

        async with session_factory() as db:
            going = (
                await db.execute(
                    select(func.count())
                    .select_from(EventAttendee)
                    .where(EventAttendee.event_id == event.id)
                )
            ).scalar_one()
        assert going == 3
        assert (await load(Event, event.id)).attendees_count == 3

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_last_seat_has_one_winner(self, capacity, make_event, load) -> None:
        event = await make_event(max_attendees=1)

        results = await asyncio.gather(
            capacity.rsvp(event.id, uuid.uuid4(), "going"),
            capacity.rsvp(event.id, uuid.uuid4(), "going"),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, AtCapacityError)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert (await load(Event, event.id)).attendees_count == 1

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_guest_rsvps_respect_seat_count(self, capacity, make_event, load) -> None:
        event = await make_event(max_attendees=5)

        results = await asyncio.gather(
            *(capacity.rsvp(event.id, uuid.uuid4(), "going", guests_count=1) for _ in range(5)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 2
        assert (await load(Event, event.id)).attendees_count == 4

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_verifications_settle_once(
        self, ledger, gateway, make_booking, load, session_factory
    ) -> None:
        user_id = uuid.uuid4()
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.succeed(init.reference)

        results = await asyncio.gather(*(ledger.verify(init.reference) for _ in range(8)))

        assert {payment.status for payment in results} == {"success"}
        assert (await load(Booking, booking.id)).payment_status == "paid"
        async with session_factory() as db:
            confirmed = (
                await db.execute(
                    select(func.count())
                    .select_from(OutboxEvent)
                    .where(OutboxEvent.event_type == "booking.confirmed")
                )
            ).scalar_one()
            succeeded = (
                await db.execute(
                    select(func.count())
                    .select_from(PaymentEvent)
                    .where(PaymentEvent.event_type == "payment.succeeded")
                )
            ).scalar_one()
        assert confirmed == 1
        assert succeeded == 1

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_refunds_refund_once(self, ledger, gateway) -> None:
        user_id = uuid.uuid4()
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        results = await asyncio.gather(
            *(ledger.refund(init.payment_id, user_id) for _ in range(4)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, InvalidStateError)) == 3

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_paid_tickets_and_rsvps_share_capacity(
        self, ledger, capacity, gateway, make_event, load
    ) -> None:
        """Ticket settlement and free RSVPs go through the same event lock."""
        event = await make_event(max_attendees=2, is_free=False, price=Decimal("1000"))
        buyers = [uuid.uuid4() for _ in range(2)]
        references = []
        for buyer in buyers:
            init = await ledger.initialize(
                buyer, "buyer@example.com", 1000, "event-ticket", target=EventTarget(event.id)
            )
            gateway.succeed(init.reference)
            references.append(init.reference)

        await asyncio.gather(
            *(ledger.verify(reference) for reference in references),
            *(capacity.rsvp(event.id, uuid.uuid4(), "going") for _ in range(3)),
            return_exceptions=True,
        )

        assert (await load(Event, event.id)).attendees_count <= 2
