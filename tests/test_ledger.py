"""
Unit tests for the payment ledger.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from community_payments.core.errors import (
    AlreadyPaidError,
    AtCapacityError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from community_payments.core.ledger import check_transition
from community_payments.core.targets import BillTarget, BookingTarget, EventTarget
from community_payments.database.models import (
    Booking,
    Event,
    OutboxEvent,
    Payment,
    PaymentEvent,
    ReconciliationFault,
)
from community_payments.integrations.paystack_client import GatewayDeclinedError, GatewayError, GatewayErrorType


def naive(value: datetime) -> datetime:
    """SQLite hands back naive UTC datetimes."""
    return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value


async def count_rows(session_factory, model, *conditions) -> int:
    async with session_factory() as db:
        stmt = select(func.count()).select_from(model)
        if conditions:
            stmt = stmt.where(*conditions)
        return (await db.execute(stmt)).scalar_one()


async def outbox_types(session_factory) -> list:
    async with session_factory() as db:
        result = await db.execute(select(OutboxEvent.event_type).order_by(OutboxEvent.id))
        return list(result.scalars().all())


class TestTransitions:
    """Test suite for the status state machine."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "from_status,to_status",
        [("pending", "success"), ("pending", "failed"), ("success", "refunded")],
    )
    def test_allowed(self, from_status: str, to_status: str) -> None:
        check_transition(from_status, to_status)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("success", "pending"),
            ("failed", "success"),
            ("refunded", "success"),
            ("pending", "refunded"),
            ("cancelled", "success"),
        ],
    )
    def test_rejected(self, from_status: str, to_status: str) -> None:
        with pytest.raises(InvalidTransitionError):
            check_transition(from_status, to_status)


class TestInitialize:
    """Test suite for payment initialization."""

    @pytest.mark.asyncio
    async def test_creates_pending_payment(self, ledger, gateway, session_factory, user_id) -> None:
        result = await ledger.initialize(
            user_id=user_id,
            email="ada@example.com",
            amount=Decimal("2500"),
            payment_type="subscription",
        )

        assert result.reference.startswith("MCB_")
        assert result.authorization_url.startswith("https://checkout.paystack.com/")
        assert gateway.initialized[0]["amount_minor"] == 250000
        assert gateway.initialized[0]["currency"] == "NGN"

        async with session_factory() as db:
            payment = await db.get(Payment, result.payment_id)
        assert payment.status == "pending"
        assert payment.amount == Decimal("2500")
        assert payment.reference == result.reference
        assert payment.external_reference == result.reference
        assert await count_rows(session_factory, PaymentEvent) == 1
        assert await outbox_types(session_factory) == ["payment.initialized"]

    @pytest.mark.asyncio
    async def test_sends_target_in_gateway_metadata(self, ledger, gateway, make_booking, user_id) -> None:
        booking = await make_booking(user_id)

        await ledger.initialize(
            user_id=user_id,
            email="ada@example.com",
            amount=5000,
            payment_type="service-booking",
            target=BookingTarget(booking.id),
            metadata={"note": "front gate"},
        )

        metadata = gateway.initialized[0]["metadata"]
        assert metadata["booking_id"] == str(booking.id)
        assert metadata["payment_type"] == "service-booking"
        assert metadata["note"] == "front gate"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "-5", "1.234"])
    async def test_rejects_bad_amounts(self, ledger, gateway, user_id, amount) -> None:
        with pytest.raises(ValidationError):
            await ledger.initialize(user_id, "ada@example.com", amount, "other")
        assert gateway.initialized == []

    @pytest.mark.asyncio
    async def test_rejects_unsupported_currency(self, ledger, user_id) -> None:
        with pytest.raises(ValidationError):
            await ledger.initialize(user_id, "ada@example.com", 10, "other", currency="EUR")

    @pytest.mark.asyncio
    async def test_rejects_missing_email(self, ledger, user_id) -> None:
        with pytest.raises(ValidationError):
            await ledger.initialize(user_id, "not-an-email", 10, "other")

    @pytest.mark.asyncio
    async def test_booking_must_belong_to_payer(self, ledger, make_booking, user_id) -> None:
        booking = await make_booking(uuid.uuid4())

        with pytest.raises(NotFoundError):
            await ledger.initialize(
                user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
            )

    @pytest.mark.asyncio
    async def test_paid_booking_rejected(self, ledger, make_booking, user_id) -> None:
        booking = await make_booking(user_id, status="confirmed", payment_status="paid")

        with pytest.raises(AlreadyPaidError):
            await ledger.initialize(
                user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
            )

    @pytest.mark.asyncio
    async def test_cancelled_booking_rejected(self, ledger, make_booking, user_id) -> None:
        booking = await make_booking(user_id, status="cancelled")

        with pytest.raises(InvalidStateError):
            await ledger.initialize(
                user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
            )

    @pytest.mark.asyncio
    async def test_free_event_cannot_be_paid_for(self, ledger, make_event, user_id) -> None:
        event = await make_event(max_attendees=10, is_free=True)

        with pytest.raises(ValidationError):
            await ledger.initialize(
                user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
            )

    @pytest.mark.asyncio
    async def test_full_event_rejected_before_checkout(
        self, ledger, capacity, gateway, make_event, user_id
    ) -> None:
        event = await make_event(max_attendees=1, is_free=False, price=Decimal("1000"))
        await capacity.rsvp(event.id, uuid.uuid4(), "going")

        with pytest.raises(AtCapacityError):
            await ledger.initialize(
                user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
            )
        assert gateway.initialized == []

    @pytest.mark.asyncio
    async def test_idempotency_key_returns_first_checkout(
        self, ledger, gateway, session_factory, user_id
    ) -> None:
        first = await ledger.initialize(
            user_id, "ada@example.com", 1000, "other", idempotency_key="order-77"
        )
        second = await ledger.initialize(
            user_id, "ada@example.com", 1000, "other", idempotency_key="order-77"
        )

        assert second == first
        assert len(gateway.initialized) == 1
        assert await count_rows(session_factory, Payment) == 1

    @pytest.mark.asyncio
    async def test_idempotency_key_reused_for_other_amount(self, ledger, user_id) -> None:
        await ledger.initialize(user_id, "ada@example.com", 1000, "other", idempotency_key="k1")

        with pytest.raises(ConflictError):
            await ledger.initialize(user_id, "ada@example.com", 2000, "other", idempotency_key="k1")

    @pytest.mark.asyncio
    async def test_gateway_failure_persists_nothing(self, ledger, gateway, session_factory, user_id) -> None:
        gateway.initialize_error = GatewayError("Paystack timeout", GatewayErrorType.TRANSIENT)

        with pytest.raises(GatewayError):
            await ledger.initialize(user_id, "ada@example.com", 1000, "other")

        assert await count_rows(session_factory, Payment) == 0


class TestVerify:
    """Test suite for settlement through verification."""

    @pytest.mark.asyncio
    async def test_happy_path_booking_payment(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id, price=Decimal("5000"))
        init = await ledger.initialize(
            user_id, "ada@example.com", Decimal("5000"), "service-booking",
            currency="NGN", target=BookingTarget(booking.id),
        )
        paid_at = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)
        gateway.succeed(init.reference, amount_minor=500000, currency="NGN", paid_at=paid_at)

        payment = await ledger.verify(init.reference)

        assert payment.status == "success"
        assert naive(payment.paid_at) == naive(paid_at)

        stored = await load(Payment, init.payment_id)
        assert stored.status == "success"
        assert naive(stored.paid_at) == naive(paid_at)

        booking = await load(Booking, booking.id)
        assert booking.payment_status == "paid"
        assert booking.status == "confirmed"
        assert booking.payment_id == init.payment_id

        assert await outbox_types(session_factory) == [
            "payment.initialized",
            "booking.confirmed",
            "payment.succeeded",
        ]
        assert await count_rows(session_factory, ReconciliationFault) == 0

    @pytest.mark.asyncio
    async def test_failed_verification_leaves_booking_pending(
        self, ledger, gateway, make_booking, load, user_id
    ) -> None:
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.decline(init.reference)

        payment = await ledger.verify(init.reference)

        assert payment.status == "failed"
        booking = await load(Booking, booking.id)
        assert booking.status == "pending"
        assert booking.payment_status == "pending"

    @pytest.mark.asyncio
    async def test_repeated_verify_applies_once(
        self, ledger, gateway, make_booking, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.succeed(init.reference)

        for _ in range(5):
            payment = await ledger.verify(init.reference)
            assert payment.status == "success"

        assert gateway.verify_calls[init.reference] == 1
        assert (await outbox_types(session_factory)).count("booking.confirmed") == 1
        assert await count_rows(
            session_factory, PaymentEvent, PaymentEvent.event_type == "payment.succeeded"
        ) == 1

    @pytest.mark.asyncio
    async def test_unknown_reference(self, ledger) -> None:
        with pytest.raises(NotFoundError):
            await ledger.verify("MCB_DOESNOTEXIST")

    @pytest.mark.asyncio
    async def test_still_pending_at_gateway(self, ledger, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")

        payment = await ledger.verify(init.reference)

        assert payment.status == "pending"

    @pytest.mark.asyncio
    async def test_timeout_leaves_pending_then_later_verify_settles(
        self, ledger, gateway, load, user_id
    ) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.succeed(init.reference)
        gateway.fail_next_verify(
            init.reference, GatewayError("Paystack request timed out", GatewayErrorType.TRANSIENT)
        )

        with pytest.raises(GatewayError):
            await ledger.verify(init.reference)
        assert (await load(Payment, init.payment_id)).status == "pending"

        payment = await ledger.verify(init.reference)
        assert payment.status == "success"

    @pytest.mark.asyncio
    async def test_declined_verify_leaves_pending(self, ledger, gateway, load, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.fail_next_verify(init.reference, GatewayDeclinedError("Transaction not found", 400))

        with pytest.raises(GatewayDeclinedError):
            await ledger.verify(init.reference)
        assert (await load(Payment, init.payment_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_amount_mismatch_records_fault(self, ledger, gateway, session_factory, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 5000, "other")
        gateway.succeed(init.reference, amount_minor=100, currency="NGN")

        payment = await ledger.verify(init.reference)

        assert payment.status == "success"
        async with session_factory() as db:
            faults = (await db.execute(select(ReconciliationFault))).scalars().all()
        assert [fault.kind for fault in faults] == ["amount_mismatch"]
        assert faults[0].details["expected_minor"] == 500000

    @pytest.mark.asyncio
    async def test_booking_paid_elsewhere_records_duplicate_fault(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id)
        first = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        second = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.succeed(first.reference)
        gateway.succeed(second.reference)

        await ledger.verify(first.reference)
        payment = await ledger.verify(second.reference)

        assert payment.status == "success"
        assert (await load(Booking, booking.id)).payment_id == first.payment_id
        async with session_factory() as db:
            fault = (await db.execute(select(ReconciliationFault))).scalar_one()
        assert fault.kind == "duplicate_payment"
        assert fault.payment_id == second.payment_id

    @pytest.mark.asyncio
    async def test_bill_payment_emits_bill_event(self, ledger, gateway, session_factory, user_id) -> None:
        init = await ledger.initialize(
            user_id, "ada@example.com", 1200, "bill-payment", target=BillTarget(uuid.uuid4())
        )
        gateway.succeed(init.reference)

        await ledger.verify(init.reference)

        assert "bill.paid" in await outbox_types(session_factory)

    @pytest.mark.asyncio
    async def test_event_ticket_commits_paid_seat(
        self, ledger, gateway, make_event, attendee_of, load, user_id
    ) -> None:
        event = await make_event(max_attendees=5, is_free=False, price=Decimal("1000"))
        init = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        gateway.succeed(init.reference)

        await ledger.verify(init.reference)

        attendee = await attendee_of(event.id, user_id)
        assert attendee.rsvp_status == "going"
        assert attendee.payment_status == "completed"
        assert attendee.payment_reference == init.reference
        assert (await load(Event, event.id)).attendees_count == 1

    @pytest.mark.asyncio
    async def test_event_filled_before_settlement_records_fault(
        self, ledger, capacity, gateway, make_event, attendee_of, session_factory, user_id
    ) -> None:
        event = await make_event(max_attendees=1, is_free=False, price=Decimal("1000"))
        init = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        await capacity.rsvp(event.id, uuid.uuid4(), "going")
        gateway.succeed(init.reference)

        payment = await ledger.verify(init.reference)

        assert payment.status == "success"
        assert await attendee_of(event.id, user_id) is None
        async with session_factory() as db:
            fault = (await db.execute(select(ReconciliationFault))).scalar_one()
        assert fault.kind == "capacity_exhausted"
    @pytest.mark.asyncio
    async def test_cancelled_booking_is_not_paid(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        async with session_factory() as db:
            await db.execute(
                update(Booking).where(Booking.id == booking.id).values(status="cancelled")
            )
            await db.commit()
        gateway.succeed(init.reference)

        payment = await ledger.verify(init.reference)

        assert payment.status == "success"
        booking = await load(Booking, booking.id)
        assert booking.status == "cancelled"
        assert booking.payment_status == "pending"
        assert booking.payment_id is None
        async with session_factory() as db:
            fault = (await db.execute(select(ReconciliationFault))).scalar_one()
        assert fault.kind == "target_cancelled"
        assert fault.payment_id == init.payment_id
        assert "booking.confirmed" not in await outbox_types(session_factory)

    @pytest.mark.asyncio
    async def test_duplicate_ticket_keeps_first_reference(
        self, ledger, gateway, make_event, attendee_of, load, session_factory, user_id
    ) -> None:
        event = await make_event(max_attendees=5, is_free=False, price=Decimal("1000"))
        first = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        second = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        gateway.succeed(first.reference)
        gateway.succeed(second.reference)

        await ledger.verify(first.reference)
        payment = await ledger.verify(second.reference)

        assert payment.status == "success"
        attendee = await attendee_of(event.id, user_id)
        assert attendee.payment_reference == first.reference
        assert (await load(Event, event.id)).attendees_count == 1
        async with session_factory() as db:
            fault = (await db.execute(select(ReconciliationFault))).scalar_one()
        assert fault.kind == "duplicate_payment"
        assert fault.payment_id == second.payment_id

    @pytest.mark.asyncio
    async def test_payment_row_vanishing_mid_settlement_raises_not_found(
        self, ledger, gateway, load, monkeypatch, user_id
    ) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.succeed(init.reference)

        async def vanished(db, payment_id):
            return None

        monkeypatch.setattr(ledger, "_load", vanished)

        with pytest.raises(NotFoundError):
            await ledger.verify(init.reference)

        monkeypatch.undo()
        assert (await load(Payment, init.payment_id)).status == "pending"


class TestRefund:
    """Test suite for refunds."""

    async def _paid_booking(self, ledger, gateway, make_booking, user_id):
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)
        return booking, init

    @pytest.mark.asyncio
    async def test_refund_rolls_booking_back(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking, init = await self._paid_booking(ledger, gateway, make_booking, user_id)

        payment = await ledger.refund(init.payment_id, user_id, reason="provider no-show")

        assert payment.status == "refunded"
        assert payment.refunded_amount == Decimal("5000")
        assert payment.refunded_at is not None
        booking = await load(Booking, booking.id)
        assert booking.payment_status == "refunded"
        assert booking.status == "cancelled"
        types = await outbox_types(session_factory)
        assert types[-2:] == ["booking.refunded", "payment.refunded"]

    @pytest.mark.asyncio
    async def test_second_refund_rejected(
        self, ledger, gateway, make_booking, load, user_id
    ) -> None:
        booking, init = await self._paid_booking(ledger, gateway, make_booking, user_id)
        await ledger.refund(init.payment_id, user_id)

        with pytest.raises(InvalidStateError):
            await ledger.refund(init.payment_id, user_id)

        assert (await load(Booking, booking.id)).payment_status == "refunded"

    @pytest.mark.asyncio
    async def test_refund_by_non_owner_forbidden(
        self, ledger, gateway, make_booking, load, user_id
    ) -> None:
        _, init = await self._paid_booking(ledger, gateway, make_booking, user_id)

        with pytest.raises(ForbiddenError):
            await ledger.refund(init.payment_id, uuid.uuid4())

        payment = await load(Payment, init.payment_id)
        assert payment.status == "success"
        assert payment.refunded_amount is None

    @pytest.mark.asyncio
    async def test_pending_payment_cannot_be_refunded(self, ledger, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")

        with pytest.raises(InvalidStateError):
            await ledger.refund(init.payment_id, user_id)

    @pytest.mark.asyncio
    async def test_refund_above_paid_amount_rejected(self, ledger, gateway, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        with pytest.raises(ValidationError):
            await ledger.refund(init.payment_id, user_id, amount=Decimal("100.01"))

    @pytest.mark.asyncio
    async def test_partial_refund_records_amount(self, ledger, gateway, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        payment = await ledger.refund(init.payment_id, user_id, amount="40")

        assert payment.status == "refunded"
        assert payment.refunded_amount == Decimal("40")

    @pytest.mark.asyncio
    async def test_refunded_ticket_frees_seat(
        self, ledger, gateway, make_event, attendee_of, load, user_id
    ) -> None:
        event = await make_event(max_attendees=1, is_free=False, price=Decimal("1000"))
        init = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        await ledger.refund(init.payment_id, user_id)

        attendee = await attendee_of(event.id, user_id)
        assert attendee.rsvp_status == "not_going"
        assert attendee.payment_status == "refunded"
        assert (await load(Event, event.id)).attendees_count == 0

    @pytest.mark.asyncio
    async def test_unknown_payment(self, ledger, user_id) -> None:
        with pytest.raises(NotFoundError):
            await ledger.refund(uuid.uuid4(), user_id)
    @pytest.mark.asyncio
    async def test_refunding_duplicate_leaves_booking_paid(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id)
        first = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        second = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        gateway.succeed(first.reference)
        gateway.succeed(second.reference)
        await ledger.verify(first.reference)
        await ledger.verify(second.reference)

        payment = await ledger.refund(second.payment_id, user_id, reason="charged twice")

        assert payment.status == "refunded"
        booking = await load(Booking, booking.id)
        assert booking.payment_status == "paid"
        assert booking.status == "confirmed"
        assert booking.payment_id == first.payment_id
        types = await outbox_types(session_factory)
        assert "booking.refunded" not in types
        assert types[-1] == "payment.refunded"

    @pytest.mark.asyncio
    async def test_refunding_duplicate_ticket_keeps_seat(
        self, ledger, gateway, make_event, attendee_of, load, session_factory, user_id
    ) -> None:
        event = await make_event(max_attendees=5, is_free=False, price=Decimal("1000"))
        first = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        second = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        gateway.succeed(first.reference)
        gateway.succeed(second.reference)
        await ledger.verify(first.reference)
        await ledger.verify(second.reference)

        await ledger.refund(second.payment_id, user_id)

        attendee = await attendee_of(event.id, user_id)
        assert attendee.rsvp_status == "going"
        assert attendee.payment_status == "completed"
        assert attendee.payment_reference == first.reference
        assert (await load(Event, event.id)).attendees_count == 1
        assert "event.ticket_released" not in await outbox_types(session_factory)

    @pytest.mark.asyncio
    async def test_refunding_ticket_that_found_event_full_frees_nothing(
        self, ledger, capacity, gateway, make_event, attendee_of, load, user_id
    ) -> None:
        event = await make_event(max_attendees=1, is_free=False, price=Decimal("1000"))
        init = await ledger.initialize(
            user_id, "ada@example.com", 1000, "event-ticket", target=EventTarget(event.id)
        )
        holder = uuid.uuid4()
        await capacity.rsvp(event.id, holder, "going")
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        payment = await ledger.refund(init.payment_id, user_id)

        assert payment.status == "refunded"
        assert await attendee_of(event.id, user_id) is None
        assert (await attendee_of(event.id, holder)).rsvp_status == "going"
        assert (await load(Event, event.id)).attendees_count == 1

    @pytest.mark.asyncio
    async def test_refunding_cancelled_booking_payment_leaves_booking_alone(
        self, ledger, gateway, make_booking, load, session_factory, user_id
    ) -> None:
        booking = await make_booking(user_id)
        init = await ledger.initialize(
            user_id, "ada@example.com", 5000, "service-booking", target=BookingTarget(booking.id)
        )
        async with session_factory() as db:
            await db.execute(
                update(Booking).where(Booking.id == booking.id).values(status="cancelled")
            )
            await db.commit()
        gateway.succeed(init.reference)
        await ledger.verify(init.reference)

        await ledger.refund(init.payment_id, user_id)

        booking = await load(Booking, booking.id)
        assert booking.status == "cancelled"
        assert booking.payment_status == "pending"


class TestQueries:
    """Test suite for payment lookups."""

    @pytest.mark.asyncio
    async def test_get_payment_checks_owner(self, ledger, user_id) -> None:
        init = await ledger.initialize(user_id, "ada@example.com", 100, "other")

        assert (await ledger.get_payment(init.payment_id, user_id)).id == init.payment_id
        with pytest.raises(ForbiddenError):
            await ledger.get_payment(init.payment_id, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await ledger.get_payment(uuid.uuid4(), user_id)

    @pytest.mark.asyncio
    async def test_list_user_payments_paginates_and_filters(self, ledger, gateway, user_id) -> None:
        references = []
        for _ in range(3):
            init = await ledger.initialize(user_id, "ada@example.com", 100, "other")
            references.append(init.reference)
        await ledger.initialize(user_id, "ada@example.com", 100, "subscription")
        await ledger.initialize(uuid.uuid4(), "bo@example.com", 100, "other")
        gateway.succeed(references[0])
        await ledger.verify(references[0])

        page = await ledger.list_user_payments(user_id, page=1, limit=2)
        assert page.total == 4
        assert page.total_pages == 2
        assert len(page.data) == 2

        others = await ledger.list_user_payments(user_id, payment_type="other")
        assert others.total == 3

        succeeded = await ledger.list_user_payments(user_id, status="success")
        assert [p.reference for p in succeeded.data] == [references[0]]

    @pytest.mark.asyncio
    async def test_list_rejects_bad_page(self, ledger, user_id) -> None:
        with pytest.raises(ValidationError):
            await ledger.list_user_payments(user_id, page=0)
