"""
Payment ledger: payment records and their state machine.

Orchestrates the payment lifecycle:
1. initialize: validate, mint a reference, open a Paystack checkout, persist a
   pending payment
2. verify: ask Paystack for the authoritative outcome and move the payment out
   of pending, reconciling the booking or seat in the same transaction
3. refund: move a successful payment to refunded and roll its target back

Gateway calls never happen inside a database transaction. Status changes are
compare-and-set updates, so concurrent verifications apply side effects once.
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.config import Settings, get_settings
from community_payments.core.capacity import CapacityService
from community_payments.core.errors import (
    AlreadyPaidError,
    AtCapacityError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ReferenceCollisionError,
    ValidationError,
)
from community_payments.core.money import (
    Amount,
    normalize_currency,
    parse_amount,
    to_minor_units,
)
from community_payments.core.outbox import write_outbox_event
from community_payments.core.reconciler import Reconciler, record_fault
from community_payments.core.references import new_reference, reference_in_use
from community_payments.core.targets import (
    BookingTarget,
    EventTarget,
    PaymentTarget,
    target_columns,
    validate_target_for_type,
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
    PaymentEvent,
    PaymentStatus,
)
from community_payments.integrations.paystack_client import (
    GatewayError,
    GatewayVerification,
    PaymentGateway,
)
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Reference pre-check attempts before giving up
MAX_REFERENCE_ATTEMPTS = 5

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    PaymentStatus.PENDING.value: frozenset(
        {PaymentStatus.SUCCESS.value, PaymentStatus.FAILED.value}
    ),
    PaymentStatus.SUCCESS.value: frozenset({PaymentStatus.REFUNDED.value}),
}

TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.SUCCESS.value,
        PaymentStatus.FAILED.value,
        PaymentStatus.REFUNDED.value,
        PaymentStatus.CANCELLED.value,
    }
)


def check_transition(from_status: str, to_status: str) -> None:
    """
    Validate a payment status change.

    Raises:
        InvalidTransitionError: If the state machine does not allow it
    """
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise InvalidTransitionError(
            f"Payment cannot move from {from_status} to {to_status}"
        )


@dataclass(frozen=True)
class InitializationResult:
    authorization_url: str
    access_code: str
    reference: str
    payment_id: uuid.UUID


@dataclass
class PaymentPage:
    """One page of a user's payments, newest first."""

    data: List[Payment]
    total: int
    page: int
    limit: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentLedger:
    """
    Payment lifecycle orchestrator.

    Owns ``Payment.status``: nothing else writes it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        reconciler: Optional[Reconciler] = None,
        capacity: Optional[CapacityService] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize payment ledger.

        Args:
            session_factory: Session factory used for every operation
            gateway: Payment gateway client
            reconciler: Optional reconciler (defaults to a new one)
            capacity: Optional capacity service for the event pre-check
            settings: Optional settings (defaults to the cached settings)
        """
        self.session_factory = session_factory
        self.gateway = gateway
        self.reconciler = reconciler or Reconciler()
        self.settings = settings or get_settings()
        self.capacity = capacity or CapacityService(session_factory, self.settings)

        logger.info("payment_ledger_initialized")

    async def _record_payment_event(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        event_type: str,
        event_data: Dict[str, Any],
        correlation_id: uuid.UUID,
    ) -> None:
        """
        Record a payment event for audit trail.

        Args:
            db: Database session
            payment_id: Payment ID
            event_type: Event type
            event_data: Event data
            correlation_id: Correlation ID for tracing
        """
        db.add(
            PaymentEvent(
                payment_id=payment_id,
                event_type=event_type,
                event_data=event_data,
                correlation_id=correlation_id,
            )
        )

    async def _transition(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        from_status: str,
        to_status: str,
        **values: Any,
    ) -> bool:
        """
        Compare-and-set a payment's status.

        Returns:
            bool: True if this caller performed the transition

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        check_transition(from_status, to_status)
        result = await db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == from_status)
            .values(status=to_status, updated_at=_now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _load(self, db: AsyncSession, payment_id: uuid.UUID) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id).execution_options(
            populate_existing=True
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _reload(self, payment_id: uuid.UUID) -> Payment:
        async with self.session_factory() as db:
            payment = await self._load(db, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found", resource_id=payment_id)
        return payment

    async def _find_by_reference(self, reference: str) -> Optional[Payment]:
        """Look up by internal reference, falling back to the gateway reference."""
        async with self.session_factory() as db:
            stmt = select(Payment).where(Payment.reference == reference)
            payment = (await db.execute(stmt)).scalar_one_or_none()
            if payment is None:
                stmt = select(Payment).where(Payment.external_reference == reference)
                payment = (await db.execute(stmt)).scalars().first()
        return payment

    # ------------------------------------------------------------------
    # initialize
    # ------------------------------------------------------------------

    async def _check_booking_target(self, db: AsyncSession, user_id: uuid.UUID, target: BookingTarget) -> None:
        booking = (
            await db.execute(select(Booking).where(Booking.id == target.booking_id))
        ).scalar_one_or_none()
        # Someone else's booking is reported as missing
        if booking is None or booking.user_id != user_id:
            raise NotFoundError("Booking not found", resource_id=target.booking_id)
        if booking.payment_status == BookingPaymentStatus.PAID.value:
            raise AlreadyPaidError("Booking is already paid", resource_id=booking.id)
        if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value):
            raise InvalidStateError(
                f"Cannot pay for a {booking.status} booking", resource_id=booking.id
            )

    async def _check_event_target(self, db: AsyncSession, user_id: uuid.UUID, target: EventTarget) -> None:
        event = (
            await db.execute(select(Event).where(Event.id == target.event_id))
        ).scalar_one_or_none()
        if event is None:
            raise NotFoundError("Event not found", resource_id=target.event_id)
        if event.is_free:
            raise ValidationError("This event is free; RSVP instead of paying", resource_id=event.id)

        attendee = (
            await db.execute(
                select(EventAttendee).where(
                    EventAttendee.event_id == event.id, EventAttendee.user_id == user_id
                )
            )
        ).scalar_one_or_none()
        if attendee is not None and attendee.payment_status == AttendeePaymentStatus.COMPLETED.value:
            raise AlreadyPaidError("You already hold a paid ticket for this event", resource_id=event.id)

        if not await self.capacity.has_room(event.id, user_id):
            raise AtCapacityError("Event is at capacity", resource_id=event.id)

    async def _existing_for_key(
        self, user_id: uuid.UUID, idempotency_key: str
    ) -> Optional[Payment]:
        async with self.session_factory() as db:
            stmt = select(Payment).where(
                Payment.user_id == user_id, Payment.idempotency_key == idempotency_key
            )
            return (await db.execute(stmt)).scalar_one_or_none()

    def _replay(
        self,
        payment: Payment,
        amount: Decimal,
        currency: str,
        payment_type: str,
    ) -> InitializationResult:
        if (
            Decimal(payment.amount) != amount
            or payment.currency != currency
            or payment.type != payment_type
        ):
            raise ConflictError(
                "Idempotency key was already used for a different payment",
                resource_id=payment.id,
            )
        metrics.record_initialization(payment_type, currency, "idempotent")
        logger.info(
            "payment_idempotent_return",
            payment_id=str(payment.id),
            reference=payment.reference,
        )
        return InitializationResult(
            authorization_url=payment.authorization_url or "",
            access_code=payment.access_code or "",
            reference=payment.reference,
            payment_id=payment.id,
        )

    async def _mint_reference(self) -> str:
        async with self.session_factory() as db:
            for _ in range(MAX_REFERENCE_ATTEMPTS):
                reference = new_reference(self.settings.payment_reference_prefix)
                if not await reference_in_use(db, reference):
                    return reference
                logger.warning("payment_reference_collision", reference=reference)
        raise ReferenceCollisionError("Could not mint an unused payment reference")

    async def initialize(
        self,
        user_id: uuid.UUID,
        email: str,
        amount: Amount,
        payment_type: str,
        currency: Optional[str] = None,
        target: PaymentTarget = None,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        callback_url: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> InitializationResult:
        """
        Open a checkout with the gateway and persist a pending payment.

        Args:
            user_id: Paying user
            email: Customer email sent to the gateway
            amount: Major-unit amount (naira for NGN)
            payment_type: One of the PaymentType values
            currency: ISO 4217 code (defaults to the configured currency)
            target: What the payment is for
            metadata: Free-form metadata stored and sent to the gateway
            description: Optional description
            callback_url: Optional checkout redirect
            idempotency_key: Optional client key; a repeat returns the first handle

        Returns:
            InitializationResult: Checkout handle and the new payment's id

        Raises:
            ValidationError: Bad amount, currency, email or target
            NotFoundError: Target does not exist (or is not the user's booking)
            AlreadyPaidError: Target already paid
            InvalidStateError: Booking cancelled or completed
            AtCapacityError: Event has no room
            ConflictError: Idempotency key reused for a different payment
            GatewayError: Gateway unreachable; nothing was persisted
            GatewayDeclinedError: Gateway refused the checkout
        """
        correlation_id = uuid.uuid4()
        currency_code = normalize_currency(
            currency or self.settings.default_currency,
            self.settings.get_supported_currencies(),
        )
        value = parse_amount(amount, currency_code)
        validate_target_for_type(payment_type, target)
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")

        logger.info(
            "payment_initialization_started",
            correlation_id=str(correlation_id),
            user_id=str(user_id),
            amount=str(value),
            currency=currency_code,
            payment_type=payment_type,
        )

        if idempotency_key:
            existing = await self._existing_for_key(user_id, idempotency_key)
            if existing is not None:
                return self._replay(existing, value, currency_code, payment_type)

        try:
            async with self.session_factory() as db:
                if isinstance(target, BookingTarget):
                    await self._check_booking_target(db, user_id, target)
                elif isinstance(target, EventTarget):
                    await self._check_event_target(db, user_id, target)
        except Exception:
            metrics.record_initialization(payment_type, currency_code, "rejected")
            raise

        reference = await self._mint_reference()
        columns = target_columns(target)
        gateway_metadata: Dict[str, Any] = {
            "payment_type": payment_type,
            "user_id": str(user_id),
            **{name: str(value_) for name, value_ in columns.items() if value_ is not None},
        }
        if metadata:
            gateway_metadata.update(metadata)

        amount_minor = to_minor_units(value, currency_code)
        authorization = await self.gateway.initialize_transaction(
            email=email,
            amount_minor=amount_minor,
            currency=currency_code,
            reference=reference,
            metadata=gateway_metadata,
            callback_url=callback_url,
        )

        payment = Payment(
            id=uuid.uuid4(),
            user_id=user_id,
            amount=value,
            currency=currency_code,
            status=PaymentStatus.PENDING.value,
            type=payment_type,
            reference=reference,
            external_reference=authorization.provider_reference,
            access_code=authorization.access_code,
            authorization_url=authorization.authorization_url,
            idempotency_key=idempotency_key,
            description=description,
            metadata_=metadata,
            **columns,
        )

        async with self.session_factory() as db:
            try:
                db.add(payment)
                await self._record_payment_event(
                    db,
                    payment.id,
                    "payment.initialized",
                    {"amount": str(value), "currency": currency_code, "reference": reference},
                    correlation_id,
                )
                await write_outbox_event(
                    db,
                    aggregate_id=payment.id,
                    aggregate_type="payment",
                    event_type="payment.initialized",
                    payload={
                        "payment_id": str(payment.id),
                        "user_id": str(user_id),
                        "reference": reference,
                        "amount": str(value),
                        "currency": currency_code,
                        "type": payment_type,
                    },
                )
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                if idempotency_key:
                    # A concurrent request with the same key won the insert
                    existing = await self._existing_for_key(user_id, idempotency_key)
                    if existing is not None:
                        return self._replay(existing, value, currency_code, payment_type)
                logger.error(
                    "payment_insert_conflict",
                    correlation_id=str(correlation_id),
                    reference=reference,
                    error=str(e),
                )
                raise ReferenceCollisionError(
                    "Payment reference already exists", resource_id=reference
                ) from e

        metrics.record_initialization(payment_type, currency_code, "created", amount_minor)
        logger.info(
            "payment_initialized",
            correlation_id=str(correlation_id),
            payment_id=str(payment.id),
            reference=reference,
        )

        return InitializationResult(
            authorization_url=authorization.authorization_url,
            access_code=authorization.access_code,
            reference=reference,
            payment_id=payment.id,
        )

    # ------------------------------------------------------------------
    # verify
    # ------------------------------------------------------------------

    async def verify(self, reference: str) -> Payment:
        """
        Settle a payment from the gateway's authoritative outcome.

        Safe to call any number of times, concurrently: only the caller that
        wins the pending -> success transition reconciles the target.

        Args:
            reference: Internal reference or gateway reference

        Returns:
            Payment: The payment after verification

        Raises:
            NotFoundError: Unknown reference
            GatewayError: Gateway unreachable; the payment stays pending
            GatewayDeclinedError: Gateway refused; the payment stays pending
            ReconciliationError: Target update failed; the payment stays pending
        """
        payment = await self._find_by_reference(reference)
        if payment is None:
            raise NotFoundError("Payment not found", resource_id=reference)

        if payment.status in TERMINAL_STATUSES:
            metrics.record_verification("already_terminal")
            logger.info(
                "payment_verify_terminal",
                payment_id=str(payment.id),
                status=payment.status,
            )
            return payment

        try:
            verification = await self.gateway.verify_transaction(
                payment.external_reference or payment.reference
            )
        except GatewayError as e:
            metrics.record_verification("error")
            logger.warning(
                "payment_verify_gateway_error",
                payment_id=str(payment.id),
                reference=payment.reference,
                error_type=e.error_type.value,
                error=str(e),
            )
            raise

        if verification.succeeded:
            return await self._settle(payment.id, verification)
        if verification.failed:
            return await self._fail(payment.id, verification)

        metrics.record_verification("pending")
        logger.info(
            "payment_still_pending",
            payment_id=str(payment.id),
            gateway_status=verification.raw_status,
        )
        return payment

    async def _settle(self, payment_id: uuid.UUID, verification: GatewayVerification) -> Payment:
        correlation_id = uuid.uuid4()
        paid_at = verification.paid_at or _now()

        async with self.session_factory() as db:
            try:
                won = await self._transition(
                    db,
                    payment_id,
                    PaymentStatus.PENDING.value,
                    PaymentStatus.SUCCESS.value,
                    paid_at=paid_at,
                )
                if not won:
                    await db.rollback()
                    payment = await self._reload(payment_id)
                    metrics.record_verification("already_terminal")
                    logger.info(
                        "payment_settle_lost_race",
                        payment_id=str(payment_id),
                        status=payment.status,
                    )
                    return payment

                payment = await self._load(db, payment_id)
                if payment is None:
                    raise NotFoundError("Payment not found", resource_id=payment_id)

                expected_minor = to_minor_units(Decimal(payment.amount), payment.currency)
                if (
                    verification.amount_minor is not None
                    and verification.amount_minor != expected_minor
                ) or (
                    verification.currency is not None
                    and verification.currency.upper() != payment.currency
                ):
                    await record_fault(
                        db,
                        payment,
                        FaultKind.AMOUNT_MISMATCH.value,
                        {
                            "expected_minor": expected_minor,
                            "expected_currency": payment.currency,
                            "gateway_minor": verification.amount_minor,
                            "gateway_currency": verification.currency,
                        },
                    )

                await self.reconciler.on_payment_settled(db, payment)

                await self._record_payment_event(
                    db,
                    payment.id,
                    "payment.succeeded",
                    {"paid_at": paid_at.isoformat(), "gateway_status": verification.raw_status},
                    correlation_id,
                )
                await write_outbox_event(
                    db,
                    aggregate_id=payment.id,
                    aggregate_type="payment",
                    event_type="payment.succeeded",
                    payload={
                        "payment_id": str(payment.id),
                        "reference": payment.reference,
                        "type": payment.type,
                        "amount": str(payment.amount),
                        "currency": payment.currency,
                        "paid_at": paid_at.isoformat(),
                    },
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_verification("success")
        logger.info(
            "payment_verified",
            correlation_id=str(correlation_id),
            payment_id=str(payment.id),
            reference=payment.reference,
            status=payment.status,
        )
        return payment

    async def _fail(self, payment_id: uuid.UUID, verification: GatewayVerification) -> Payment:
        correlation_id = uuid.uuid4()

        async with self.session_factory() as db:
            try:
                won = await self._transition(
                    db,
                    payment_id,
                    PaymentStatus.PENDING.value,
                    PaymentStatus.FAILED.value,
                )
                if not won:
                    await db.rollback()
                    return await self._reload(payment_id)

                payment = await self._load(db, payment_id)
                if payment is None:
                    raise NotFoundError("Payment not found", resource_id=payment_id)
                await self._record_payment_event(
                    db,
                    payment.id,
                    "payment.failed",
                    {
                        "gateway_status": verification.raw_status,
                        "gateway_response": verification.gateway_response,
                    },
                    correlation_id,
                )
                await write_outbox_event(
                    db,
                    aggregate_id=payment.id,
                    aggregate_type="payment",
                    event_type="payment.failed",
                    payload={
                        "payment_id": str(payment.id),
                        "reference": payment.reference,
                        "gateway_status": verification.raw_status,
                    },
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_verification("failed")
        logger.info(
            "payment_failed",
            correlation_id=str(correlation_id),
            payment_id=str(payment.id),
            gateway_status=verification.raw_status,
        )
        return payment

    # ------------------------------------------------------------------
    # refund
    # ------------------------------------------------------------------

    async def refund(
        self,
        payment_id: uuid.UUID,
        requester_id: uuid.UUID,
        amount: Optional[Amount] = None,
        reason: Optional[str] = None,
    ) -> Payment:
        """
        Refund a successful payment and roll its target back.

        Not idempotent: a second refund raises InvalidStateError.

        Args:
            payment_id: Payment to refund
            requester_id: Caller; must own the payment
            amount: Optional amount (defaults to the full amount)
            reason: Optional reason kept in the audit trail

        Returns:
            Payment: The refunded payment

        Raises:
            NotFoundError: Unknown payment
            ForbiddenError: Caller does not own the payment
            InvalidStateError: Payment is not successful
            ValidationError: Amount not positive or above the paid amount
        """
        correlation_id = uuid.uuid4()

        async with self.session_factory() as db:
            try:
                payment = await self._load(db, payment_id)
                if payment is None:
                    raise NotFoundError("Payment not found", resource_id=payment_id)
                if payment.user_id != requester_id:
                    raise ForbiddenError(
                        "You can only refund your own payments", resource_id=payment_id
                    )
                if payment.status != PaymentStatus.SUCCESS.value:
                    raise InvalidStateError(
                        f"Only successful payments can be refunded (status is {payment.status})",
                        resource_id=payment_id,
                    )

                paid = Decimal(payment.amount)
                refund_amount = paid if amount is None else parse_amount(amount, payment.currency)
                if refund_amount > paid:
                    raise ValidationError(
                        "Refund amount cannot exceed the paid amount", resource_id=payment_id
                    )

                refunded_at = _now()
                won = await self._transition(
                    db,
                    payment_id,
                    PaymentStatus.SUCCESS.value,
                    PaymentStatus.REFUNDED.value,
                    refunded_amount=refund_amount,
                    refunded_at=refunded_at,
                )
                if not won:
                    raise InvalidStateError(
                        "Payment was refunded concurrently", resource_id=payment_id
                    )

                payment = await self._load(db, payment_id)
                if payment is None:
                    raise NotFoundError("Payment not found", resource_id=payment_id)
                await self.reconciler.on_payment_refunded(db, payment)

                await self._record_payment_event(
                    db,
                    payment.id,
                    "payment.refunded",
                    {"amount": str(refund_amount), "reason": reason},
                    correlation_id,
                )
                await write_outbox_event(
                    db,
                    aggregate_id=payment.id,
                    aggregate_type="payment",
                    event_type="payment.refunded",
                    payload={
                        "payment_id": str(payment.id),
                        "reference": payment.reference,
                        "amount": str(refund_amount),
                        "currency": payment.currency,
                        "reason": reason,
                    },
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics.record_refund(payment.type)
        logger.info(
            "payment_refunded",
            correlation_id=str(correlation_id),
            payment_id=str(payment.id),
            amount=str(refund_amount),
        )
        return payment

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: uuid.UUID, requester_id: uuid.UUID) -> Payment:
        """
        Fetch one of the caller's payments.

        Raises:
            NotFoundError: Unknown payment
            ForbiddenError: Caller does not own the payment
        """
        async with self.session_factory() as db:
            payment = await self._load(db, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found", resource_id=payment_id)
        if payment.user_id != requester_id:
            raise ForbiddenError("You can only view your own payments", resource_id=payment_id)
        return payment

    async def list_user_payments(
        self,
        user_id: uuid.UUID,
        payment_type: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaymentPage:
        """List a user's payments, newest first."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        conditions = [Payment.user_id == user_id]
        if payment_type:
            conditions.append(Payment.type == payment_type)
        if status:
            conditions.append(Payment.status == status)

        async with self.session_factory() as db:
            total = (
                await db.execute(select(func.count(Payment.id)).where(*conditions))
            ).scalar_one()
            stmt = (
                select(Payment)
                .where(*conditions)
                .order_by(Payment.created_at.desc(), Payment.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            payments = list((await db.execute(stmt)).scalars().all())

        return PaymentPage(data=payments, total=int(total), page=page, limit=limit)

    async def find_stale_pending(self, older_than: datetime, limit: int = 100) -> List[str]:
        """References of pending payments created before ``older_than``, oldest first."""
        async with self.session_factory() as db:
            stmt = (
                select(Payment.reference)
                .where(
                    Payment.status == PaymentStatus.PENDING.value,
                    Payment.created_at < older_than,
                )
                .order_by(Payment.created_at)
                .limit(limit)
            )
            return list((await db.execute(stmt)).scalars().all())
