"""
Applies settled and refunded payment outcomes to what the payment paid for.

Runs inside the ledger's transition transaction: the payment status change,
the booking or seat update, the outbox event and any reconciliation fault
commit or roll back together.
"""
import uuid
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from community_payments.core import capacity
from community_payments.core.errors import ReconciliationError
from community_payments.core.outbox import write_outbox_event
from community_payments.core.targets import (
    BillTarget,
    BookingTarget,
    EventTarget,
    PaymentTarget,
    target_of,
)
from community_payments.database.models import Payment, ReconciliationFault
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


async def record_fault(
    db: AsyncSession,
    payment: Payment,
    kind: str,
    details: Optional[Dict[str, Any]] = None,
) -> ReconciliationFault:
    """
    Record that a settled payment could not be fully applied.

    Args:
        db: Session of the settlement transaction
        payment: Payment concerned
        kind: One of the FaultKind values
        details: Extra context for whoever repairs it

    Returns:
        ReconciliationFault: The new fault row
    """
    fault = ReconciliationFault(
        payment_id=payment.id,
        kind=kind,
        details=details or {},
        resolved=False,
    )
    db.add(fault)
    metrics.record_reconciliation_fault(kind)
    logger.warning(
        "reconciliation_fault_recorded",
        payment_id=str(payment.id),
        reference=payment.reference,
        kind=kind,
        details=details,
    )
    return fault


def _target_details(target: PaymentTarget) -> Dict[str, Any]:
    if isinstance(target, BookingTarget):
        return {"booking_id": str(target.booking_id)}
    if isinstance(target, EventTarget):
        return {"event_id": str(target.event_id)}
    if isinstance(target, BillTarget):
        return {"bill_id": str(target.bill_id)}
    return {}


class Reconciler:
    """
    Propagates payment outcomes into bookings, event seats and bills.

    Never commits; the caller's transaction decides.
    """

    async def on_payment_settled(self, db: AsyncSession, payment: Payment) -> Optional[str]:
        """
        Apply a freshly settled payment to its target.

        Returns:
            Optional[str]: Fault kind recorded, or None when fully applied

        Raises:
            ReconciliationError: On any unexpected failure
        """
        return await self._apply(db, payment, settled=True)

    async def on_payment_refunded(self, db: AsyncSession, payment: Payment) -> Optional[str]:
        """Roll a refunded payment's target back."""
        return await self._apply(db, payment, settled=False)

    async def _apply(self, db: AsyncSession, payment: Payment, settled: bool) -> Optional[str]:
        target = target_of(payment)
        action = "settle" if settled else "refund"
        try:
            if isinstance(target, BookingTarget):
                fault = await self._booking(db, payment, target, settled)
            elif isinstance(target, EventTarget):
                fault = await self._event_ticket(db, payment, target, settled)
            elif isinstance(target, BillTarget):
                fault = await self._bill(db, payment, target, settled)
            elif target is None:
                fault = None
            else:  # pragma: no cover
                raise TypeError(f"Unhandled payment target: {target!r}")

            if fault is not None:
                await record_fault(db, payment, fault, {"action": action, **_target_details(target)})
        except Exception as e:
            metrics.record_reconciliation_failure()
            logger.error(
                "reconciliation_failed",
                payment_id=str(payment.id),
                reference=payment.reference,
                action=action,
                error=str(e),
                exc_info=True,
            )
            raise ReconciliationError(
                f"Could not apply payment {payment.reference}: {e}", resource_id=payment.id
            ) from e

        logger.info(
            "payment_reconciled",
            payment_id=str(payment.id),
            action=action,
            target=type(target).__name__ if target is not None else None,
            fault=fault,
        )
        return fault

    async def _booking(
        self, db: AsyncSession, payment: Payment, target: BookingTarget, settled: bool
    ) -> Optional[str]:
        if settled:
            fault = await capacity.settle_booking(db, payment)
            event_type = "booking.confirmed"
        else:
            fault = await capacity.refund_booking(db, payment)
            event_type = "booking.refunded"
        if fault == capacity.NOT_HOLDER:
            return self._skip_not_holder(payment, "booking", target.booking_id)
        if fault is None:
            await write_outbox_event(
                db,
                aggregate_id=target.booking_id,
                aggregate_type="booking",
                event_type=event_type,
                payload={"booking_id": str(target.booking_id), "payment_id": str(payment.id)},
            )
        return fault

    async def _event_ticket(
        self, db: AsyncSession, payment: Payment, target: EventTarget, settled: bool
    ) -> Optional[str]:
        if settled:
            fault = await capacity.commit_ticket(db, payment)
            event_type = "event.ticket_committed"
        else:
            fault = await capacity.release_ticket(db, payment)
            event_type = "event.ticket_released"
        if fault == capacity.NOT_HOLDER:
            return self._skip_not_holder(payment, "event", target.event_id)
        if fault is None:
            await write_outbox_event(
                db,
                aggregate_id=target.event_id,
                aggregate_type="event",
                event_type=event_type,
                payload={
                    "event_id": str(target.event_id),
                    "user_id": str(payment.user_id),
                    "payment_id": str(payment.id),
                },
            )
        return fault

    def _skip_not_holder(
        self, payment: Payment, target_type: str, target_id: uuid.UUID
    ) -> None:
        logger.info(
            "refund_left_target_untouched",
            payment_id=str(payment.id),
            target_type=target_type,
            target_id=str(target_id),
        )
        return None

    async def _bill(
        self, db: AsyncSession, payment: Payment, target: BillTarget, settled: bool
    ) -> Optional[str]:
        # Bills live in another service; it consumes these events.
        await write_outbox_event(
            db,
            aggregate_id=target.bill_id,
            aggregate_type="bill",
            event_type="bill.paid" if settled else "bill.refunded",
            payload={
                "bill_id": str(target.bill_id),
                "payment_id": str(payment.id),
                "amount": str(payment.amount),
                "currency": payment.currency,
            },
        )
        return None
