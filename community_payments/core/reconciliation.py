"""
Reconciliation engine for payments stuck in pending.

A checkout whose webhook never arrived and whose client never polled stays
pending forever unless something asks the gateway. The sweep re-verifies
stale pending payments through the ledger, and the fault listing exposes
settled payments that could not be applied to their target.
"""
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.config import Settings, get_settings
from community_payments.core.errors import NotFoundError, PaymentError
from community_payments.core.ledger import PaymentLedger
from community_payments.database.models import PaymentStatus, ReconciliationFault
from community_payments.integrations.paystack_client import GatewayError
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class ReconciliationEngine:
    """
    Re-verifies stale pending payments and manages reconciliation faults.
    """

    def __init__(
        self,
        ledger: PaymentLedger,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        """
        Initialize reconciliation engine.

        Args:
            ledger: Ledger used to verify payments
            session_factory: Session factory for fault queries
            settings: Optional settings (defaults to the cached settings)
        """
        self.ledger = ledger
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        logger.info("reconciliation_engine_initialized")

    async def sweep_pending(
        self,
        older_than_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Re-verify pending payments older than the cut-off.

        Gateway errors are counted and leave the payment pending for the
        next sweep.

        Args:
            older_than_minutes: Age cut-off (defaults to the configured age)
            limit: Max payments to check (defaults to the configured batch size)

        Returns:
            Dict[str, Any]: Counts of checked, succeeded, failed, still_pending and errors
        """
        age = (
            older_than_minutes
            if older_than_minutes is not None
            else self.settings.reconciliation_pending_age_minutes
        )
        batch = limit if limit is not None else self.settings.reconciliation_batch_size
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=age)
        started = time.perf_counter()

        logger.info("reconciliation_sweep_started", older_than_minutes=age, limit=batch)

        references = await self.ledger.find_stale_pending(cutoff, batch)
        results: Dict[str, Any] = {
            "checked": 0,
            "succeeded": 0,
            "failed": 0,
            "still_pending": 0,
            "errors": 0,
        }

        for reference in references:
            results["checked"] += 1
            try:
                payment = await self.ledger.verify(reference)
            except (GatewayError, PaymentError) as e:
                results["errors"] += 1
                logger.warning(
                    "reconciliation_sweep_payment_error",
                    reference=reference,
                    error_kind=e.kind,
                    error=str(e),
                )
                continue

            if payment.status == PaymentStatus.SUCCESS.value:
                results["succeeded"] += 1
            elif payment.status == PaymentStatus.FAILED.value:
                results["failed"] += 1
            elif payment.status == PaymentStatus.PENDING.value:
                results["still_pending"] += 1

        duration = time.perf_counter() - started
        metrics.record_sweep(results, duration)
        logger.info("reconciliation_sweep_completed", duration_seconds=round(duration, 3), **results)
        return results

    async def list_faults(
        self, resolved: Optional[bool] = False, limit: int = 100
    ) -> List[ReconciliationFault]:
        """Faults, newest first; ``resolved=None`` lists all of them."""
        stmt = select(ReconciliationFault).order_by(
            ReconciliationFault.created_at.desc(), ReconciliationFault.id.desc()
        )
        if resolved is not None:
            stmt = stmt.where(ReconciliationFault.resolved.is_(resolved))
        async with self.session_factory() as db:
            return list((await db.execute(stmt.limit(limit))).scalars().all())

    async def list_faults_for_payment(self, payment_id: uuid.UUID) -> List[ReconciliationFault]:
        async with self.session_factory() as db:
            stmt = (
                select(ReconciliationFault)
                .where(ReconciliationFault.payment_id == payment_id)
                .order_by(ReconciliationFault.id)
            )
            return list((await db.execute(stmt)).scalars().all())

    async def resolve_fault(self, fault_id: int) -> ReconciliationFault:
        """
        Mark a fault repaired.

        Raises:
            NotFoundError: Unknown fault
        """
        async with self.session_factory() as db:
            result = await db.execute(
                update(ReconciliationFault)
                .where(ReconciliationFault.id == fault_id)
                .values(resolved=True, resolved_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError("Reconciliation fault not found", resource_id=fault_id)
            await db.commit()
            fault = await db.get(ReconciliationFault, fault_id, populate_existing=True)

        logger.info("reconciliation_fault_resolved", fault_id=fault_id)
        return fault
