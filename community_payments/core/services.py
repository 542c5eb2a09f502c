"""Wiring of the core components around one gateway and session factory."""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.config import Settings, get_settings
from community_payments.core.bank_accounts import BankAccountRegistry
from community_payments.core.capacity import CapacityService
from community_payments.core.ledger import PaymentLedger
from community_payments.core.reconciler import Reconciler
from community_payments.core.reconciliation import ReconciliationEngine
from community_payments.integrations.paystack_client import PaymentGateway


@dataclass
class Services:
    """Everything a request handler or worker needs."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    gateway: PaymentGateway
    ledger: PaymentLedger
    capacity: CapacityService
    bank_accounts: BankAccountRegistry
    reconciliation: ReconciliationEngine


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    gateway: PaymentGateway,
    settings: Optional[Settings] = None,
) -> Services:
    """
    Build the component graph.

    Args:
        session_factory: Session factory shared by every component
        gateway: Gateway client (PaystackClient in production, a fake in tests)
        settings: Optional settings (defaults to the cached settings)

    Returns:
        Services: The wired components
    """
    settings = settings or get_settings()
    capacity = CapacityService(session_factory, settings)
    ledger = PaymentLedger(
        session_factory,
        gateway,
        reconciler=Reconciler(),
        capacity=capacity,
        settings=settings,
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        gateway=gateway,
        ledger=ledger,
        capacity=capacity,
        bank_accounts=BankAccountRegistry(session_factory, gateway),
        reconciliation=ReconciliationEngine(ledger, session_factory, settings),
    )
