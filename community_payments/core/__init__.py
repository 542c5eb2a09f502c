"""Core payment, capacity and reconciliation logic."""
from .bank_accounts import BankAccountRegistry
from .capacity import CapacityService
from .ledger import PaymentLedger
from .outbox import OutboxPublisher
from .reconciler import Reconciler
from .reconciliation import ReconciliationEngine
from .services import Services, build_services

__all__ = [
    "BankAccountRegistry",
    "CapacityService",
    "OutboxPublisher",
    "PaymentLedger",
    "ReconciliationEngine",
    "Reconciler",
    "Services",
    "build_services",
]
