"""
Reconciliation background worker.

Re-verifies stale pending payments on a fixed interval.
"""
import argparse
import asyncio
import signal
from typing import Any, Optional

import structlog

from community_payments.config import get_settings
from community_payments.core.reconciliation import ReconciliationEngine
from community_payments.core.services import build_services
from community_payments.database.connection import close_db, get_session_factory
from community_payments.integrations.paystack_client import PaystackClient
from community_payments.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_sweep(
    engine: ReconciliationEngine, older_than_minutes: Optional[int] = None
) -> None:
    """Run one sweep, logging rather than raising on failure."""
    try:
        result = await engine.sweep_pending(older_than_minutes=older_than_minutes)
    except Exception as e:
        logger.error("reconciliation_sweep_failed", error=str(e), exc_info=True)
        return

    if result["errors"]:
        logger.warning(
            "reconciliation_sweep_errors",
            errors=result["errors"],
            checked=result["checked"],
        )


async def start_reconciliation_worker(interval_seconds: Optional[int] = None) -> None:
    """
    Start the reconciliation worker.

    Args:
        interval_seconds: Delay between sweeps (defaults to the configured interval)
    """
    setup_logging()
    settings = get_settings()
    interval = interval_seconds or settings.reconciliation_interval_seconds

    logger.info("reconciliation_worker_starting", interval_seconds=interval)

    gateway = PaystackClient(settings)
    services = build_services(get_session_factory(), gateway, settings)
    stop = asyncio.Event()

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("reconciliation_worker_shutdown_signal_received", signal=sig)
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while not stop.is_set():
            await run_sweep(services.reconciliation)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        await gateway.close()
        await close_db()
        logger.info("reconciliation_worker_stopped")


def main() -> None:
    parser = argparse.ArgumentParser(description="Pending payment reconciliation worker")
    parser.add_argument(
        "--interval", type=int, default=None, help="Seconds between sweeps"
    )
    args = parser.parse_args()

    asyncio.run(start_reconciliation_worker(interval_seconds=args.interval))


if __name__ == "__main__":
    main()
