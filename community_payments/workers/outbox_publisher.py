"""
Outbox publisher background worker.

Continuously polls the outbox table and publishes payment, booking and
ticket events.
"""
import asyncio
import json
import signal
from typing import Any, Dict

import redis.asyncio as aioredis
import structlog

from community_payments.config import get_settings
from community_payments.core.outbox import OutboxPublisher
from community_payments.database.connection import close_db, get_session_factory
from community_payments.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)

STREAM_NAME = "community_payments:events"


def make_stream_publisher(redis_client: aioredis.Redis):
    """Publisher appending each event to a Redis stream."""

    async def publish(event_data: Dict[str, Any]) -> None:
        await redis_client.xadd(
            STREAM_NAME,
            {
                "event_type": event_data["event_type"],
                "aggregate_id": event_data["aggregate_id"],
                "body": json.dumps(event_data, default=str),
            },
        )

    return publish


async def start_outbox_publisher() -> None:
    """
    Start the outbox publisher worker.

    Runs continuously until stopped.
    """
    setup_logging()
    settings = get_settings()

    logger.info("outbox_publisher_worker_starting")

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    publisher = OutboxPublisher(
        get_session_factory(),
        publisher_func=make_stream_publisher(redis_client),
        batch_size=settings.outbox_batch_size,
        poll_interval_seconds=settings.outbox_poll_interval_seconds,
    )

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("outbox_publisher_worker_shutdown_signal_received", signal=sig)
        publisher.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await publisher.start()
    except Exception as e:
        logger.error("outbox_publisher_worker_error", error=str(e))
        raise
    finally:
        await redis_client.aclose()
        await close_db()
        logger.info("outbox_publisher_worker_stopped")


def main() -> None:
    asyncio.run(start_outbox_publisher())


if __name__ == "__main__":
    main()
