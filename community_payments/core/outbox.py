"""
Transactional outbox pattern implementation.

Domain events are written to the database in the same transaction as the
payment, booking or seat change they describe, then published asynchronously.
"""
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.database.models import OutboxEvent
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

Publisher = Callable[[Dict[str, Any]], Awaitable[None]]


async def write_outbox_event(
    db: AsyncSession,
    aggregate_id: uuid.UUID,
    aggregate_type: str,
    event_type: str,
    payload: Dict[str, Any],
) -> OutboxEvent:
    """
    Write event to transactional outbox.

    Args:
        db: Session of the transaction that makes the change
        aggregate_id: Aggregate ID (e.g., payment ID)
        aggregate_type: Aggregate type (e.g., 'payment')
        event_type: Event type (e.g., 'payment.succeeded')
        payload: JSON-serialisable event payload

    Returns:
        OutboxEvent: The pending row
    """
    outbox_event = OutboxEvent(
        aggregate_id=aggregate_id,
        aggregate_type=aggregate_type,
        event_type=event_type,
        payload=payload,
        published=False,
    )
    db.add(outbox_event)
    return outbox_event


class OutboxPublisher:
    """
    Publishes events from the outbox table.

    At-least-once delivery:
    1. Read unpublished events in insertion order
    2. Publish each one
    3. Mark the published ones
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher_func: Optional[Publisher] = None,
        batch_size: int = 100,
        poll_interval_seconds: float = 1.0,
    ):
        """
        Initialize outbox publisher.

        Args:
            session_factory: Session factory for reading and marking events
            publisher_func: Coroutine publishing one event (defaults to logging it)
            batch_size: Number of events to process per batch
            poll_interval_seconds: Polling interval
        """
        self.session_factory = session_factory
        self.publisher_func = publisher_func or self._default_publisher
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self._running = False

        logger.info(
            "outbox_publisher_initialized",
            batch_size=batch_size,
            poll_interval=poll_interval_seconds,
        )

    async def _default_publisher(self, event_data: Dict[str, Any]) -> None:
        logger.info(
            "outbox_event_published_default",
            event_type=event_data.get("event_type"),
            aggregate_id=event_data.get("aggregate_id"),
        )

    async def _fetch_unpublished_events(self, db: AsyncSession) -> List[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.published.is_(False))
            .order_by(OutboxEvent.id)
            .limit(self.batch_size)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _publish_event(self, event: OutboxEvent) -> bool:
        """
        Publish a single event.

        Returns:
            bool: True if published successfully, False otherwise
        """
        try:
            event_data = {
                "id": event.id,
                "aggregate_id": str(event.aggregate_id),
                "aggregate_type": event.aggregate_type,
                "event_type": event.event_type,
                "payload": event.payload,
                "created_at": event.created_at.isoformat() if event.created_at else None,
            }

            await self.publisher_func(event_data)
            metrics.record_outbox_event_published(event.event_type)

            logger.info(
                "outbox_event_published",
                event_id=event.id,
                event_type=event.event_type,
                aggregate_id=str(event.aggregate_id),
            )

            return True

        except Exception as e:
            logger.error(
                "outbox_event_publish_failed",
                event_id=event.id,
                error=str(e),
            )
            return False

    async def _mark_as_published(self, db: AsyncSession, event_ids: List[int]) -> None:
        if not event_ids:
            return

        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(event_ids))
            .values(published=True, published_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        await db.commit()

        logger.info(
            "outbox_events_marked_published",
            count=len(event_ids),
        )

    async def process_batch(self) -> int:
        """
        Process a batch of unpublished events.

        Returns:
            int: Number of events published
        """
        async with self.session_factory() as db:
            try:
                events = await self._fetch_unpublished_events(db)

                if not events:
                    return 0

                published_ids = []
                for event in events:
                    if await self._publish_event(event):
                        published_ids.append(event.id)
                    else:
                        # Keep ordering: stop at the first failure
                        break

                await self._mark_as_published(db, published_ids)

                logger.info(
                    "outbox_batch_processed",
                    total=len(events),
                    published=len(published_ids),
                )

                return len(published_ids)

            except Exception as e:
                logger.error("outbox_batch_processing_error", error=str(e))
                await db.rollback()
                return 0

    async def start(self) -> None:
        """
        Run the publisher loop until ``stop`` is called.

        Polls for unpublished events and publishes them.
        """
        self._running = True
        logger.info("outbox_publisher_started")

        try:
            while self._running:
                try:
                    published_count = await self.process_batch()
                    metrics.set_outbox_queue_depth(await self.get_pending_count())

                    if published_count == 0:
                        await asyncio.sleep(self.poll_interval_seconds)
                    else:
                        # More may be waiting
                        await asyncio.sleep(0.1)

                except Exception as e:
                    logger.error("outbox_publisher_error", error=str(e))
                    await asyncio.sleep(self.poll_interval_seconds)

        finally:
            logger.info("outbox_publisher_stopped")

    def stop(self) -> None:
        """Stop the outbox publisher."""
        self._running = False
        logger.info("outbox_publisher_stop_requested")

    async def get_pending_count(self) -> int:
        """
        Get count of pending unpublished events.

        Returns:
            int: Number of unpublished events
        """
        async with self.session_factory() as db:
            stmt = select(func.count(OutboxEvent.id)).where(OutboxEvent.published.is_(False))
            return int((await db.execute(stmt)).scalar_one())
