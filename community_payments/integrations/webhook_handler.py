"""
Paystack webhook handler with signature verification and event deduplication.

Implements:
- HMAC-SHA512 signature verification of the raw body
- Event deduplication using Redis (fail-open)
- Routing of charge events to the ledger, which re-verifies with Paystack

The webhook body is a hint; the ledger always asks Paystack for the outcome.
"""
import hashlib
import hmac
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as aioredis
import structlog

from community_payments.config import Settings, get_settings
from community_payments.core.errors import NotFoundError
from community_payments.database.models import PaymentStatus
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class WebhookError(Exception):
    """Raised when a webhook delivery is rejected."""

    kind = "invalid_webhook"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.resource_id: Optional[str] = None


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the payload, as Paystack sends in x-paystack-signature."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


class WebhookHandler:
    """
    Handles Paystack webhook events with deduplication and processing.

    Features:
    - Signature verification using the Paystack secret key
    - Event deduplication (processed delivery ids kept in Redis)
    - Event type routing to registered handlers
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize webhook handler.

        Args:
            redis_client: Optional Redis client for event deduplication
            settings: Optional settings (defaults to the cached settings)
        """
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self._owns_redis = False
        self.event_handlers: Dict[str, Handler] = {}

        logger.info("webhook_handler_initialized")

    async def _ensure_redis(self) -> aioredis.Redis:
        """Ensure Redis client is initialized."""
        if self.redis_client is None:
            self.redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._owns_redis = True
        return self.redis_client

    def register_handler(self, event_type: str, handler: Handler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Paystack event type (e.g., 'charge.success')
            handler: Coroutine receiving the event's ``data`` object
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def register_ledger(self, ledger: Any) -> None:
        """Route charge events to ``ledger.verify``."""

        async def verify_charge(data: Dict[str, Any]) -> Dict[str, Any]:
            reference = data.get("reference")
            if not reference:
                return {"status": "ignored", "reason": "missing reference"}
            try:
                payment = await ledger.verify(reference)
            except NotFoundError:
                logger.info("webhook_unknown_reference", reference=reference)
                return {"status": "ignored", "reason": "unknown reference"}
            return {
                "payment_id": str(payment.id),
                "payment_status": payment.status,
                "final": payment.status != PaymentStatus.PENDING.value,
            }

        self.register_handler("charge.success", verify_charge)
        self.register_handler("charge.failed", verify_charge)

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify webhook signature and parse the event.

        Args:
            payload: Raw request body as bytes
            signature: x-paystack-signature header value

        Returns:
            Dict[str, Any]: Parsed event

        Raises:
            WebhookError: If the signature is missing or wrong, or the body is not JSON
        """
        if not signature:
            logger.warning("webhook_signature_missing")
            raise WebhookError("Missing webhook signature")

        expected = compute_signature(payload, self.settings.paystack_secret_key)
        if not hmac.compare_digest(expected, signature):
            logger.error("webhook_signature_verification_failed")
            raise WebhookError("Invalid webhook signature")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookError(f"Webhook body is not JSON: {e}")
        if not isinstance(event, dict) or "event" not in event:
            raise WebhookError("Webhook body has no event type")

        logger.info("webhook_signature_verified", event_type=event.get("event"))
        return event

    @staticmethod
    def delivery_id(event: Dict[str, Any]) -> str:
        """Stable id of a delivery: event type plus the object id (or reference)."""
        data = event.get("data") or {}
        object_id = data.get("id") or data.get("reference") or "unknown"
        return f"{event.get('event')}:{object_id}"

    async def is_event_processed(self, delivery_id: str) -> bool:
        """
        Check if webhook event has already been processed.

        Returns False when Redis is unavailable so the event is not lost.
        """
        try:
            redis = await self._ensure_redis()
            return bool(await redis.exists(f"webhook:processed:{delivery_id}"))
        except Exception as e:
            logger.warning("webhook_dedup_check_error", error=str(e), delivery_id=delivery_id)
            return False

    async def mark_event_processed(self, delivery_id: str) -> None:
        """Remember a processed delivery for the configured TTL."""
        try:
            redis = await self._ensure_redis()
            await redis.setex(
                f"webhook:processed:{delivery_id}", self.settings.webhook_dedup_ttl, "1"
            )
        except Exception as e:
            logger.warning("webhook_mark_processed_error", error=str(e), delivery_id=delivery_id)

    async def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a verified webhook event.

        Handler exceptions propagate (after logging) so the caller can ask
        Paystack to redeliver. The delivery is only marked processed on success,
        and not while the handler reports a non-final outcome (``final: False``)
        so a redelivery after the gateway settles is still acted on.

        Returns:
            Dict[str, Any]: Processing result
        """
        event_type = str(event.get("event"))
        delivery_id = self.delivery_id(event)
        started = time.perf_counter()

        logger.info("processing_webhook_event", delivery_id=delivery_id, event_type=event_type)

        if await self.is_event_processed(delivery_id):
            logger.info("webhook_event_already_processed", delivery_id=delivery_id)
            metrics.record_webhook_event(event_type, "duplicate", time.perf_counter() - started)
            return {"status": "duplicate", "event_id": delivery_id}

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_no_handler", delivery_id=delivery_id, event_type=event_type)
            await self.mark_event_processed(delivery_id)
            metrics.record_webhook_event(event_type, "ignored", time.perf_counter() - started)
            return {"status": "no_handler", "event_id": delivery_id, "event_type": event_type}

        try:
            result = await handler(event.get("data") or {})
        except Exception as e:
            metrics.record_webhook_event(event_type, "failed", time.perf_counter() - started)
            logger.error(
                "webhook_event_processing_failed",
                delivery_id=delivery_id,
                event_type=event_type,
                error=str(e),
            )
            raise

        if result.get("final") is False:
            metrics.record_webhook_event(event_type, "pending", time.perf_counter() - started)
            logger.info("webhook_event_not_final", delivery_id=delivery_id, event_type=event_type)
            return {"status": "pending", "event_id": delivery_id, "event_type": event_type, "result": result}

        await self.mark_event_processed(delivery_id)
        metrics.record_webhook_event(event_type, "processed", time.perf_counter() - started)
        logger.info("webhook_event_processed", delivery_id=delivery_id, event_type=event_type)

        return {"status": "success", "event_id": delivery_id, "event_type": event_type, "result": result}

    async def close(self) -> None:
        """Close the Redis connection if this handler opened it."""
        if self.redis_client is not None and self._owns_redis:
            await self.redis_client.aclose()
