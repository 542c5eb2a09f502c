"""
FastAPI dependencies.

The container builds the component graph once per process; tests replace
``get_services`` and ``get_webhook_handler`` through ``app.dependency_overrides``.
"""
import uuid
from typing import Optional

import redis.asyncio as aioredis
import structlog
from fastapi import Depends, HTTPException, Request, status

from community_payments.config import get_settings
from community_payments.core.services import Services, build_services
from community_payments.database.connection import get_session_factory
from community_payments.integrations.paystack_client import PaystackClient
from community_payments.integrations.webhook_handler import WebhookHandler
from community_payments.monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Lazily built, process-wide components."""

    def __init__(self) -> None:
        self._services: Optional[Services] = None
        self._gateway: Optional[PaystackClient] = None
        self._redis: Optional[aioredis.Redis] = None

    @property
    def services(self) -> Services:
        if self._services is None:
            settings = get_settings()
            self._gateway = PaystackClient(settings)
            self._services = build_services(get_session_factory(), self._gateway, settings)
            logger.info("service_container_built")
        return self._services

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                get_settings().redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self) -> None:
        """Close the gateway and Redis clients if they were opened."""
        if self._gateway is not None:
            await self._gateway.close()
            self._gateway = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._services = None


container = ServiceContainer()


def get_services() -> Services:
    return container.services


def get_redis() -> aioredis.Redis:
    return container.redis


def get_webhook_handler(
    services: Services = Depends(get_services),
    redis_client: aioredis.Redis = Depends(get_redis),
) -> WebhookHandler:
    """Webhook handler routing charge events to the ledger."""
    handler = WebhookHandler(redis_client=redis_client, settings=services.settings)
    handler.register_ledger(services.ledger)
    return handler


def get_health_check(
    services: Services = Depends(get_services),
    redis_client: aioredis.Redis = Depends(get_redis),
) -> HealthCheck:
    return HealthCheck(
        services.session_factory,
        gateway_ping=getattr(services.gateway, "ping", None),
        redis_client=redis_client,
        settings=services.settings,
    )


def get_current_user(request: Request) -> uuid.UUID:
    """
    Caller identity from the configured user header.

    Authentication happens upstream; this layer only trusts the forwarded id.

    Raises:
        HTTPException: 401 if the header is missing or not a UUID
    """
    header = get_settings().user_id_header
    raw = request.headers.get(header)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )
    try:
        user_id = uuid.UUID(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{header} must be a UUID",
        )
    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user_id
