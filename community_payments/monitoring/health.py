"""
Health checks for Kubernetes readiness/liveness probes.

Checks:
- Database connectivity
- Redis connectivity
- Paystack API reachability
"""
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as aioredis
import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_payments.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - Redis connectivity check
    - Paystack reachability check
    - Overall system health status
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway_ping: Optional[Callable[[], Awaitable[None]]] = None,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize health check service.

        Args:
            session_factory: Session factory to probe
            gateway_ping: Coroutine function probing the gateway; skipped when None
            redis_client: Optional Redis client (a short-lived one is opened otherwise)
            settings: Optional settings (defaults to the cached settings)
        """
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.gateway_ping = gateway_ping
        self.redis_client = redis_client

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "service": "database",
                "message": "Database connection successful",
            }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_redis(self) -> Dict[str, Any]:
        """
        Check Redis connectivity.

        Raises:
            HealthCheckError: If Redis check fails
        """
        redis_client = self.redis_client
        owned = redis_client is None
        try:
            if redis_client is None:
                redis_client = aioredis.from_url(
                    self.settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )

            await redis_client.ping()

            return {
                "status": "healthy",
                "service": "redis",
                "message": "Redis connection successful",
            }

        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis health check failed: {str(e)}")

        finally:
            if owned and redis_client is not None:
                await redis_client.aclose()

    async def check_gateway(self) -> Dict[str, Any]:
        """
        Check Paystack API reachability.

        Raises:
            HealthCheckError: If Paystack check fails
        """
        if self.gateway_ping is None:
            return {
                "status": "skipped",
                "service": "paystack",
                "message": "No gateway probe configured",
            }
        try:
            await self.gateway_ping()

            return {
                "status": "healthy",
                "service": "paystack",
                "message": "Paystack API connection successful",
                "test_mode": self.settings.is_test_mode,
            }

        except Exception as e:
            logger.error("paystack_health_check_failed", error=str(e))
            raise HealthCheckError(f"Paystack health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Redis backs only webhook deduplication, which fails open, so an
        unhealthy Redis degrades the status instead of failing it.
        """
        checks: Dict[str, Any] = {}
        healthy = True
        degraded = False

        checks_to_run = [
            ("database", self.check_database, True),
            ("redis", self.check_redis, False),
            ("paystack", self.check_gateway, True),
        ]
        for name, check, critical in checks_to_run:
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                if critical:
                    healthy = False
                else:
                    degraded = True

        if not healthy:
            status = "unhealthy"
        elif degraded:
            status = "degraded"
        else:
            status = "healthy"
        return {"status": status, "checks": checks}

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: all dependency checks."""
        return await self.check_all()
