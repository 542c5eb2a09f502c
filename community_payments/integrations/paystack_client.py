"""
Paystack API client with retry logic and comprehensive error handling.

Implements:
- Exponential backoff for transient errors
- Circuit breaker pattern
- Finite per-call timeouts
- Error classification (transient / rate limited / declined)
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from community_payments.config import Settings, get_settings
from community_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Paystack statuses that mean the charge will not complete
FAILED_STATUSES = frozenset({"failed", "reversed"})


class GatewayErrorType(Enum):
    """Classification of gateway errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    RATE_LIMIT = "rate_limit"  # Retry with backoff
    CIRCUIT_OPEN = "circuit_open"  # Fail fast
    DECLINED = "declined"  # Don't retry these


class GatewayError(Exception):
    """Gateway unreachable or failing; the outcome of the call is unknown."""

    kind = "gateway_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        error_type: GatewayErrorType = GatewayErrorType.TRANSIENT,
        http_status: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize gateway error.

        Args:
            message: Error message
            error_type: Classification of error
            http_status: Status code returned by Paystack, if a response arrived
            original_error: Underlying exception
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.http_status = http_status
        self.original_error = original_error
        self.resource_id: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.error_type in (GatewayErrorType.TRANSIENT, GatewayErrorType.RATE_LIMIT)


class GatewayDeclinedError(GatewayError):
    """Paystack answered and refused the request (4xx or ``status: false``)."""

    kind = "gateway_declined"
    status_code = 402

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message, GatewayErrorType.DECLINED, http_status=http_status)


@dataclass(frozen=True)
class GatewayAuthorization:
    authorization_url: str
    access_code: str
    provider_reference: str


@dataclass(frozen=True)
class GatewayVerification:
    """Authoritative outcome of a transaction as reported by Paystack."""

    raw_status: str
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    paid_at: Optional[datetime] = None
    gateway_response: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.raw_status == "success"

    @property
    def failed(self) -> bool:
        return self.raw_status in FAILED_STATUSES


@dataclass(frozen=True)
class ResolvedAccount:
    account_name: str
    account_number: str


class PaymentGateway(Protocol):
    """Operations the ledger and bank-account registry need from a gateway."""

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        currency: str,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
    ) -> GatewayAuthorization:
        ...

    async def verify_transaction(self, provider_reference: str) -> GatewayVerification:
        ...

    async def resolve_account(self, account_number: str, bank_code: str) -> ResolvedAccount:
        ...


def parse_gateway_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Paystack ISO-8601 timestamp into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("gateway_timestamp_unparseable", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class CircuitBreaker:
    """
    Circuit breaker for Paystack API calls.

    Prevents cascading failures by temporarily stopping requests
    when the gateway keeps failing. Only transient failures count;
    a declined request proves the gateway is up.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    async def call(self, func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Await a coroutine function with circuit breaker protection.

        Raises:
            GatewayError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self._set_state("half_open")
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise GatewayError(
                    "Circuit breaker is open",
                    GatewayErrorType.CIRCUIT_OPEN,
                )

        try:
            result = await func()
        except GatewayDeclinedError:
            self.on_success()
            raise
        except GatewayError:
            self.on_failure()
            raise
        self.on_success()
        return result

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._set_state("closed")
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self._set_state("open")
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)


class PaystackClient:
    """
    Paystack REST client.

    Features:
    - Automatic retry with exponential backoff for transient failures
    - Circuit breaker pattern
    - Error classification into GatewayError / GatewayDeclinedError
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        """
        Initialize Paystack client.

        Args:
            settings: Optional settings (defaults to the cached settings)
            transport: Optional httpx transport, used by tests to stub Paystack
            circuit_breaker: Optional circuit breaker
        """
        self.settings = settings or get_settings()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._http = httpx.AsyncClient(
            base_url=self.settings.paystack_base_url,
            headers={
                "Authorization": f"Bearer {self.settings.paystack_secret_key}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.paystack_timeout_seconds,
            transport=transport,
        )

        logger.info(
            "paystack_client_initialized",
            base_url=self.settings.paystack_base_url,
            test_mode=self.settings.is_test_mode,
        )

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Perform one HTTP call and classify the outcome.

        Returns:
            Dict[str, Any]: The ``data`` member of the Paystack envelope

        Raises:
            GatewayError: Timeout, connection failure, 429 or 5xx
            GatewayDeclinedError: Other 4xx or a ``status: false`` envelope
        """
        started = time.perf_counter()
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            metrics.record_gateway_call(operation, "timeout", time.perf_counter() - started)
            raise GatewayError(
                f"Paystack {operation} timed out", GatewayErrorType.TRANSIENT, original_error=e
            )
        except httpx.TransportError as e:
            metrics.record_gateway_call(operation, "network_error", time.perf_counter() - started)
            raise GatewayError(
                f"Paystack {operation} failed: {e}", GatewayErrorType.TRANSIENT, original_error=e
            )

        metrics.record_gateway_call(
            operation, str(response.status_code), time.perf_counter() - started
        )

        if response.status_code == 429:
            raise GatewayError(
                "Paystack rate limit exceeded",
                GatewayErrorType.RATE_LIMIT,
                http_status=response.status_code,
            )
        if response.status_code >= 500:
            raise GatewayError(
                f"Paystack returned HTTP {response.status_code}",
                GatewayErrorType.TRANSIENT,
                http_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(
                "Paystack returned a non-JSON body",
                GatewayErrorType.TRANSIENT,
                http_status=response.status_code,
                original_error=e,
            )

        message = body.get("message") if isinstance(body, dict) else None
        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("status"):
            raise GatewayDeclinedError(
                message or f"Paystack declined {operation}",
                http_status=response.status_code,
            )

        return body.get("data") or {}

    async def _call(self, operation: str, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """Send with retries and the circuit breaker around every attempt."""
        retrying = AsyncRetrying(
            retry=retry_if_exception(
                lambda e: isinstance(e, GatewayError) and e.retryable
            ),
            stop=stop_after_attempt(self.settings.gateway_retry_max_attempts),
            wait=wait_exponential(multiplier=self.settings.gateway_retry_base_delay, max=8),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self.circuit_breaker.call(
                        lambda: self._send(operation, method, path, **kwargs)
                    )
        except GatewayError as e:
            metrics.record_gateway_error(e.error_type.value)
            logger.error(
                "paystack_api_error",
                operation=operation,
                error_type=e.error_type.value,
                http_status=e.http_status,
                error_message=e.message,
            )
            raise
        raise GatewayError(f"Paystack {operation} was not attempted")  # For type checker

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        currency: str,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
    ) -> GatewayAuthorization:
        """
        Initialize a checkout transaction.

        Args:
            email: Customer email
            amount_minor: Amount in the currency's minor unit (kobo for NGN)
            currency: ISO 4217 code
            reference: Our payment reference, reused as the Paystack reference
            metadata: Optional metadata echoed back by Paystack
            callback_url: Optional redirect after checkout

        Returns:
            GatewayAuthorization: Checkout handle

        Raises:
            GatewayError: If Paystack could not be reached
            GatewayDeclinedError: If Paystack refused the request
        """
        logger.info(
            "initializing_transaction",
            reference=reference,
            amount_minor=amount_minor,
            currency=currency,
        )

        payload: Dict[str, Any] = {
            "email": email,
            "amount": amount_minor,
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        callback = callback_url or self.settings.paystack_callback_url
        if callback:
            payload["callback_url"] = callback

        data = await self._call("initialize", "POST", "/transaction/initialize", json=payload)

        authorization_url = data.get("authorization_url")
        access_code = data.get("access_code")
        if not authorization_url or not access_code:
            raise GatewayError(
                "Paystack initialize response is missing the authorization handle",
                GatewayErrorType.TRANSIENT,
            )

        logger.info("transaction_initialized", reference=reference)

        return GatewayAuthorization(
            authorization_url=authorization_url,
            access_code=access_code,
            provider_reference=data.get("reference") or reference,
        )

    async def verify_transaction(self, provider_reference: str) -> GatewayVerification:
        """
        Fetch the authoritative status of a transaction.

        Args:
            provider_reference: Reference the transaction was initialized with

        Returns:
            GatewayVerification: Status, amount, currency and paid-at timestamp
        """
        logger.info("verifying_transaction", reference=provider_reference)

        data = await self._call(
            "verify", "GET", f"/transaction/verify/{quote(provider_reference, safe='')}"
        )

        amount = data.get("amount")
        verification = GatewayVerification(
            raw_status=str(data.get("status") or "unknown").lower(),
            amount_minor=int(amount) if amount is not None else None,
            currency=(data.get("currency") or None),
            paid_at=parse_gateway_timestamp(data.get("paid_at") or data.get("paidAt")),
            gateway_response=data.get("gateway_response"),
        )

        logger.info(
            "transaction_verified",
            reference=provider_reference,
            status=verification.raw_status,
        )
        return verification

    async def resolve_account(self, account_number: str, bank_code: str) -> ResolvedAccount:
        """
        Resolve the holder name of a bank account.

        Raises:
            GatewayDeclinedError: If Paystack cannot resolve the pair
        """
        data = await self._call(
            "resolve_account",
            "GET",
            "/bank/resolve",
            params={"account_number": account_number, "bank_code": bank_code},
        )
        account_name = data.get("account_name")
        if not account_name:
            raise GatewayDeclinedError("Paystack did not return an account name")
        return ResolvedAccount(
            account_name=account_name,
            account_number=data.get("account_number") or account_number,
        )

    async def ping(self) -> None:
        """Single unretried call used by the health check."""
        await self._send("ping", "GET", "/bank", params={"perPage": 1})

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()
