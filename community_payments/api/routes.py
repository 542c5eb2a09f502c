"""
API routes for payments, bank accounts, event RSVPs, webhooks and operations.

Domain errors propagate to the exception handlers registered in ``main``.
"""
import time
import uuid
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from community_payments.core.errors import ForbiddenError
from community_payments.core.services import Services
from community_payments.core.targets import build_target
from community_payments.integrations.webhook_handler import WebhookHandler
from community_payments.monitoring.health import HealthCheck

from .dependencies import get_current_user, get_health_check, get_services, get_webhook_handler
from .schemas import (
    AvailabilityResponse,
    BankAccountResponse,
    BankResponse,
    CreateBankAccountRequest,
    FaultResponse,
    HealthCheckResponse,
    InitializePaymentRequest,
    InitializePaymentResponse,
    PaymentListResponse,
    PaymentResponse,
    ReconcileRequest,
    RefundRequest,
    ReservationResponse,
    RsvpRequest,
    SweepResponse,
    VerifyBankAccountRequest,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
payment_router = APIRouter(prefix="/payments", tags=["payments"])
bank_account_router = APIRouter(prefix="/bank-accounts", tags=["bank-accounts"])
event_router = APIRouter(prefix="/events", tags=["events"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])


# ---------------------------------------------------------------------------
# payments
# ---------------------------------------------------------------------------


@payment_router.post(
    "/initialize",
    response_model=InitializePaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initialize a payment",
    description="Open a Paystack checkout and record a pending payment",
)
async def initialize_payment(
    request: InitializePaymentRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> Dict[str, Any]:
    """
    Initialize a payment.

    Repeating the request with the same Idempotency-Key returns the first checkout.
    """
    logger.info(
        "api_initialize_payment_request",
        payment_type=request.payment_type.value,
        amount=str(request.amount),
        currency=request.currency,
    )

    target = build_target(request.booking_id, request.bill_id, request.event_id)
    result = await services.ledger.initialize(
        user_id=user_id,
        email=request.email,
        amount=request.amount,
        payment_type=request.payment_type.value,
        currency=request.currency,
        target=target,
        metadata=request.metadata,
        description=request.description,
        callback_url=request.callback_url,
        idempotency_key=idempotency_key,
    )

    logger.info(
        "api_initialize_payment_success",
        payment_id=str(result.payment_id),
        reference=result.reference,
    )
    return {
        "authorization_url": result.authorization_url,
        "access_code": result.access_code,
        "reference": result.reference,
        "payment_id": result.payment_id,
    }


@payment_router.get(
    "/verify/{reference}",
    response_model=PaymentResponse,
    summary="Verify a payment",
    description="Ask Paystack for the outcome and settle the payment",
)
async def verify_payment(
    reference: str,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    """Verify a payment by reference. Safe to repeat."""
    payment = await services.ledger.verify(reference)
    if payment.user_id != user_id:
        raise ForbiddenError("You can only verify your own payments", resource_id=payment.id)
    return payment


@payment_router.get(
    "",
    response_model=PaymentListResponse,
    summary="List payments",
    description="The caller's payments, newest first",
)
async def list_payments(
    payment_type: Optional[str] = Query(default=None, alias="type"),
    payment_status: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    page_of_payments = await services.ledger.list_user_payments(
        user_id,
        payment_type=payment_type,
        status=payment_status,
        page=page,
        limit=limit,
    )
    return {
        "data": page_of_payments.data,
        "total": page_of_payments.total,
        "page": page_of_payments.page,
        "limit": page_of_payments.limit,
        "total_pages": page_of_payments.total_pages,
    }


@payment_router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get a payment",
)
async def get_payment(
    payment_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.ledger.get_payment(payment_id, user_id)


@payment_router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    summary="Refund a payment",
    description="Refund a successful payment and roll back its booking or ticket",
)
async def refund_payment(
    payment_id: uuid.UUID,
    request: Optional[RefundRequest] = None,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    """Refund a payment. A second refund is rejected."""
    request = request or RefundRequest()
    logger.info(
        "api_refund_payment_request",
        payment_id=str(payment_id),
        amount=str(request.amount) if request.amount is not None else None,
        reason=request.reason,
    )
    return await services.ledger.refund(
        payment_id, user_id, amount=request.amount, reason=request.reason
    )


# ---------------------------------------------------------------------------
# bank accounts
# ---------------------------------------------------------------------------


@bank_account_router.post(
    "",
    response_model=BankAccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a bank account",
)
async def create_bank_account(
    request: CreateBankAccountRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.bank_accounts.create(
        user_id,
        request.account_number,
        request.bank_code,
        account_name=request.account_name,
    )


@bank_account_router.get("", response_model=List[BankAccountResponse], summary="List bank accounts")
async def list_bank_accounts(
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.bank_accounts.list_accounts(user_id)


@bank_account_router.get("/banks", response_model=List[BankResponse], summary="Supported banks")
async def list_banks(services: Services = Depends(get_services)) -> Any:
    return services.bank_accounts.supported_banks()


@bank_account_router.post(
    "/{account_id}/verify",
    response_model=BankAccountResponse,
    summary="Verify a bank account",
)
async def verify_bank_account(
    account_id: uuid.UUID,
    request: VerifyBankAccountRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.bank_accounts.verify(
        account_id, user_id, request.account_number, request.bank_code
    )


@bank_account_router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a bank account",
)
async def delete_bank_account(
    account_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Response:
    await services.bank_accounts.remove(account_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@bank_account_router.put(
    "/{account_id}/default",
    response_model=BankAccountResponse,
    summary="Make a bank account the default",
)
async def set_default_bank_account(
    account_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.bank_accounts.set_default(account_id, user_id)


# ---------------------------------------------------------------------------
# events
# ---------------------------------------------------------------------------


@event_router.post(
    "/{event_id}/rsvp",
    response_model=ReservationResponse,
    summary="RSVP to an event",
    description="Create or change an RSVP; going with guests holds 1 + guests seats",
)
async def rsvp(
    event_id: uuid.UUID,
    request: RsvpRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    result = await services.capacity.rsvp(
        event_id, user_id, request.rsvp_status.value, guests_count=request.guests_count
    )
    return {
        "status": result.status,
        "event_id": event_id,
        "rsvp_status": result.attendee.rsvp_status,
        "guests_count": result.attendee.guests_count,
        "seats_taken": result.seats_taken,
        "max_attendees": result.max_attendees,
        "seats_remaining": result.seats_remaining,
    }


@event_router.delete(
    "/{event_id}/rsvp",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancel an RSVP",
)
async def cancel_rsvp(
    event_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Response:
    await services.capacity.cancel_rsvp(event_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@event_router.get(
    "/{event_id}/availability",
    response_model=AvailabilityResponse,
    summary="Seat availability",
)
async def availability(
    event_id: uuid.UUID,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.capacity.availability(event_id)


# ---------------------------------------------------------------------------
# webhooks
# ---------------------------------------------------------------------------


@webhook_router.post(
    "/paystack",
    response_model=WebhookResponse,
    summary="Paystack webhook endpoint",
    description="Handle Paystack webhook events",
)
async def paystack_webhook(
    request: Request,
    paystack_signature: Optional[str] = Header(default=None, alias="x-paystack-signature"),
    webhook_handler: WebhookHandler = Depends(get_webhook_handler),
) -> Dict[str, Any]:
    """
    Handle Paystack webhook events.

    Verifies the signature, then re-verifies the charge with Paystack.
    Gateway errors surface as 502 so Paystack redelivers.
    """
    body = await request.body()
    event = webhook_handler.verify_signature(body, paystack_signature)

    logger.info(
        "api_webhook_received",
        event_type=event.get("event"),
    )
    return await webhook_handler.process_event(event)


# ---------------------------------------------------------------------------
# admin
# ---------------------------------------------------------------------------


@admin_router.post(
    "/reconcile",
    response_model=SweepResponse,
    summary="Run reconciliation",
    description="Re-verify stale pending payments now",
)
async def run_reconciliation(
    request: Optional[ReconcileRequest] = None,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    request = request or ReconcileRequest()
    start_time = time.time()
    logger.info("api_reconciliation_started", older_than_minutes=request.older_than_minutes)

    result = await services.reconciliation.sweep_pending(
        older_than_minutes=request.older_than_minutes, limit=request.limit
    )

    logger.info(
        "api_reconciliation_completed",
        checked=result["checked"],
        duration_seconds=time.time() - start_time,
    )
    return result


@admin_router.get(
    "/faults",
    response_model=List[FaultResponse],
    summary="List reconciliation faults",
)
async def list_faults(
    resolved: Optional[bool] = Query(default=False),
    limit: int = Query(default=100, ge=1, le=1000),
    services: Services = Depends(get_services),
) -> Any:
    return await services.reconciliation.list_faults(resolved=resolved, limit=limit)


@admin_router.post(
    "/faults/{fault_id}/resolve",
    response_model=FaultResponse,
    summary="Mark a fault resolved",
)
async def resolve_fault(
    fault_id: int,
    services: Services = Depends(get_services),
) -> Any:
    return await services.reconciliation.resolve_fault(fault_id)


# ---------------------------------------------------------------------------
# monitoring
# ---------------------------------------------------------------------------


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness() -> Dict[str, Any]:
    """Liveness probe endpoint; touches no dependency."""
    return {"status": "alive", "message": "Application is running"}


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint. Degraded still serves traffic."""
    try:
        result = await health_check.readiness()
    except Exception as e:
        logger.error("readiness_check_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )
    if result["status"] == "unhealthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
