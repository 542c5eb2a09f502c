"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from community_payments.database.models import PaymentType, RsvpStatus


class InitializePaymentRequest(BaseModel):
    """Request schema for opening a checkout."""

    email: str = Field(..., min_length=3, max_length=255, description="Customer email")
    amount: Decimal = Field(..., gt=0, description="Amount in major units (naira for NGN)")
    payment_type: PaymentType = Field(..., description="What the payment is for")
    currency: Optional[str] = Field(
        default=None, min_length=3, max_length=3, description="ISO 4217 code"
    )
    booking_id: Optional[UUID] = Field(default=None, description="Booking being paid for")
    bill_id: Optional[UUID] = Field(default=None, description="Bill being paid for")
    event_id: Optional[UUID] = Field(default=None, description="Event ticket being bought")
    description: Optional[str] = Field(default=None, max_length=1000)
    callback_url: Optional[str] = Field(default=None, description="Checkout redirect URL")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Free-form metadata")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Normalize currency code."""
        return v.upper() if v else v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "email": "ada@example.com",
                    "amount": "5000",
                    "payment_type": "service-booking",
                    "currency": "NGN",
                    "booking_id": "123e4567-e89b-12d3-a456-426614174000",
                }
            ]
        }
    }


class InitializePaymentResponse(BaseModel):
    """Checkout handle returned by initialization."""

    authorization_url: str = Field(..., description="Hosted checkout URL")
    access_code: str = Field(..., description="Paystack access code")
    reference: str = Field(..., description="Payment reference")
    payment_id: UUID = Field(..., description="Payment ID")


class PaymentResponse(BaseModel):
    """Response schema for a payment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    amount: Decimal
    currency: str
    status: str
    type: str
    reference: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    booking_id: Optional[UUID] = None
    bill_id: Optional[UUID] = None
    event_id: Optional[UUID] = None
    paid_at: Optional[datetime] = None
    refunded_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PaymentListResponse(BaseModel):
    """One page of payments."""

    data: List[PaymentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class RefundRequest(BaseModel):
    """Request schema for refunding a payment."""

    amount: Optional[Decimal] = Field(
        default=None, gt=0, description="Partial refund amount (full refund if not specified)"
    )
    reason: Optional[str] = Field(default=None, max_length=500, description="Refund reason")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"amount": "2500", "reason": "requested_by_customer"},
                {"reason": "duplicate"},
            ]
        }
    }


class CreateBankAccountRequest(BaseModel):
    account_number: str = Field(..., description="10-digit NUBAN")
    bank_code: str = Field(..., description="CBN bank code")
    account_name: Optional[str] = Field(
        default=None, max_length=255, description="Fallback name if resolution fails"
    )


class VerifyBankAccountRequest(BaseModel):
    account_number: str
    bank_code: str


class BankAccountResponse(BaseModel):
    """Response schema for a bank account."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    account_number: str
    bank_code: str
    bank_name: str
    account_name: str
    is_verified: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime


class BankResponse(BaseModel):
    code: str
    name: str


class RsvpRequest(BaseModel):
    """Request schema for creating or changing an RSVP."""

    rsvp_status: RsvpStatus = Field(..., description="going, maybe or not_going")
    guests_count: int = Field(default=0, ge=0, description="Guests brought along")


class ReservationResponse(BaseModel):
    """Outcome of an RSVP."""

    status: str = Field(..., description="reserved or updated")
    event_id: UUID
    rsvp_status: str
    guests_count: int
    seats_taken: int
    max_attendees: Optional[int] = None
    seats_remaining: Optional[int] = None


class AvailabilityResponse(BaseModel):
    event_id: UUID
    max_attendees: Optional[int] = None
    seats_taken: int
    seats_remaining: Optional[int] = None
    is_full: bool


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="Processing status")
    event_id: str = Field(..., description="Delivery id (event type and object id)")
    event_type: Optional[str] = Field(default=None, description="Paystack event type")
    result: Optional[Dict[str, Any]] = Field(default=None, description="Handler result")


class ReconcileRequest(BaseModel):
    older_than_minutes: Optional[int] = Field(
        default=None, ge=0, description="Age cut-off for pending payments"
    )
    limit: Optional[int] = Field(default=None, ge=1, le=1000, description="Max payments to check")


class SweepResponse(BaseModel):
    """Response schema for a reconciliation sweep."""

    checked: int
    succeeded: int
    failed: int
    still_pending: int
    errors: int


class FaultResponse(BaseModel):
    """Response schema for a reconciliation fault."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    payment_id: UUID
    kind: str
    details: Optional[Dict[str, Any]] = None
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/degraded/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str = Field(..., description="Error kind, e.g. not_found")
    message: str
    resource_id: Optional[str] = None
