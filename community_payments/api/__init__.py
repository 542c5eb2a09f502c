"""FastAPI application and routes."""
from .main import app
from .schemas import (
    InitializePaymentRequest,
    InitializePaymentResponse,
    PaymentResponse,
    RefundRequest,
)

__all__ = [
    "app",
    "InitializePaymentRequest",
    "InitializePaymentResponse",
    "PaymentResponse",
    "RefundRequest",
]
