"""External integrations for payment processing."""
from .paystack_client import (
    GatewayDeclinedError,
    GatewayError,
    PaymentGateway,
    PaystackClient,
)
from .webhook_handler import WebhookHandler

__all__ = [
    "GatewayDeclinedError",
    "GatewayError",
    "PaymentGateway",
    "PaystackClient",
    "WebhookHandler",
]
