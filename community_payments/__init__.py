"""Paystack payments, event seat capacity and settlement reconciliation."""

__version__ = "1.0.0"
