"""
External service adapters for billing.

Usage:
    from billing.adapters import StripeAdapter, CreatePaymentIntentParams
"""

from billing.adapters.stripe_adapter import (
    CreateCustomerParams,
    CreatePaymentIntentParams,
    StripeAdapter,
    to_snapshot,
)

__all__ = [
    "CreateCustomerParams",
    "CreatePaymentIntentParams",
    "StripeAdapter",
    "to_snapshot",
]
