"""
State enums for billing models.

Usage:
    from billing.state_machines import TransactionStatus, StripeSubscriptionStatus
"""

from .states import (
    GatewayType,
    StripeSubscriptionStatus,
    TransactionStatus,
    TransactionType,
    WebhookEventStatus,
)

__all__ = [
    "GatewayType",
    "StripeSubscriptionStatus",
    "TransactionStatus",
    "TransactionType",
    "WebhookEventStatus",
]
