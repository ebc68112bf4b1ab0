"""
Billing domain models.

Core-owned (written only by billing code):
- StripeCustomer: User to Stripe customer mapping per gateway
- PaymentIntentRecord: Stripe PaymentIntent per (gateway, customer, transaction)
- Invoice: Stripe invoice snapshots per subscription
- WebhookEvent: Webhook delivery audit trail

Host-owned (billing code touches an explicit subset of fields):
- Transaction: Gateway requests for orders
- Plan / Subscription: Recurring billing
- PaymentSource: Stored payment methods
"""

from billing.models.customer import StripeCustomer
from billing.models.invoice import Invoice
from billing.models.payment_intent import PaymentIntentRecord
from billing.models.payment_source import PaymentSource
from billing.models.subscription import Plan, Subscription
from billing.models.transaction import Transaction
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "Invoice",
    "PaymentIntentRecord",
    "PaymentSource",
    "Plan",
    "StripeCustomer",
    "Subscription",
    "Transaction",
    "WebhookEvent",
]
