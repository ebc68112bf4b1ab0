"""
Billing services.

This package provides:
- ChargeOrchestrator: authorize, purchase, capture and refund
- CustomerService: Stripe customer get-or-create
- PaymentIntentRepository: local PaymentIntent snapshots
- InvoiceService: invoice webhooks and subscription payments
- SubscriptionService: subscription reconciliation, plan switches, history
- PaymentMethodService: PaymentSource synchronization
- PlanService: plan webhooks and remote plan listing

Usage:
    from billing.gateways import get_gateway

    gateway = get_gateway("stripe")
    result = gateway.authorize_or_purchase(transaction, "pm_xxx")
"""

from billing.services.customers import CustomerService
from billing.services.invoices import InvoiceService, SubscriptionPayment, save_invoice
from billing.services.orchestrator import ChargeOrchestrator
from billing.services.payment_intents import PaymentIntentRepository
from billing.services.payment_methods import PaymentMethodService, describe_payment_method
from billing.services.plans import PlanService
from billing.services.responses import RequestResult
from billing.services.subscription_status import apply_subscription_status
from billing.services.subscriptions import SubscriptionService

__all__ = [
    "ChargeOrchestrator",
    "CustomerService",
    "InvoiceService",
    "PaymentIntentRepository",
    "PaymentMethodService",
    "PlanService",
    "RequestResult",
    "SubscriptionPayment",
    "SubscriptionService",
    "apply_subscription_status",
    "describe_payment_method",
    "save_invoice",
]
