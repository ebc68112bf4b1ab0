"""
Django signals other apps can hook into.

Signals:
    build_payment_request: Before a PaymentIntent create/update is sent.
        kwargs: transaction, request (mutable dict)
        Receivers may add metadata keys. Amount, currency, description and
        the core metadata keys are re-applied afterwards, so edits to them
        are discarded.

    customer_created: After a Stripe customer is created for a user.
        kwargs: user, customer

    webhook_received: After a verified webhook was dispatched.
        kwargs: gateway_id, payload (raw decoded JSON)

    invoice_created: When Stripe reports a new invoice.
        kwargs: gateway_id, invoice (raw invoice dict)

    invoice_saved: Before an invoice snapshot is written.
        kwargs: invoice (unsaved or stale Invoice), context (HookContext)
        Set context.reject = True to skip the save.

    subscription_payment_received: After a paid invoice advanced a subscription.
        kwargs: subscription, payment (SubscriptionPayment)

Usage:
    from django.dispatch import receiver
    from billing.hooks import build_payment_request

    @receiver(build_payment_request)
    def add_campaign(sender, transaction, request, **kwargs):
        request["metadata"]["campaign"] = "spring"
"""

from __future__ import annotations

from dataclasses import dataclass

from django.dispatch import Signal

build_payment_request = Signal()
customer_created = Signal()
webhook_received = Signal()
invoice_created = Signal()
invoice_saved = Signal()
subscription_payment_received = Signal()


@dataclass
class HookContext:
    """Mutable flag receivers can flip to veto the default action."""

    reject: bool = False
