"""
Webhook event handlers for Stripe events.

Each Stripe event type maps to exactly one handler. Handlers receive the
stored WebhookEvent and the gateway it was delivered to, and return a
ServiceResult. Event types without a handler are ignored.

Usage:
    from billing.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event, gateway) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event, gateway)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.db import transaction
from django_fsm import can_proceed

from core.services import ServiceResult

from billing.gateways import SubscriptionGateway
from billing.models import Transaction, WebhookEvent
from billing.state_machines import TransactionStatus

if TYPE_CHECKING:
    from billing.gateways import PaymentIntentsGateway


logger = logging.getLogger(__name__)

WebhookHandler = Callable[[WebhookEvent, "PaymentIntentsGateway"], ServiceResult]


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, WebhookHandler] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    One handler may serve several event types, but each event type has
    exactly one handler.

    Usage:
        @register_handler("plan.updated", "plan.deleted")
        def handle_plan_event(webhook_event, gateway) -> ServiceResult:
            ...

    Raises:
        ValueError: An event type already has a handler
    """

    def decorator(func: WebhookHandler) -> WebhookHandler:
        for event_type in event_types:
            if event_type in WEBHOOK_HANDLERS:
                raise ValueError(f"Handler already registered for {event_type}")
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent, gateway: PaymentIntentsGateway) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Returns:
        ServiceResult from the handler, or success if no handler
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event, gateway)


def _unsupported(webhook_event: WebhookEvent, gateway: PaymentIntentsGateway) -> ServiceResult:
    logger.warning(
        f"Gateway {gateway.handle} does not handle subscriptions",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
        },
    )
    return ServiceResult.failure(
        f"Gateway {gateway.handle} does not handle {webhook_event.event_type}",
        error_code="NOT_SUPPORTED",
    )


# =============================================================================
# Payment Method Handlers
# =============================================================================


@register_handler(
    "payment_method.attached",
    "payment_method.updated",
    "payment_method.automatically_updated",
)
def handle_payment_method_updated(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    source = gateway.payment_methods.handle_payment_method_updated(webhook_event.get_object())
    return ServiceResult.success(source)


@register_handler("payment_method.detached")
def handle_payment_method_detached(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    deleted = gateway.payment_methods.delete_payment_source_by_token(webhook_event.get_object_id())
    return ServiceResult.success(deleted)


@register_handler("customer.updated")
def handle_customer_updated(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    source = gateway.payment_methods.set_primary_from_customer(webhook_event.get_object())
    return ServiceResult.success(source)


# =============================================================================
# Payment Intent / Refund Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    """
    Settle a transaction that was waiting on asynchronous confirmation.

    For a top-level transaction with no children, the transaction itself
    is settled when it is processing. Otherwise the processing child
    sharing its reference is settled.
    """
    intent = webhook_event.get_object()
    if intent.get("object") != "payment_intent":
        return ServiceResult.success(None)

    with transaction.atomic():
        parent = (
            Transaction.objects.select_for_update()
            .filter(reference=intent.get("id"), parent__isnull=True)
            .first()
        )
        if parent is None:
            logger.info(
                "No transaction for succeeded payment intent",
                extra={"payment_intent_id": intent.get("id")},
            )
            return ServiceResult.success(None)

        children = list(parent.children.select_for_update())
        target = None
        if not children and parent.status == TransactionStatus.PROCESSING:
            target = parent
        elif intent.get("status") == "succeeded":
            target = next(
                (
                    child
                    for child in children
                    if child.reference == parent.reference
                    and child.status == TransactionStatus.PROCESSING
                ),
                None,
            )

        if target is None:
            return ServiceResult.success(None)

        target.mark_success()
        target.message = ""
        target.response = intent
        target.save()

    logger.info(
        "Transaction settled by payment_intent.succeeded",
        extra={"transaction_id": str(target.pk), "payment_intent_id": intent.get("id")},
    )
    return ServiceResult.success(target)


@register_handler("charge.refund.updated")
def handle_refund_updated(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    refund = webhook_event.get_object()

    with transaction.atomic():
        refund_transaction = (
            Transaction.objects.select_for_update().filter(reference=refund.get("id")).first()
        )
        if refund_transaction is None:
            return ServiceResult.success(None)

        status = refund.get("status")
        if status == "succeeded":
            transition = refund_transaction.mark_success
            refund_transaction.message = ""
        elif status == "pending":
            transition = refund_transaction.mark_processing
            refund_transaction.message = "Processing"
        else:
            transition = refund_transaction.mark_failed
            if status == "failed":
                refund_transaction.message = refund.get("failure_reason") or ""

        if can_proceed(transition):
            transition()
        else:
            logger.warning(
                "Refund transaction already settled",
                extra={
                    "transaction_id": str(refund_transaction.pk),
                    "status": refund_transaction.status,
                    "refund_status": status,
                },
            )
        refund_transaction.response = webhook_event.payload.get("data", {})
        refund_transaction.save()

    return ServiceResult.success(refund_transaction)


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    # charge.refund.updated carries the refund outcome.
    return ServiceResult.success(None)


# =============================================================================
# Plan Handlers
# =============================================================================


@register_handler("plan.updated", "plan.deleted")
def handle_plan_event(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    plan = gateway.plans.handle_plan_event(
        webhook_event.event_type,
        webhook_event.get_object(),
        event_id=webhook_event.stripe_event_id,
    )
    return ServiceResult.success(plan)


# =============================================================================
# Invoice Handlers
# =============================================================================


@register_handler("invoice.payment_succeeded")
def handle_invoice_succeeded(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    invoice = gateway.invoices.handle_invoice_succeeded(webhook_event.get_object())
    return ServiceResult.success(invoice)


@register_handler("invoice.created")
def handle_invoice_created(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    paid = gateway.invoices.handle_invoice_created(webhook_event.get_object())
    return ServiceResult.success(paid)


@register_handler("invoice.payment_failed")
def handle_invoice_failed(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    subscription = gateway.subscriptions.handle_invoice_failed(webhook_event.get_object())
    return ServiceResult.success(subscription)


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    subscription = gateway.subscriptions.handle_subscription_expired(webhook_event.get_object())
    return ServiceResult.success(subscription)


@register_handler("customer.subscription.updated")
def handle_subscription_updated(webhook_event: WebhookEvent, gateway) -> ServiceResult:
    if not isinstance(gateway, SubscriptionGateway):
        return _unsupported(webhook_event, gateway)

    subscription = gateway.subscriptions.handle_subscription_updated(webhook_event.get_object())
    return ServiceResult.success(subscription)
